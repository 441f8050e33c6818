"""Tests for configuration loading, the error hierarchy and session models."""

import json

import pytest

from assessment.core.config import PipelineConfig, Settings, load_pipeline_config
from assessment.core.exceptions import (
    AssessmentSystemError,
    OracleError,
    OracleTimeoutError,
    OracleUnavailableError,
    SessionBusyError,
    SessionError,
    StateCorruptionRiskError,
)
from assessment.domain.models.session import (
    AssessmentSession,
    AssessorData,
    ChatMessage,
    QualifierData,
    SessionUpdate,
    TokenUsage,
)
from assessment.domain.models.stage_outputs import (
    AnalyzerOutput,
    AssessorOutput,
    QualifierOutput,
    stage_json_schema,
)
from assessment.domain.models.stages import AgentType, Phase


class TestSettings:
    """Settings defaults and environment overrides."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.oracle_provider == "assistants"
        assert settings.oracle_poll_interval_seconds == 1.0
        assert settings.oracle_max_wait_seconds == 60.0
        assert settings.session_store_backend == "sqlite"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ORACLE_MAX_WAIT_SECONDS", "15")
        monkeypatch.setenv("SESSION_STORE_BACKEND", "memory")

        settings = Settings(_env_file=None)

        assert settings.oracle_max_wait_seconds == 15.0
        assert settings.session_store_backend == "memory"


class TestPipelineConfig:
    def test_loads_stage_blocks(self, tmp_path):
        config_file = tmp_path / "pipeline_config.yaml"
        config_file.write_text(
            "stages:\n"
            "  qualifier:\n"
            "    name: Qualifier\n"
            "    assistant_id: asst_q\n"
            "  analyzer:\n"
            "    name: Analyzer\n"
            "    fallback_complete: true\n"
        )

        config = load_pipeline_config(config_file)

        assert config.for_stage("qualifier").assistant_id == "asst_q"
        assert config.for_stage("analyzer").fallback_complete is True
        assert config.for_stage("assessor").fallback_complete is False

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_pipeline_config(tmp_path / "absent.yaml")
        assert config == PipelineConfig()

    def test_shipped_config_is_conservative(self):
        config = load_pipeline_config()
        for stage in ("qualifier", "assessor", "analyzer"):
            assert config.for_stage(stage).fallback_complete is False


class TestErrorHierarchy:
    def test_retryable_flags(self):
        assert OracleUnavailableError("x").retryable is True
        assert OracleTimeoutError("x").retryable is True
        assert SessionBusyError("x").retryable is True
        assert SessionError("x").retryable is False

    def test_hierarchy(self):
        assert issubclass(OracleTimeoutError, OracleUnavailableError)
        assert issubclass(OracleUnavailableError, OracleError)
        assert issubclass(SessionBusyError, StateCorruptionRiskError)
        assert issubclass(SessionError, AssessmentSystemError)

    def test_details_carried(self):
        error = OracleTimeoutError("slow", run_id="run_1")
        assert error.message == "slow"
        assert error.details == {"run_id": "run_1"}
        assert str(error) == "slow"


class TestSessionModels:
    def test_wire_format_is_camel_case(self):
        session = AssessmentSession(
            session_id="sess-1",
            user_id="user-1",
            conversation_history=[
                ChatMessage(role="user", content="hi", agent=AgentType.QUALIFIER)
            ],
        )
        payload = json.loads(session.to_json())

        assert payload["sessionId"] == "sess-1"
        assert payload["currentAgent"] == "qualifier"
        assert payload["phase"] == "qualifying"
        assert payload["conversationHistory"][0]["agent"] == "qualifier"
        assert AssessmentSession.from_json(session.to_json()) == session

    def test_stage_records_keep_snake_case_keys(self):
        session = AssessmentSession(
            session_id="sess-1",
            user_id="user-1",
            qualifier=QualifierData(needs_more_info=False),
            assessor=AssessorData(current_question_id="2b", questions_asked=4),
        )
        payload = json.loads(session.to_json())

        assert payload["qualifier"]["needs_more_info"] is False
        assert payload["assessor"]["current_question_id"] == "2b"
        assert payload["assessor"]["questions_asked"] == 4
        assert "currentQuestionId" not in payload["assessor"]
        assert AssessmentSession.from_json(session.to_json()).assessor.current_question_id == "2b"

    def test_is_complete(self):
        session = AssessmentSession(
            session_id="s", user_id="u", current_agent=AgentType.ANALYZER
        )
        assert not session.is_complete
        assert session.model_copy(update={"phase": Phase.COMPLETE}).is_complete

    def test_token_usage_accumulates(self):
        usage = TokenUsage().add({"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5})
        usage = usage.add({"total_tokens": 4})
        assert usage.total_tokens == 9
        assert usage.prompt_tokens == 3

    def test_session_update_changes_only_set_fields(self):
        update = SessionUpdate()
        update.phase = Phase.ASSESSING
        assert update.changes() == {"phase": Phase.ASSESSING}

    @pytest.mark.parametrize(
        "stage,flag",
        [
            (AgentType.QUALIFIER, "needs_more_info"),
            (AgentType.ASSESSOR, "assessment_complete"),
            (AgentType.ANALYZER, "analysis_complete"),
        ],
    )
    def test_output_schema_requires_message_and_flag(self, stage, flag):
        schema = stage_json_schema(stage)

        assert "stage" not in schema["properties"]
        assert set(schema["required"]) >= {"message", flag}

    @pytest.mark.parametrize(
        "output,complete",
        [
            (QualifierOutput(message="m", needs_more_info=True), False),
            (QualifierOutput(message="m", needs_more_info=False), True),
            (AssessorOutput(message="m", assessment_complete=True), True),
            (AnalyzerOutput(message="m", analysis_complete=False), False),
        ],
    )
    def test_each_variant_reports_completion(self, output, complete):
        assert output.is_complete is complete
        assert output.agent_type.value == output.stage
