"""End-to-end turn processing through the orchestrator with a scripted oracle."""

import asyncio

import pytest

from conftest import analyzer_reply, assessor_reply, qualifier_reply

from assessment.core.exceptions import (
    OracleUnavailableError,
    SessionCompletedError,
    SessionNotFoundError,
    SessionOwnershipError,
    ValidationError,
)
from assessment.domain.models.session import AssessmentSession
from assessment.domain.models.stages import AgentType, Phase
from assessment.persistence.session_store import SqliteSessionStore
from assessment.services.analytics_service import AnalyticsSink

RESTAURANT_MESSAGE = (
    "We run a restaurant with 12 employees and about $800K in revenue"
)

RESTAURANT_QUALIFIED = qualifier_reply(
    message="Great, let's start the assessment.",
    needs_more_info=False,
    employee_count="12",
    revenue_band="$800K",
    business_type="full-service restaurant",
    location="Portland",
    industry="hospitality",
)

FULL_ANALYSIS = analyzer_reply(
    overall_score=5.8,
    market_strategy_score=6,
    business_understanding_score=7,
    workforce_acumen_score=5,
    company_culture_score=6,
    role_of_technology_score=4,
    data_score=3,
    primary_strategy="Efficiency Strategy",
    strategy_rationale="Operations first",
    phase_1_timeline="0-3 months",
    phase_1_focus="Data basics",
)


class RecordingSink(AnalyticsSink):
    def __init__(self):
        self.snapshots = []

    async def save_snapshot(self, session_id, agent_type, snapshot_data):
        self.snapshots.append((session_id, agent_type, snapshot_data))


class FailingSink(AnalyticsSink):
    async def save_snapshot(self, session_id, agent_type, snapshot_data):
        raise RuntimeError("analytics database is down")


class TestQualifierTurn:
    """First turns of a session."""

    @pytest.mark.asyncio
    async def test_restaurant_qualifies_and_hands_off(self, make_orchestrator):
        orchestrator, oracle = make_orchestrator([RESTAURANT_QUALIFIED])

        result = await orchestrator.process_turn(RESTAURANT_MESSAGE, "user-1")

        envelope = result.to_envelope()
        assert envelope["currentAgent"] == "assessor"
        assert envelope["isComplete"] is False
        assert envelope["message"] == "Great, let's start the assessment."
        assert envelope["data"]["employee_count"] == "12"
        assert envelope["data"]["revenue_band"] == "$800K"
        assert "restaurant" in envelope["data"]["business_type"]
        assert envelope["sessionId"]

        session = await orchestrator.get_session(result.session_id)
        assert session.current_agent == AgentType.ASSESSOR
        assert session.phase == Phase.ASSESSING
        assert session.qualifier.collected_responses["employee_count"] == "12"
        assert session.dynamic_weighting.score_adjustment == 0
        assert session.user_id == "user-1"
        assert result.handoff_to == "assessor"
        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_resumption_replays_prior_exchange(self, make_orchestrator):
        orchestrator, oracle = make_orchestrator(
            [
                qualifier_reply(message="How many employees?", business_type="bakery"),
                qualifier_reply(message="And revenue?", employee_count="4"),
            ]
        )

        first = await orchestrator.process_turn("We own a bakery", "user-1")
        second = await orchestrator.process_turn(
            "Four of us", "user-1", session_id=first.session_id
        )

        assert second.session_id == first.session_id
        session = await orchestrator.get_session(first.session_id)
        assert len(session.conversation_history) == 4
        assert [m.content for m in session.conversation_history] == [
            "We own a bakery",
            "How many employees?",
            "Four of us",
            "And revenue?",
        ]

        replayed = oracle.calls[1]["context"].messages
        assert replayed[:2] == [
            {"role": "user", "content": "We own a bakery"},
            {"role": "assistant", "content": "How many employees?"},
        ]
        assert oracle.calls[1]["context"].thread_id == "thread-1"
        assert session.qualifier.collected_responses == {
            "business_type": "bakery",
            "employee_count": "4",
        }
        assert session.current_agent == AgentType.QUALIFIER
        assert session.turn_count == 2

    @pytest.mark.asyncio
    async def test_degraded_reply_keeps_stage(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(["Sorry, what kind of business is it?"])

        result = await orchestrator.process_turn("hello", "user-1")

        assert result.message == "Sorry, what kind of business is it?"
        assert result.extraction_tier == "fallback"
        assert result.current_agent == "qualifier"
        assert result.is_complete is False

    @pytest.mark.asyncio
    async def test_unknown_session_id_starts_session_under_that_id(
        self, make_orchestrator
    ):
        orchestrator, _ = make_orchestrator([qualifier_reply()])

        result = await orchestrator.process_turn("hi", "user-1", session_id="given-id")

        assert result.session_id == "given-id"
        assert (await orchestrator.get_session("given-id")).turn_count == 1


class TestFullAssessment:
    """Qualifier -> assessor -> analyzer -> complete."""

    @pytest.mark.asyncio
    async def test_full_flow_reaches_complete(self, make_orchestrator):
        sink = RecordingSink()
        orchestrator, oracle = make_orchestrator(
            [
                RESTAURANT_QUALIFIED,
                assessor_reply(
                    message="Do you have a written business strategy?",
                    current_question_id="1a",
                    questions_asked=1,
                    total_questions=12,
                ),
                assessor_reply(
                    message="Thanks, that's everything.",
                    assessment_complete=True,
                    questions_asked=12,
                ),
                FULL_ANALYSIS,
            ],
            analytics=sink,
        )

        t1 = await orchestrator.process_turn(RESTAURANT_MESSAGE, "user-1")
        sid = t1.session_id
        t2 = await orchestrator.process_turn("Ready", "user-1", session_id=sid)
        t3 = await orchestrator.process_turn("Not really", "user-1", session_id=sid)
        t4 = await orchestrator.process_turn("Show me", "user-1", session_id=sid)

        assert [t.current_agent for t in (t1, t2, t3, t4)] == [
            "assessor",
            "assessor",
            "analyzer",
            "analyzer",
        ]
        assert [t.is_complete for t in (t1, t2, t3, t4)] == [False, False, False, True]

        session = await orchestrator.get_session(sid)
        assert session.phase == Phase.COMPLETE
        assert session.completed_at is not None
        assert session.assessor.collected_responses == {
            "question_1a_response": "Not really"
        }
        assert session.assessor.questions_asked == 12
        assert session.analyzer.scoring.data.level == "Limited"
        assert session.analyzer.scoring.business_understanding.level == "Good"
        assert session.token_usage.total_tokens == 60
        assert session.turn_count == 4
        assert session.context_injected == {
            "qualifier": True,
            "assessor": True,
            "analyzer": True,
        }

        # One oracle thread for the whole session
        assert oracle.threads_created == 1
        assert {c["context"].thread_id for c in oracle.calls[1:]} == {"thread-1"}

        # Preamble only on each stage's first invocation
        assert "BUSINESS CONTEXT" in oracle.calls[1]["context"].new_messages[0]["content"]
        assert len(oracle.calls[2]["context"].new_messages) == 1
        analyzer_preamble = oracle.calls[3]["context"].new_messages[0]["content"]
        assert "question_1a_response: Not really" in analyzer_preamble

        assert [s[1] for s in sink.snapshots] == ["qualifier", "assessor", "analyzer"]
        assert all("user-1" not in str(s[2]) for s in sink.snapshots)

    @pytest.mark.asyncio
    async def test_completed_session_rejects_turns(self, make_orchestrator):
        orchestrator, oracle = make_orchestrator([FULL_ANALYSIS])
        session_id = "done-1"

        await orchestrator.store.set(
            session_id,
            AssessmentSession(
                session_id=session_id,
                user_id="user-1",
                current_agent=AgentType.ANALYZER,
                phase=Phase.ANALYZING,
                context_injected={"analyzer": True},
            ),
        )
        done = await orchestrator.process_turn("go", "user-1", session_id=session_id)
        assert done.is_complete is True

        with pytest.raises(SessionCompletedError):
            await orchestrator.process_turn("more?", "user-1", session_id=session_id)
        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_qualifier_not_complete_stays_put(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(
            [qualifier_reply(), qualifier_reply(), qualifier_reply()]
        )
        result = await orchestrator.process_turn("hi", "user-1")
        for _ in range(2):
            result = await orchestrator.process_turn(
                "still here", "user-1", session_id=result.session_id
            )
            assert result.current_agent == "qualifier"

        session = await orchestrator.get_session(result.session_id)
        assert session.phase == Phase.QUALIFYING


class TestFailures:
    """Failed turns leave stored state untouched."""

    @pytest.mark.asyncio
    async def test_oracle_failure_persists_nothing(self, make_orchestrator):
        orchestrator, oracle = make_orchestrator(
            [
                qualifier_reply(employee_count="3"),
                OracleUnavailableError("oracle down"),
                qualifier_reply(revenue_band="under-100k"),
            ]
        )
        first = await orchestrator.process_turn("hi", "user-1")
        before = await orchestrator.get_session(first.session_id)

        with pytest.raises(OracleUnavailableError) as exc_info:
            await orchestrator.process_turn(
                "We make about 90k", "user-1", session_id=first.session_id
            )

        assert exc_info.value.details["user_message"] == "We make about 90k"
        assert exc_info.value.details["session_id"] == first.session_id
        assert exc_info.value.retryable is True
        assert await orchestrator.get_session(first.session_id) == before

        retried = await orchestrator.process_turn(
            "We make about 90k", "user-1", session_id=first.session_id
        )
        session = await orchestrator.get_session(retried.session_id)
        assert len(session.conversation_history) == 4
        assert session.qualifier.collected_responses == {
            "employee_count": "3",
            "revenue_band": "under-100k",
        }

    @pytest.mark.asyncio
    async def test_first_turn_failure_creates_no_session(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([OracleUnavailableError("down")])

        with pytest.raises(OracleUnavailableError) as exc_info:
            await orchestrator.process_turn("hi", "user-1", session_id="fresh")

        assert exc_info.value.details["session_id"] == "fresh"
        with pytest.raises(SessionNotFoundError):
            await orchestrator.get_session("fresh")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,user_id", [("", "user-1"), ("   ", "user-1"), ("hi", "")])
    async def test_validation_makes_no_oracle_call(
        self, make_orchestrator, message, user_id
    ):
        orchestrator, oracle = make_orchestrator([])

        with pytest.raises(ValidationError):
            await orchestrator.process_turn(message, user_id)

        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_other_users_session_is_rejected(self, make_orchestrator):
        orchestrator, oracle = make_orchestrator([qualifier_reply()])
        first = await orchestrator.process_turn("hi", "user-1")

        with pytest.raises(SessionOwnershipError):
            await orchestrator.process_turn(
                "hijack", "user-2", session_id=first.session_id
            )
        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_snapshot_failure_does_not_fail_turn(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([RESTAURANT_QUALIFIED], analytics=FailingSink())

        result = await orchestrator.process_turn(RESTAURANT_MESSAGE, "user-1")

        assert result.current_agent == "assessor"
        session = await orchestrator.get_session(result.session_id)
        assert session.current_agent == AgentType.ASSESSOR


class TestConcurrencyAndStorage:
    @pytest.mark.asyncio
    async def test_concurrent_turns_on_one_session_are_serialised(
        self, make_orchestrator
    ):
        orchestrator, _ = make_orchestrator(
            [qualifier_reply(), qualifier_reply(), qualifier_reply()]
        )
        first = await orchestrator.process_turn("hi", "user-1")

        await asyncio.gather(
            orchestrator.process_turn("a", "user-1", session_id=first.session_id),
            orchestrator.process_turn("b", "user-1", session_id=first.session_id),
        )

        session = await orchestrator.get_session(first.session_id)
        assert session.turn_count == 3
        assert len(session.conversation_history) == 6

    @pytest.mark.asyncio
    async def test_sqlite_store_round_trip(self, make_orchestrator, test_db):
        store = SqliteSessionStore(test_db)
        orchestrator, _ = make_orchestrator(
            [RESTAURANT_QUALIFIED, assessor_reply(current_question_id="1a")],
            store=store,
        )

        first = await orchestrator.process_turn(RESTAURANT_MESSAGE, "user-1")
        await orchestrator.process_turn("Ready", "user-1", session_id=first.session_id)

        session = await store.get(first.session_id)
        assert session.current_agent == AgentType.ASSESSOR
        assert session.assessor.current_question_id == "1a"
        assert session.conversation_history[-1].question_id == "1a"

    @pytest.mark.asyncio
    async def test_delete_session(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([qualifier_reply()])
        result = await orchestrator.process_turn("hi", "user-1")

        await orchestrator.delete_session(result.session_id)

        with pytest.raises(SessionNotFoundError):
            await orchestrator.get_session(result.session_id)
        with pytest.raises(SessionNotFoundError):
            await orchestrator.delete_session(result.session_id)
