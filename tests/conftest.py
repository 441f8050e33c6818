"""
Shared test fixtures.

Provides a scripted fake oracle, temporary databases and orchestrator
factories wired to in-memory or SQLite stores.
"""

import copy
import json
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Union
from unittest.mock import patch

import pytest

from assessment.agents import build_stage_agents
from assessment.core.config import PipelineConfig, StageConfig
from assessment.llm.oracle import OracleClient, OracleContext, OracleResponse
from assessment.persistence.database import init_database
from assessment.persistence.locks import SessionLockRegistry
from assessment.persistence.session_store import InMemorySessionStore
from assessment.services.orchestrator import AssessmentOrchestrator


class FakeOracleClient(OracleClient):
    """Oracle that replays scripted replies and records every call.

    Each scripted item is either raw reply text, a dict (serialised to JSON)
    or an exception instance to raise.
    """

    def __init__(self, replies: List[Union[str, Dict[str, Any], Exception]]):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []
        self.threads_created = 0

    async def invoke(self, stage, context: OracleContext) -> OracleResponse:
        self.calls.append({"stage": stage, "context": copy.deepcopy(context)})
        if not self.replies:
            raise AssertionError("FakeOracleClient ran out of scripted replies")

        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)

        thread_id = context.thread_id
        if thread_id is None:
            self.threads_created += 1
            thread_id = f"thread-{self.threads_created}"

        return OracleResponse(
            content=reply,
            thread_id=thread_id,
            usage={"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            run_id=f"run-{len(self.calls)}",
        )


def qualifier_reply(message="Thanks! Tell me more.", needs_more_info=True, **fields):
    return {"message": message, "needs_more_info": needs_more_info, **fields}


def assessor_reply(message="Next question?", assessment_complete=False, **fields):
    return {"message": message, "assessment_complete": assessment_complete, **fields}


def analyzer_reply(message="Here is your analysis.", analysis_complete=True, **fields):
    return {"message": message, "analysis_complete": analysis_complete, **fields}


@pytest.fixture
def pipeline_settings():
    """Pipeline config with assistant ids and conservative fallbacks."""
    return PipelineConfig(
        qualifier=StageConfig(name="Qualifier", assistant_id="asst_qualifier"),
        assessor=StageConfig(name="Assessor", assistant_id="asst_assessor"),
        analyzer=StageConfig(name="Analyzer", assistant_id="asst_analyzer"),
    )


@pytest.fixture
def memory_store():
    return InMemorySessionStore()


@pytest.fixture
def make_orchestrator(memory_store, pipeline_settings):
    """Factory: orchestrator over a FakeOracleClient with the given replies."""

    def _make(replies, store=None, analytics=None):
        oracle = FakeOracleClient(replies)
        orchestrator = AssessmentOrchestrator(
            store=store or memory_store,
            agents=build_stage_agents(oracle, pipeline_settings),
            locks=SessionLockRegistry(timeout=5.0),
            analytics=analytics,
        )
        return orchestrator, oracle

    return _make


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from assessment.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("assessment.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path
