"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from assessment.agents import build_stage_agents
from assessment.core.config import settings
from assessment.llm.oracle import OracleClient, get_oracle_client
from assessment.persistence.locks import SessionLockRegistry
from assessment.persistence.repositories.snapshot_repo import SnapshotRepository
from assessment.persistence.session_store import (
    InMemorySessionStore,
    SessionStore,
    SqliteSessionStore,
)
from assessment.services.analytics_service import (
    AnalyticsSink,
    NullAnalyticsSink,
    SqliteAnalyticsSink,
)
from assessment.services.orchestrator import AssessmentOrchestrator
from assessment.services.report_service import ReportService


@lru_cache(maxsize=1)
def get_shared_oracle_client() -> OracleClient:
    """Cached completion oracle client.

    Created once per process and reused by every stage agent.
    """
    return get_oracle_client()


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    """Process-wide session store selected by settings.session_store_backend."""
    if settings.session_store_backend == "memory":
        return InMemorySessionStore()
    return SqliteSessionStore(str(settings.database_path))


@lru_cache(maxsize=1)
def get_analytics_sink() -> AnalyticsSink:
    """Snapshot sink; discards snapshots when analytics is disabled."""
    if not settings.analytics_enabled:
        return NullAnalyticsSink()
    return SqliteAnalyticsSink(SnapshotRepository(str(settings.database_path)))


@lru_cache(maxsize=1)
def get_orchestrator() -> AssessmentOrchestrator:
    """Shared orchestrator.

    One instance per process so every request shares the same per-session
    lock registry.
    """
    return AssessmentOrchestrator(
        store=get_session_store(),
        agents=build_stage_agents(get_shared_oracle_client()),
        locks=SessionLockRegistry(),
        analytics=get_analytics_sink(),
    )


def get_report_service() -> ReportService:
    return ReportService()


# Type aliases for dependency injection
OrchestratorDep = Annotated[AssessmentOrchestrator, Depends(get_orchestrator)]
ReportServiceDep = Annotated[ReportService, Depends(get_report_service)]
