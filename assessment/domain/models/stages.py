"""Stage and phase vocabulary for the assessment pipeline.

The pipeline is a fixed forward sequence of stage agents:

    qualifier -> assessor -> analyzer -> (reporter)

Each agent owns exactly one phase. The terminal ``complete`` phase is reached
when the analyzer reports its analysis finished and may coexist with
``currentAgent`` = analyzer or reporter.
"""

from enum import Enum
from typing import Dict, Optional, Tuple


class AgentType(str, Enum):
    """Stage agent that currently owns the conversation."""

    QUALIFIER = "qualifier"
    ASSESSOR = "assessor"
    ANALYZER = "analyzer"
    REPORTER = "reporter"


class Phase(str, Enum):
    """Session phase; mirrors the active agent until ``complete``."""

    QUALIFYING = "qualifying"
    ASSESSING = "assessing"
    ANALYZING = "analyzing"
    REPORTING = "reporting"
    COMPLETE = "complete"


STAGE_ORDER: Tuple[AgentType, ...] = (
    AgentType.QUALIFIER,
    AgentType.ASSESSOR,
    AgentType.ANALYZER,
    AgentType.REPORTER,
)

AGENT_PHASES: Dict[AgentType, Phase] = {
    AgentType.QUALIFIER: Phase.QUALIFYING,
    AgentType.ASSESSOR: Phase.ASSESSING,
    AgentType.ANALYZER: Phase.ANALYZING,
    AgentType.REPORTER: Phase.REPORTING,
}

# Agents allowed to remain current once the session is complete
TERMINAL_AGENTS = frozenset({AgentType.ANALYZER, AgentType.REPORTER})

ASSESSMENT_CATEGORIES: Tuple[str, ...] = (
    "market_strategy",
    "business_understanding",
    "workforce_acumen",
    "company_culture",
    "role_of_technology",
    "data",
)


def phase_for(agent: AgentType) -> Phase:
    """Phase owned by an agent."""
    return AGENT_PHASES[agent]


def next_agent(agent: AgentType) -> Optional[AgentType]:
    """Next stage in the fixed order, or None after the last stage."""
    index = STAGE_ORDER.index(agent)
    if index + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[index + 1]


def is_forward_transition(current: AgentType, target: AgentType) -> bool:
    """True if moving from ``current`` to ``target`` stays or steps forward by one."""
    delta = STAGE_ORDER.index(target) - STAGE_ORDER.index(current)
    return delta in (0, 1)


def is_consistent(agent: AgentType, phase: Phase) -> bool:
    """Check the agent/phase pairing invariant."""
    if phase == Phase.COMPLETE:
        return agent in TERMINAL_AGENTS
    return AGENT_PHASES[agent] == phase
