# noqa
from assessment.llm.prompts.context import (
    get_analyzer_preamble,
    get_assessor_preamble,
    get_context_preamble,
)

__all__ = [
    "get_analyzer_preamble",
    "get_assessor_preamble",
    "get_context_preamble",
]
