"""
Tiered extraction parser for stage agent outputs.

Turns raw oracle text into a validated stage output. Three tiers are tried in
order and the first success wins:

1. strict   - strip markdown fences, parse, validate against the stage model
2. repaired - escape raw control characters inside string literals, drop
              trailing commas, parse and validate again
3. fallback - never fails: the raw text becomes the user-facing message and
              the completion flag takes the caller-configured default

The fallback tier is logged as ``extraction_degraded`` and reported on the
result so callers can observe it without an exception.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from assessment.domain.models.stage_outputs import (
    COMPLETION_FLAGS,
    STAGE_OUTPUT_MODELS,
)
from assessment.domain.models.stages import AgentType

log = structlog.get_logger(__name__)

ExtractionTier = Literal["strict", "repaired", "fallback"]

_TRAILING_COMMA = re.compile(r",(\s*[\]}])")


@dataclass
class ExtractionResult:
    """Outcome of parsing one oracle reply."""

    output: Any  # QualifierOutput | AssessorOutput | AnalyzerOutput
    data: Dict[str, Any] = field(default_factory=dict)
    tier: ExtractionTier = "strict"


def _strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from oracle response."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _escape_control_chars_in_strings(text: str) -> str:
    """Escape raw control characters that appear inside JSON string literals.

    Structural whitespace between tokens is left untouched.
    """
    out = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch == "\n":
                ch = "\\n"
            elif ch == "\r":
                ch = "\\r"
            elif ch == "\t":
                ch = "\\t"
            elif ord(ch) < 0x20:
                ch = f"\\u{ord(ch):04x}"
        elif ch == '"':
            in_string = True
        out.append(ch)
    return "".join(out)


def _repair_json(text: str) -> str:
    """Attempt to repair common oracle JSON generation errors.

    Handles two failure modes:
    1. Unescaped newlines, tabs and other control characters in string values
    2. Trailing commas before closing brackets ([...,] or {...,})
    """
    text = _escape_control_chars_in_strings(text)
    return _TRAILING_COMMA.sub(r"\1", text)


def _validate(data: Any, stage: AgentType) -> Optional[Any]:
    if not isinstance(data, dict):
        return None
    model = STAGE_OUTPUT_MODELS[stage]
    try:
        return model.model_validate({**data, "stage": stage.value})
    except PydanticValidationError as e:
        log.debug(
            "extraction_validation_failed",
            stage=stage.value,
            errors=e.error_count(),
        )
        return None


def _fallback_output(
    raw_text: str,
    stage: AgentType,
    fallback_complete: bool,
    parsed: Any = None,
) -> Any:
    message = raw_text.strip()
    if isinstance(parsed, dict) and isinstance(parsed.get("message"), str):
        message = parsed["message"]

    flag = COMPLETION_FLAGS[stage]
    # needs_more_info is inverted: "complete" means no more info needed
    flag_value = (not fallback_complete) if flag == "needs_more_info" else fallback_complete

    model = STAGE_OUTPUT_MODELS[stage]
    return model(message=message, **{flag: flag_value})


def parse_stage_output(
    raw_text: str,
    stage: AgentType,
    fallback_complete: bool = False,
) -> ExtractionResult:
    """
    Parse raw oracle text into a validated stage output.

    Args:
        raw_text: Raw text of the oracle's last assistant message
        stage: Stage that produced the text (selects the output model)
        fallback_complete: Completion flag to synthesise when no tier succeeds

    Returns:
        ExtractionResult with the validated output, the parsed JSON object
        (empty on fallback) and the tier that succeeded. Never raises.
    """
    stage = AgentType(stage)
    text = _strip_markdown_fences(raw_text or "")

    parsed: Any = None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    else:
        output = _validate(parsed, stage)
        if output is not None:
            return ExtractionResult(output=output, data=parsed, tier="strict")

    if parsed is None:
        repaired = _repair_json(text)
        try:
            parsed = json.loads(repaired)
        except json.JSONDecodeError:
            parsed = None
        else:
            output = _validate(parsed, stage)
            if output is not None:
                log.warning(
                    "extraction_repaired",
                    stage=stage.value,
                    original_length=len(text),
                    repaired_length=len(repaired),
                )
                return ExtractionResult(output=output, data=parsed, tier="repaired")

    log.warning(
        "extraction_degraded",
        stage=stage.value,
        parsed_json=isinstance(parsed, dict),
        raw_length=len(raw_text or ""),
        raw_preview=raw_text or "",
        fallback_complete=fallback_complete,
    )
    return ExtractionResult(
        output=_fallback_output(raw_text or "", stage, fallback_complete, parsed),
        data={},
        tier="fallback",
    )
