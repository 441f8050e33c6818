"""Tests for the tiered extraction parser."""

import json

import pytest

from assessment.domain.models.stage_outputs import (
    AnalyzerOutput,
    AssessorOutput,
    QualifierOutput,
)
from assessment.domain.models.stages import AgentType
from assessment.llm.parser import (
    _escape_control_chars_in_strings,
    _repair_json,
    _strip_markdown_fences,
    parse_stage_output,
)


class TestStrictTier:
    """Valid JSON bypasses every repair path."""

    def test_valid_json_returns_exact_structure(self):
        payload = {
            "message": "How many people work there?",
            "employee_count": "12",
            "revenue_band": "",
            "business_type": "restaurant",
            "location": "",
            "industry": "hospitality",
            "needs_more_info": True,
        }
        result = parse_stage_output(json.dumps(payload), AgentType.QUALIFIER)

        assert result.tier == "strict"
        assert result.data == payload
        assert isinstance(result.output, QualifierOutput)
        assert result.output.employee_count == "12"

    def test_markdown_fences_are_stripped(self):
        raw = '```json\n{"message": "hi", "assessment_complete": false}\n```'
        result = parse_stage_output(raw, AgentType.ASSESSOR)

        assert result.tier == "strict"
        assert isinstance(result.output, AssessorOutput)
        assert result.output.message == "hi"

    def test_numbers_coerced_to_strings(self):
        raw = json.dumps({"message": "ok", "needs_more_info": True, "employee_count": 12})
        result = parse_stage_output(raw, AgentType.QUALIFIER)

        assert result.tier == "strict"
        assert result.output.employee_count == "12"

    def test_null_fields_become_empty(self):
        raw = json.dumps(
            {"message": "ok", "needs_more_info": True, "location": None, "industry": None}
        )
        result = parse_stage_output(raw, AgentType.QUALIFIER)

        assert result.output.location == ""
        assert result.output.industry == ""

    def test_unknown_keys_ignored(self):
        raw = json.dumps(
            {"message": "ok", "needs_more_info": False, "solopreneurBonus": 1}
        )
        result = parse_stage_output(raw, AgentType.QUALIFIER)

        assert result.tier == "strict"
        assert result.output.is_complete is True


class TestRepairTier:
    """Common oracle JSON defects are repaired."""

    def test_raw_newline_inside_string_is_repaired(self):
        raw = '{"message": "Line one\nLine two", "needs_more_info": true}'
        result = parse_stage_output(raw, AgentType.QUALIFIER)

        assert result.tier == "repaired"
        assert result.output.message == "Line one\nLine two"
        assert result.output.needs_more_info is True

    def test_raw_tab_inside_string_is_repaired(self):
        raw = '{"message": "a\tb", "analysis_complete": true, "overall_score": 6.5}'
        result = parse_stage_output(raw, AgentType.ANALYZER)

        assert result.tier == "repaired"
        assert isinstance(result.output, AnalyzerOutput)
        assert result.output.overall_score == 6.5

    def test_trailing_comma_is_repaired(self):
        raw = '{"message": "done", "assessment_complete": true,}'
        result = parse_stage_output(raw, AgentType.ASSESSOR)

        assert result.tier == "repaired"
        assert result.output.assessment_complete is True

    def test_structural_whitespace_left_alone(self):
        text = '{\n  "message": "x\ny"\n}'
        escaped = _escape_control_chars_in_strings(text)
        assert escaped == '{\n  "message": "x\\ny"\n}'

    def test_escaped_quote_does_not_end_string(self):
        text = '{"message": "say \\"hi\\"\nnow"}'
        escaped = _escape_control_chars_in_strings(text)
        assert json.loads(escaped)["message"] == 'say "hi"\nnow'

    def test_repair_drops_trailing_commas_in_arrays(self):
        assert json.loads(_repair_json('{"a": [1, 2,]}')) == {"a": [1, 2]}

    def test_strip_fences_plain(self):
        assert _strip_markdown_fences("```\n{}\n```") == "{}"


class TestFallbackTier:
    """Fallback never raises and defaults to not complete."""

    @pytest.mark.parametrize(
        "stage", [AgentType.QUALIFIER, AgentType.ASSESSOR, AgentType.ANALYZER]
    )
    def test_plain_text_falls_back_not_complete(self, stage):
        result = parse_stage_output("Sorry, could you repeat that?", stage)

        assert result.tier == "fallback"
        assert result.data == {}
        assert result.output.message == "Sorry, could you repeat that?"
        assert result.output.is_complete is False

    def test_qualifier_fallback_needs_more_info(self):
        result = parse_stage_output("not json", AgentType.QUALIFIER)
        assert result.output.needs_more_info is True
        assert result.output.employee_count == ""

    def test_fallback_complete_is_configurable(self):
        result = parse_stage_output(
            "Analysis text only", AgentType.ANALYZER, fallback_complete=True
        )
        assert result.tier == "fallback"
        assert result.output.analysis_complete is True

    def test_qualifier_fallback_complete_inverts_flag(self):
        result = parse_stage_output("??", AgentType.QUALIFIER, fallback_complete=True)
        assert result.output.needs_more_info is False
        assert result.output.is_complete is True

    def test_valid_json_missing_flag_uses_json_message(self):
        raw = json.dumps({"message": "What is your revenue?"})
        result = parse_stage_output(raw, AgentType.QUALIFIER)

        assert result.tier == "fallback"
        assert result.output.message == "What is your revenue?"

    def test_out_of_range_score_falls_back(self):
        raw = json.dumps(
            {"message": "m", "analysis_complete": True, "data_score": 42}
        )
        result = parse_stage_output(raw, AgentType.ANALYZER)

        assert result.tier == "fallback"
        assert result.output.analysis_complete is False

    def test_unrepairable_json_falls_back(self):
        raw = '{"message": "unterminated'
        result = parse_stage_output(raw, AgentType.ASSESSOR)

        assert result.tier == "fallback"
        assert result.output.message == raw

    def test_empty_text_falls_back(self):
        result = parse_stage_output("", AgentType.ASSESSOR)

        assert result.tier == "fallback"
        assert result.output.message == ""
        assert result.output.collected_responses == {}

    def test_json_array_falls_back(self):
        result = parse_stage_output("[1, 2, 3]", AgentType.QUALIFIER)
        assert result.tier == "fallback"
