# =============================================================================
# Unit Tests — Compliance Analysis (prompt, parsing, scoring)
# =============================================================================
#
# No API keys needed: the analyzer runs against a fake LLM provider.
# =============================================================================

from __future__ import annotations

import json
import logging

import pytest
from fakes import FakeLLM, _run, make_report

from app.agents.compliance import (
    TRUNCATION_MARKER,
    ComplianceAnalyzer,
    bound_text,
    build_analysis_prompt,
    compute_compliance_score,
    parse_compliance_response,
    summarise_risks,
)
from app.exceptions import ModelError, ParseError
from app.models.analysis import Risk


def _risk(level: str) -> Risk:
    return Risk(level=level, category="GST", description="d", citation="c", recommendation="r")


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class TestScoring:
    """100 - 15·HIGH - 8·MEDIUM - 3·LOW, floored at 0."""

    def test_no_risks_is_perfect(self):
        assert compute_compliance_score([]) == 100

    def test_penalties(self):
        risks = [_risk("HIGH"), _risk("MEDIUM"), _risk("LOW"), _risk("LOW")]
        assert compute_compliance_score(risks) == 100 - 15 - 8 - 3 - 3

    def test_floor_at_zero(self):
        assert compute_compliance_score([_risk("HIGH")] * 10) == 0

    def test_summary_counts(self):
        summary = summarise_risks([_risk("HIGH"), _risk("HIGH"), _risk("LOW")])
        assert (summary.high, summary.medium, summary.low) == (2, 0, 1)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseComplianceResponse:

    def test_json_wrapped_in_prose(self):
        raw = "Here is the analysis:\n```json\n" + json.dumps(make_report()) + "\n```\nDone."
        report = parse_compliance_response(raw)
        assert len(report.risks) == 3
        assert {c.category for c in report.category_scores} == {
            "GST", "Labor", "Contract Validity", "Data Protection",
        }

    def test_score_and_summary_are_recomputed(self):
        report = parse_compliance_response(json.dumps(make_report(("HIGH", "HIGH"), score=99)))
        assert report.india_law_score == 70
        assert report.risk_summary.high == 2
        assert report.risk_summary.medium == 0
        assert sum(
            [report.risk_summary.high, report.risk_summary.medium, report.risk_summary.low]
        ) == len(report.risks)

    def test_each_risk_gets_a_unique_id(self):
        report = parse_compliance_response(json.dumps(make_report(("LOW",) * 4)))
        ids = [r.id for r in report.risks]
        assert all(i.startswith("risk-") for i in ids)
        assert len(set(ids)) == 4

    def test_lowercase_levels_are_normalised(self):
        payload = make_report(("high",))
        report = parse_compliance_response(json.dumps(payload))
        assert report.risks[0].level == "HIGH"

    def test_no_json_raises(self):
        with pytest.raises(ParseError, match="No JSON object"):
            parse_compliance_response("I cannot analyse this document.")

    def test_missing_category_raises(self):
        payload = make_report()
        payload["categoryScores"] = payload["categoryScores"][:3]
        with pytest.raises(ParseError, match="Data Protection"):
            parse_compliance_response(json.dumps(payload))

    def test_missing_required_field_raises(self):
        payload = make_report()
        del payload["recommendations"]
        with pytest.raises(ParseError):
            parse_compliance_response(json.dumps(payload))

    def test_out_of_range_score_raises(self):
        with pytest.raises(ParseError):
            parse_compliance_response(json.dumps(make_report(score=150)))

    def test_unknown_risk_level_raises(self):
        with pytest.raises(ParseError):
            parse_compliance_response(json.dumps(make_report(("CRITICAL",))))

    def test_skips_braces_that_are_not_json(self):
        raw = "Note {not json} then " + json.dumps(make_report())
        assert len(parse_compliance_response(raw).risks) == 3

    def test_fractional_category_score_is_rounded(self):
        payload = make_report()
        payload["categoryScores"][0]["score"] = 72.5
        payload["categoryScores"][1]["score"] = 80.6
        report = parse_compliance_response(json.dumps(payload))
        assert [c.score for c in report.category_scores[:2]] == [72, 81]


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestPrompt:

    def test_text_within_budget_is_untouched(self):
        assert bound_text("short", 100) == "short"

    def test_text_over_budget_is_truncated_with_marker(self):
        bounded = bound_text("a" * 200, 100)
        assert bounded == "a" * 100 + TRUNCATION_MARKER

    def test_prompt_lists_references_and_knowledge(self):
        prompt = build_analysis_prompt(
            "Contract text", ["GCC", "Safety Manual"], ["[CGST Act]\nSection 9"],
        )
        assert "- GCC\n- Safety Manual" in prompt
        assert "[CGST Act]\nSection 9" in prompt
        assert "Contract text" in prompt

    def test_prompt_placeholders_when_empty(self):
        prompt = build_analysis_prompt("Contract text", [], [])
        assert "None detected" in prompt
        assert "No additional context available" in prompt


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class TestComplianceAnalyzer:

    def test_analyze_uses_low_temperature_and_bounded_text(self):
        llm = FakeLLM()
        analyzer = ComplianceAnalyzer(llm, char_budget=50)
        result = _run(analyzer.analyze("x" * 500, [], []))

        call = llm.complete_calls[0]
        assert call["temperature"] == 0.1
        assert call["max_tokens"] == 8192
        assert "x" * 50 + TRUNCATION_MARKER in call["messages"][0]["content"]
        assert "x" * 51 not in call["messages"][0]["content"]
        assert result.model == "fake-model"
        assert result.report.india_law_score == 100 - 15 - 8 - 3

    def test_model_error_propagates(self):
        analyzer = ComplianceAnalyzer(FakeLLM(complete_error=ModelError("overloaded")))
        with pytest.raises(ModelError):
            _run(analyzer.analyze("text", [], []))

    def test_malformed_output_is_parse_error(self):
        analyzer = ComplianceAnalyzer(FakeLLM(completion="not json at all"))
        with pytest.raises(ParseError):
            _run(analyzer.analyze("text", [], []))

    def test_token_usage_is_logged(self, caplog):
        analyzer = ComplianceAnalyzer(FakeLLM())
        with caplog.at_level(logging.INFO, logger="app.agents.compliance"):
            _run(analyzer.analyze("text", [], []))
        assert "tokens=100 in / 50 out" in caplog.text
