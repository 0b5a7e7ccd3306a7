# =============================================================================
# Unit Tests — Compliance Report PDF
# =============================================================================
#
# Renders reports from in-memory stand-ins for the ORM rows; no database.
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace

from fakes import make_report

from app.services.report import render_compliance_report, to_latin1


def _document(name="vendor_agreement.pdf"):
    return SimpleNamespace(id="doc1", name=name)


def _analysis(**overrides):
    report = make_report()
    values = {
        "id": "an1",
        "created_at": datetime(2025, 3, 14, tzinfo=UTC),
        "india_law_score": 74,
        "risk_summary": {"high": 1, "medium": 1, "low": 1},
        "category_scores": report["categoryScores"],
        "risks": report["risks"],
        "recommendations": report["recommendations"],
        "knowledge_base_citations": report["knowledgeBaseCitations"],
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestToLatin1:

    def test_typographic_characters_mapped(self):
        assert to_latin1("“Clause” – 5 … ‘GST’") == '"Clause" - 5 ... \'GST\''

    def test_rupee_sign(self):
        assert to_latin1("₹5,00,000") == "Rs. 5,00,000"

    def test_devanagari_replaced_not_raised(self):
        result = to_latin1("अनुबंध Agreement")
        assert result.endswith("Agreement")
        result.encode("latin-1")

    def test_none_is_empty(self):
        assert to_latin1(None) == ""


class TestRenderComplianceReport:

    def test_produces_pdf_bytes(self):
        data = render_compliance_report(_document(), _analysis())
        assert isinstance(data, bytes)
        assert data.startswith(b"%PDF")
        assert len(data) > 1000

    def test_without_citations_has_fewer_pages(self):
        with_citations = render_compliance_report(_document(), _analysis())
        without = render_compliance_report(_document(), _analysis(knowledge_base_citations=[]))
        # The citations page is skipped entirely
        assert len(without) < len(with_citations)

    def test_empty_analysis_still_renders(self):
        analysis = _analysis(
            india_law_score=100,
            risk_summary={"high": 0, "medium": 0, "low": 0},
            risks=[],
            recommendations=[],
            knowledge_base_citations=[],
        )
        assert render_compliance_report(_document(), analysis).startswith(b"%PDF")

    def test_non_latin_content_renders(self):
        analysis = _analysis(risks=[{
            "level": "HIGH",
            "category": "GST",
            "description": "जीएसटी खंड अनुपस्थित है – ₹10,000 penalty",
            "citation": "धारा 9(3)",
            "recommendation": "Add “GST” clause",
        }])
        data = render_compliance_report(_document("अनुबंध.pdf"), analysis)
        assert data.startswith(b"%PDF")
