# =============================================================================
# Compliance Report — PDF Rendering with fpdf2
# =============================================================================
#
# Renders one Analysis of one Document as a multi-page PDF:
#
#   Page 1   Cover: title, document name, generation date
#   Page 2   Executive summary: IndiaLaw score, risk counts
#   Page 3   Scores by category
#   Page 4   Identified risks, numbered, each with its citation
#   Page 5   Detailed recommendations (current → recommended clause)
#   Page 6   Legal citations referenced (only if there are any)
#
# DESIGN DECISION: Core fonts only (Helvetica).
# fpdf2's built-in fonts are latin-1. Report text from the model can contain
# curly quotes, the rupee sign or Devanagari; those are mapped to ASCII or
# replaced with "?" instead of failing the whole report.
# =============================================================================

from __future__ import annotations

import logging
import unicodedata

from fpdf import FPDF

from app.db.models import Analysis, Document

logger = logging.getLogger(__name__)

REPORT_TITLE = "IndiaLawAI Compliance Report"

_REPLACEMENTS = {
    "‘": "'", "’": "'", "“": '"', "”": '"',
    "–": "-", "—": "-", "•": "-", "…": "...",
    "₹": "Rs. ", "\u00a0": " ",
}

# Risk level → heading colour (RGB)
_LEVEL_COLOURS = {
    "HIGH": (185, 28, 28),
    "MEDIUM": (180, 83, 9),
    "LOW": (21, 128, 61),
}


def to_latin1(text: object) -> str:
    """Make arbitrary text printable with the core PDF fonts."""
    value = "" if text is None else str(text)
    for src, dst in _REPLACEMENTS.items():
        value = value.replace(src, dst)
    value = unicodedata.normalize("NFKC", value)
    return value.encode("latin-1", errors="replace").decode("latin-1")


class ComplianceReportPDF(FPDF):
    """PDF with a running header and page-numbered footer."""

    def __init__(self, document_name: str) -> None:
        super().__init__()
        self.document_name = to_latin1(document_name)

    def header(self):
        if self.page_no() == 1:
            return
        self.set_font("Helvetica", "B", 9)
        self.set_text_color(100, 100, 100)
        self.cell(0, 8, f"{REPORT_TITLE}  |  {self.document_name}", align="C",
                  new_x="LMARGIN", new_y="NEXT")
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(
            0, 10,
            f"Page {self.page_no()}/{{nb}} | Automated analysis, not legal advice",
            align="C",
        )

    def section_title(self, title: str):
        self.set_font("Helvetica", "B", 18)
        self.set_text_color(0, 0, 0)
        self.cell(0, 12, to_latin1(title), new_x="LMARGIN", new_y="NEXT")
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)

    def item_title(self, title: str, colour: tuple[int, int, int] = (0, 0, 0)):
        self.set_font("Helvetica", "B", 12)
        self.set_text_color(*colour)
        self.multi_cell(0, 7, to_latin1(title), new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(0, 0, 0)

    def body_text(self, text: str, style: str = "", size: int = 10,
                  colour: tuple[int, int, int] = (30, 30, 30)):
        self.set_font("Helvetica", style, size)
        self.set_text_color(*colour)
        self.multi_cell(0, 5.5, to_latin1(text), new_x="LMARGIN", new_y="NEXT")
        self.ln(1)

    def score_row(self, label: str, score: object):
        self.set_font("Helvetica", "", 11)
        self.set_text_color(30, 30, 30)
        self.cell(120, 8, to_latin1(label), border=1)
        self.cell(0, 8, f"{score}%", border=1, align="C", new_x="LMARGIN", new_y="NEXT")


def render_compliance_report(document: Document, analysis: Analysis) -> bytes:
    """Render the analysis as PDF bytes."""
    pdf = ComplianceReportPDF(document.name)
    pdf.alias_nb_pages()
    pdf.set_auto_page_break(auto=True, margin=20)

    # =========================================================================
    # Cover
    # =========================================================================
    pdf.add_page()
    pdf.ln(50)
    pdf.set_font("Helvetica", "B", 24)
    pdf.cell(0, 15, REPORT_TITLE, align="C", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)
    pdf.set_font("Helvetica", "", 16)
    pdf.multi_cell(0, 10, f"Document: {to_latin1(document.name)}", align="C",
                   new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 12)
    pdf.cell(0, 10, f"Generated: {analysis.created_at:%d %B %Y}", align="C",
             new_x="LMARGIN", new_y="NEXT")

    # =========================================================================
    # Executive summary
    # =========================================================================
    summary = analysis.risk_summary or {}
    pdf.add_page()
    pdf.section_title("Executive Summary")
    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, f"IndiaLaw Score: {analysis.india_law_score}/100",
             new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)
    pdf.body_text("Risk Summary:", style="B", size=12)
    pdf.body_text(f"- High Risks: {summary.get('high', 0)}", size=12)
    pdf.body_text(f"- Medium Risks: {summary.get('medium', 0)}", size=12)
    pdf.body_text(f"- Low Risks: {summary.get('low', 0)}", size=12)

    # =========================================================================
    # Category scores
    # =========================================================================
    pdf.add_page()
    pdf.section_title("Compliance Scores by Category")
    for category in analysis.category_scores:
        pdf.score_row(category.get("category", ""), category.get("score", 0))

    # =========================================================================
    # Risks
    # =========================================================================
    pdf.add_page()
    pdf.section_title("Identified Risks & Recommendations")
    if not analysis.risks:
        pdf.body_text("No compliance risks were identified.")
    for index, risk in enumerate(analysis.risks, start=1):
        level = str(risk.get("level", "")).upper()
        pdf.item_title(
            f"{index}. {level} Risk - {risk.get('category', '')}",
            colour=_LEVEL_COLOURS.get(level, (0, 0, 0)),
        )
        pdf.body_text(f"Description: {risk.get('description', '')}", size=11)
        pdf.body_text(f"Citation: {risk.get('citation', '')}", style="I", size=10)
        pdf.body_text(f"Recommendation: {risk.get('recommendation', '')}", size=11)
        pdf.ln(3)

    # =========================================================================
    # Recommendations
    # =========================================================================
    pdf.add_page()
    pdf.section_title("Detailed Recommendations")
    if not analysis.recommendations:
        pdf.body_text("No clause changes were recommended.")
    for index, rec in enumerate(analysis.recommendations, start=1):
        pdf.item_title(f"{index}. {rec.get('clauseTitle', '')}")
        if rec.get("currentClause"):
            pdf.body_text(f"Current: {rec['currentClause']}", colour=(185, 28, 28))
        pdf.body_text(f"Recommended: {rec.get('recommendedClause', '')}", colour=(21, 128, 61))
        pdf.body_text(f"Legal Basis: {rec.get('legalBasis', '')}", style="I", size=9)
        pdf.ln(3)

    # =========================================================================
    # Legal citations
    # =========================================================================
    if analysis.knowledge_base_citations:
        pdf.add_page()
        pdf.section_title("Legal Citations Referenced")
        for citation in analysis.knowledge_base_citations:
            pdf.body_text(f"- {citation}")

    data = bytes(pdf.output())
    logger.info(
        "Rendered report for analysis %s (%d pages, %d bytes)",
        analysis.id, pdf.page_no(), len(data),
    )
    return data
