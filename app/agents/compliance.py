# =============================================================================
# Compliance Analyst — Indian-Law Risk Analysis of a Contract
# =============================================================================
#
# Sends the extracted contract text, the names of documents it incorporates
# by reference, and knowledge-base snippets to the LLM with a fixed prompt,
# then turns the model's raw text into a validated ComplianceReport.
#
# PIPELINE:
#   build_analysis_prompt()      → bounded text + references + snippets
#   LLMProvider.complete()       → raw text (temperature 0.1, 8192 tokens)
#   parse_compliance_response()  → ComplianceReport or ParseError
#
# DESIGN DECISION: Schema-validated parsing, never partial data.
# The model may wrap its JSON in prose or code fences. We take the first
# decodable JSON object, validate it with pydantic, and reject the whole
# response if anything required is absent or out of range.
#
# DESIGN DECISION: The score is computed locally.
# The model is asked for a score, and it must send a valid one, but the
# stored indiaLawScore is always
#     max(0, 100 - 15·HIGH - 8·MEDIUM - 3·LOW)
# and riskSummary is recounted from the risk list. Same risks, same score,
# whichever model produced them.
# =============================================================================

from __future__ import annotations

import json
import logging
import uuid
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from pydantic import ValidationError

from app.exceptions import ParseError
from app.models.analysis import COMPLIANCE_CATEGORIES, ComplianceReport, Risk, RiskSummary
from app.services.llm import LLMProvider

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n[... document truncated]"

RISK_PENALTIES: dict[str, int] = {"HIGH": 15, "MEDIUM": 8, "LOW": 3}


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    'You are "IndiaLawAI", a legal compliance analyst specialising in Indian '
    "law (GST, labour codes, the Indian Contract Act and the Digital "
    "Personal Data Protection Act). You review contracts and report "
    "compliance risks with precise statutory citations. You always answer "
    "with a single JSON object and nothing else."
)

_CATEGORY_LIST = " | ".join(f'"{c}"' for c in COMPLIANCE_CATEGORIES)

_RESPONSE_SCHEMA = """{
  "indiaLawScore": number (0-100),
  "riskSummary": { "high": number, "medium": number, "low": number },
  "categoryScores": [
    { "category": %s, "score": number (0-100) }
  ],
  "risks": [
    {
      "level": "HIGH" | "MEDIUM" | "LOW",
      "category": string,
      "description": string,
      "citation": string (specific section and Act),
      "recommendation": string,
      "confidence": "HIGH" | "MEDIUM" | "LOW",
      "foundInReferencedDocs": boolean,
      "contextReasoning": string (why this is or is not a risk here)
    }
  ],
  "recommendations": [
    {
      "priority": "HIGH" | "MEDIUM" | "LOW",
      "clauseTitle": string,
      "currentClause": string | null,
      "recommendedClause": string (exact clause text to add),
      "legalBasis": string
    }
  ],
  "knowledgeBaseCitations": [string]
}""" % _CATEGORY_LIST

_INSTRUCTIONS = """\
1. Check whether each required clause exists in the main document OR in a
   referenced document. Flag a missing clause only if it is absent from both.
2. Reverse Charge Mechanism: consult Notification 13/2017 (Central Tax
   (Rate)). Works contracts are generally NOT under RCM; flag RCM only for
   notified categories.
3. Judge data protection by context: personal data processed → a missing
   DPDP clause is HIGH risk; no personal data → no risk or LOW.
4. Give a confidence (HIGH / MEDIUM / LOW) for every risk.
5. For every missing clause, give the EXACT clause text to add.
6. Score every one of these categories: %s.""" % ", ".join(COMPLIANCE_CATEGORIES)


def bound_text(text: str, char_budget: int) -> str:
    """Leading `char_budget` characters, with a marker if anything was cut."""
    if len(text) <= char_budget:
        return text
    return text[:char_budget] + TRUNCATION_MARKER


def build_analysis_prompt(
    text: str,
    referenced_documents: list[str],
    knowledge_context: list[str],
    char_budget: int = 100_000,
) -> str:
    references = (
        "\n".join(f"- {name}" for name in referenced_documents)
        if referenced_documents
        else "None detected"
    )
    knowledge = (
        "\n\n---\n\n".join(knowledge_context)
        if knowledge_context
        else "No additional context available"
    )

    return (
        "CONTEXT PROVIDED:\n"
        "1. Main Document Text:\n"
        f"---\n{bound_text(text, char_budget)}\n---\n\n"
        "2. Referenced Documents Mentioned:\n"
        f"{references}\n\n"
        "3. Relevant Legal Knowledge Base Context:\n"
        f"{knowledge}\n\n"
        "INSTRUCTIONS:\n"
        f"{_INSTRUCTIONS}\n\n"
        "Return valid JSON with exactly this structure:\n"
        f"{_RESPONSE_SCHEMA}\n\n"
        "Return ONLY the JSON object, no other text."
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def compute_compliance_score(risks: Iterable[Risk]) -> int:
    """
    100, minus 15 per HIGH, 8 per MEDIUM and 3 per LOW risk, floored at 0.

    >>> compute_compliance_score([])
    100
    """
    penalty = sum(RISK_PENALTIES[risk.level] for risk in risks)
    return max(0, 100 - penalty)


def summarise_risks(risks: Iterable[Risk]) -> RiskSummary:
    counts = Counter(risk.level for risk in risks)
    return RiskSummary(high=counts["HIGH"], medium=counts["MEDIUM"], low=counts["LOW"])


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _first_json_object(raw: str) -> dict | None:
    decoder = json.JSONDecoder()
    index = raw.find("{")
    while index != -1:
        try:
            value, _ = decoder.raw_decode(raw, index)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        index = raw.find("{", index + 1)
    return None


def parse_compliance_response(raw: str) -> ComplianceReport:
    """
    Turn the model's raw output into a validated ComplianceReport.

    Every risk receives a fresh id; score and risk summary are recomputed
    from the risk list.

    Raises:
        ParseError: no JSON object in `raw`, or the object does not match
            the report schema.
    """
    payload = _first_json_object(raw)
    if payload is None:
        raise ParseError("No JSON object found in model response")

    try:
        report = ComplianceReport.model_validate(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in error['loc']) or 'response'}: {error['msg']}"
            for error in exc.errors()[:5]
        )
        raise ParseError(f"Model response is not a valid compliance report ({problems})") from exc

    risks = [
        risk.model_copy(update={"id": f"risk-{uuid.uuid4().hex[:12]}"})
        for risk in report.risks
    ]
    return report.model_copy(update={
        "risks": risks,
        "risk_summary": summarise_risks(risks),
        "india_law_score": compute_compliance_score(risks),
    })


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


@dataclass
class ComplianceAnalysis:
    """A parsed report plus the generation metadata."""

    report: ComplianceReport
    model: str
    input_tokens: int
    output_tokens: int


class ComplianceAnalyzer:
    """Runs one compliance analysis against the configured LLM."""

    def __init__(
        self,
        llm: LLMProvider,
        temperature: float = 0.1,
        max_tokens: int = 8192,
        char_budget: int = 100_000,
    ) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._char_budget = char_budget

    async def analyze(
        self,
        text: str,
        referenced_documents: list[str],
        knowledge_context: list[str],
    ) -> ComplianceAnalysis:
        """
        Raises:
            ModelError: the provider call failed.
            ParseError: the response was not a valid report.
        """
        prompt = build_analysis_prompt(
            text, referenced_documents, knowledge_context, self._char_budget,
        )
        logger.info(
            "Requesting compliance analysis (%d chars, %d references, %d snippets)",
            min(len(text), self._char_budget),
            len(referenced_documents),
            len(knowledge_context),
        )

        response = await self._llm.complete(
            messages=[{"role": "user", "content": prompt}],
            system=SYSTEM_PROMPT,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        report = parse_compliance_response(response.content)
        logger.info(
            "Compliance analysis parsed: score=%d, risks=%d, model=%s, tokens=%d in / %d out",
            report.india_law_score, len(report.risks), response.model,
            response.input_tokens, response.output_tokens,
        )
        return ComplianceAnalysis(
            report=report,
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
