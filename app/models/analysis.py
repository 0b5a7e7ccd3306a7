# =============================================================================
# Compliance Report Schema
# =============================================================================
#
# The typed shape of one compliance analysis. Used in two places:
#   1. app.agents.compliance validates the model's raw JSON against it
#      (anything partially shaped is rejected with ParseError)
#   2. app.models.responses nests it in the API responses
#
# Field names are camelCase on the wire (indiaLawScore, categoryScores),
# snake_case in Python. Analysis rows store the camelCase form.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Fixed scoring categories, in display order
COMPLIANCE_CATEGORIES: tuple[str, ...] = (
    "GST",
    "Labor",
    "Contract Validity",
    "Data Protection",
)

Level = Literal["HIGH", "MEDIUM", "LOW"]


class CamelModel(BaseModel):
    """Base for wire models: camelCase aliases, readable from ORM objects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RiskSummary(CamelModel):
    high: int = Field(ge=0)
    medium: int = Field(ge=0)
    low: int = Field(ge=0)


class CategoryScore(CamelModel):
    category: str = Field(min_length=1)
    score: int = Field(ge=0, le=100)

    @field_validator("score", mode="before")
    @classmethod
    def round_score(cls, value: object) -> object:
        # The prompt asks for a number; models sometimes answer 72.5
        if isinstance(value, float):
            return round(value)
        return value


class Risk(CamelModel):
    """One identified compliance issue."""

    # Assigned on ingestion; the model never supplies one
    id: str = ""
    level: Level
    category: str = Field(min_length=1)
    description: str
    citation: str
    recommendation: str
    confidence: Level | None = None
    found_in_referenced_docs: bool | None = None
    context_reasoning: str | None = None

    @field_validator("level", "confidence", mode="before")
    @classmethod
    def normalise_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


class Recommendation(CamelModel):
    priority: Level
    clause_title: str
    current_clause: str | None = None
    recommended_clause: str
    legal_basis: str

    @field_validator("priority", mode="before")
    @classmethod
    def normalise_priority(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


class ComplianceReport(CamelModel):
    """A validated compliance analysis, as returned by the model."""

    india_law_score: float = Field(ge=0, le=100)
    risk_summary: RiskSummary
    category_scores: list[CategoryScore]
    risks: list[Risk]
    recommendations: list[Recommendation]
    knowledge_base_citations: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _covers_all_categories(self) -> "ComplianceReport":
        present = {score.category.strip().lower() for score in self.category_scores}
        missing = [c for c in COMPLIANCE_CATEGORIES if c.lower() not in present]
        if missing:
            raise ValueError(f"categoryScores missing: {', '.join(missing)}")
        return self
