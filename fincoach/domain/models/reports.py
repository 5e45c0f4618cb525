"""Report artifacts.

These shapes are the persisted and exported formats; their camelCase JSON
must stay stable.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import ConfigDict, Field

from fincoach.domain.models.base import CamelModel
from fincoach.domain.models.financial import ValidationResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportSource(str, Enum):
    """Who authored the qualitative narrative."""

    AI = "ai"
    TEMPLATE = "template"


class QualitativeReport(CamelModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    key_insights: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utcnow)
    # Internal only; not part of the artifact
    source: Optional[ReportSource] = Field(default=None, exclude=True)


class MonthlyBudget(CamelModel):
    model_config = ConfigDict(frozen=True)

    income: float
    expenses: Dict[str, float] = Field(default_factory=dict)
    surplus: float
    savings_rate: float


class SavingsOpportunity(CamelModel):
    model_config = ConfigDict(frozen=True)

    category: str
    current_spend: float
    recommended_spend: float
    potential_saving: float
    suggestion: str


class ProjectionPoint(CamelModel):
    model_config = ConfigDict(frozen=True)

    savings: float
    net_worth: float


class Projections(CamelModel):
    model_config = ConfigDict(frozen=True)

    three_month: ProjectionPoint
    six_month: ProjectionPoint
    one_year: ProjectionPoint


class QuantitativeReport(CamelModel):
    model_config = ConfigDict(frozen=True)

    monthly_budget: MonthlyBudget
    savings_opportunities: List[SavingsOpportunity] = Field(default_factory=list)
    projections: Projections
    generated_at: datetime = Field(default_factory=_utcnow)


class ReportBundle(CamelModel):
    """Both reports plus the validation outcome of the extraction behind them."""

    qualitative: QualitativeReport
    quantitative: QuantitativeReport
    validation: ValidationResult
