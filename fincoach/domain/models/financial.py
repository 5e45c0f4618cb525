"""Structured financial data derived from the transcript."""

from typing import List, Optional

from pydantic import Field, computed_field

from fincoach.domain.models.base import CamelModel
from fincoach.domain.models.profile import UserProfile

EXPENSE_CATEGORIES: List[str] = [
    "housing",
    "food",
    "transport",
    "fitness",
    "entertainment",
    "subscriptions",
    "travel",
    "other",
]


class FinancialIncome(CamelModel):
    monthly: Optional[float] = None
    annual: Optional[float] = None
    source: Optional[str] = Field(
        default=None, description="Frequency the income was stated in"
    )


class ExpenseBreakdown(CamelModel):
    """Monthly spend per category.

    ``total`` is computed from the categories, so it can never disagree
    with them.
    """

    housing: Optional[float] = None
    food: Optional[float] = None
    transport: Optional[float] = None
    fitness: Optional[float] = None
    entertainment: Optional[float] = None
    subscriptions: Optional[float] = None
    travel: Optional[float] = None
    other: Optional[float] = None

    @computed_field
    @property
    def total(self) -> float:
        return sum(self.by_category().values())

    def by_category(self) -> dict:
        """Non-empty categories as a plain mapping."""
        return {
            category: getattr(self, category)
            for category in EXPENSE_CATEGORIES
            if getattr(self, category) is not None
        }

    def add(self, category: str, amount: float) -> None:
        current = getattr(self, category) or 0.0
        setattr(self, category, current + amount)


class FinancialGoals(CamelModel):
    short_term: List[str] = Field(default_factory=list)
    long_term: List[str] = Field(default_factory=list)
    savings: Optional[float] = Field(
        default=None, description="Stated monthly savings target"
    )


class DebtItem(CamelModel):
    type: str
    amount: float
    rate: Optional[float] = None


class DebtSummary(CamelModel):
    total: Optional[float] = None
    items: List[DebtItem] = Field(default_factory=list)


class ExtractedFinancialData(CamelModel):
    income: FinancialIncome = Field(default_factory=FinancialIncome)
    expenses: ExpenseBreakdown = Field(default_factory=ExpenseBreakdown)
    goals: FinancialGoals = Field(default_factory=FinancialGoals)
    debts: DebtSummary = Field(default_factory=DebtSummary)


class ValidationResult(CamelModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ExtractionResult(CamelModel):
    financial_data: ExtractedFinancialData
    user_profile: UserProfile
