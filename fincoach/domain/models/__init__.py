"""Domain models package."""

from .conversation import (
    ConversationMessage,
    ConversationTopic,
    Speaker,
    TherapistNote,
    next_topic,
)
from .profile import IncomeInfo, LifestyleEntry, LifestyleProfile, UserProfile
from .financial import (
    DebtItem,
    DebtSummary,
    ExpenseBreakdown,
    ExtractedFinancialData,
    ExtractionResult,
    FinancialGoals,
    FinancialIncome,
    ValidationResult,
)
from .reports import (
    MonthlyBudget,
    ProjectionPoint,
    Projections,
    QualitativeReport,
    QuantitativeReport,
    ReportBundle,
    ReportSource,
    SavingsOpportunity,
)
from .notebook import NotebookStatus, NotebookSummary, SessionNotebook, SessionNotebookData
from .registry import SessionMessage, SessionRegistryEntry

__all__ = [
    "ConversationMessage",
    "ConversationTopic",
    "Speaker",
    "TherapistNote",
    "next_topic",
    "IncomeInfo",
    "LifestyleEntry",
    "LifestyleProfile",
    "UserProfile",
    "DebtItem",
    "DebtSummary",
    "ExpenseBreakdown",
    "ExtractedFinancialData",
    "ExtractionResult",
    "FinancialGoals",
    "FinancialIncome",
    "ValidationResult",
    "MonthlyBudget",
    "ProjectionPoint",
    "Projections",
    "QualitativeReport",
    "QuantitativeReport",
    "ReportBundle",
    "ReportSource",
    "SavingsOpportunity",
    "NotebookStatus",
    "NotebookSummary",
    "SessionNotebook",
    "SessionNotebookData",
    "SessionMessage",
    "SessionRegistryEntry",
]
