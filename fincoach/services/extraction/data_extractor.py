"""
Transcript extraction: structured financial data and user profile.

Pipeline:
1. Join user-authored messages into one document (one line per turn)
2. Income: annual, then monthly, biweekly, weekly, hourly; first hit wins
3. Debts: nearest amount per debt type; an explicit total wins over the sum
4. Expenses: nearest amount per category, mapped into budget groups
5. Goals: keyword presence, plus an explicit monthly savings target
6. Profile: name, age, location, occupation and lifestyle keywords

Extraction is document-level and re-derives everything from the full
transcript, so the same messages always produce the same result. An amount
claimed by income or a debt is not reused as an expense.
"""

import re
from typing import Iterable, List, Optional, Pattern, Set, Tuple

import structlog

from fincoach.domain.models.conversation import ConversationMessage, Speaker
from fincoach.domain.models.financial import (
    DebtItem,
    DebtSummary,
    ExpenseBreakdown,
    ExtractedFinancialData,
    ExtractionResult,
    FinancialGoals,
    FinancialIncome,
    ValidationResult,
)
from fincoach.domain.models.profile import (
    LIFESTYLE_CATEGORIES,
    IncomeInfo,
    LifestyleEntry,
    LifestyleProfile,
    UserProfile,
)
from fincoach.services.extraction import patterns as p

log = structlog.get_logger(__name__)

LOW_MONTHLY_INCOME = 500
HIGH_MONTHLY_INCOME = 100_000


class DataExtractor:
    """Pattern-based extractor over the conversation transcript."""

    def extract(self, messages: Iterable[ConversationMessage]) -> ExtractionResult:
        """
        Extract financial data and a user profile from a transcript.

        Args:
            messages: Conversation turns in order; only user turns are read

        Returns:
            ExtractionResult with financial_data and user_profile. An empty
            transcript yields empty (but fully shaped) objects.
        """
        text = "\n".join(m.text for m in messages if m.speaker == Speaker.USER)
        claimed: Set[int] = set()

        income, stated_income = self._extract_income(text, claimed)
        debts = self._extract_debts(text, claimed)
        expenses = self._extract_expenses(text, claimed)
        goals = self._extract_goals(text)

        financial_data = ExtractedFinancialData(
            income=income, expenses=expenses, goals=goals, debts=debts
        )
        user_profile = self._extract_profile(text, expenses, stated_income)

        log.debug(
            "extraction_complete",
            text_length=len(text),
            has_income=income.monthly is not None,
            expense_categories=len(expenses.by_category()),
            debt_items=len(debts.items),
            lifestyle_categories=len(user_profile.lifestyle.populated_categories()),
        )
        return ExtractionResult(financial_data=financial_data, user_profile=user_profile)

    def validate_data(self, data: ExtractedFinancialData) -> ValidationResult:
        return validate_data(data)

    # ------------------------------------------------------------------
    # Income
    # ------------------------------------------------------------------

    def _extract_income(
        self, text: str, claimed: Set[int]
    ) -> Tuple[FinancialIncome, Optional[IncomeInfo]]:
        for frequency, frequency_patterns in p.INCOME_PATTERNS:
            for pattern in frequency_patterns:
                for match in pattern.finditer(text):
                    if p.has_spending_intent(text, match.start()):
                        continue
                    if p.names_expense(text, match.start("amount")):
                        continue
                    amount = p.normalize_amount(match.group("amount"))
                    if amount <= 0:
                        continue

                    claimed.add(match.start("amount"))
                    monthly = round(p.convert_to_monthly(amount, frequency), 2)
                    annual = amount if frequency == "annual" else round(monthly * 12, 2)
                    return (
                        FinancialIncome(monthly=monthly, annual=annual, source=frequency),
                        IncomeInfo(amount=amount, frequency=frequency),
                    )
        return FinancialIncome(), None

    # ------------------------------------------------------------------
    # Expenses and debts
    # ------------------------------------------------------------------

    def _nearest_pairing(
        self, text: str, pairings: List[Pattern[str]], claimed: Set[int]
    ) -> Optional[re.Match]:
        """Keyword/amount match with the shortest gap, ignoring savings statements."""
        best: Optional[Tuple[int, int, re.Match]] = None
        for pattern in pairings:
            for match in pattern.finditer(text):
                if match.start("amount") in claimed:
                    continue
                if p.has_savings_intent(text, match.start()):
                    continue
                if match.start("kw") < match.start("amount"):
                    gap = match.start("amount") - match.end("kw")
                else:
                    gap = match.start("kw") - match.end("amount")
                candidate = (gap, match.start(), match)
                if best is None or candidate[:2] < best[:2]:
                    best = candidate
        return best[2] if best else None

    def _extract_expenses(self, text: str, claimed: Set[int]) -> ExpenseBreakdown:
        expenses = ExpenseBreakdown()
        for category, pairings in p.EXPENSE_PATTERNS.items():
            match = self._nearest_pairing(text, pairings, claimed)
            if match is None:
                continue
            amount = p.normalize_amount(match.group("amount"))
            if amount <= 0:
                continue

            claimed.add(match.start("amount"))
            hint = p.EXPENSE_FREQUENCY_HINT.match(text, match.end("amount"))
            if hint:
                unit = (hint.group("unit") or hint.group("adverb")).lower()
                amount = p.convert_to_monthly(amount, _FREQUENCY_WORDS[unit])

            expenses.add(p.CATEGORY_GROUPS[category], round(amount, 2))
        return expenses

    def _extract_debts(self, text: str, claimed: Set[int]) -> DebtSummary:
        items: List[DebtItem] = []
        for debt_type, pairings in p.DEBT_PATTERNS.items():
            match = self._nearest_pairing(text, pairings, claimed)
            if match is None:
                continue
            amount = p.normalize_amount(match.group("amount"))
            if amount <= 0:
                continue

            claimed.add(match.start("amount"))
            rate_match = p.INTEREST_RATE.search(p.sentence_at(text, match.start()))
            items.append(
                DebtItem(
                    type=p.DEBT_TYPES[debt_type],
                    amount=amount,
                    rate=float(rate_match.group("rate")) if rate_match else None,
                )
            )

        explicit = self._nearest_pairing(text, p.TOTAL_DEBT_PATTERNS, claimed)
        if explicit is not None and p.normalize_amount(explicit.group("amount")) > 0:
            claimed.add(explicit.start("amount"))
            total: Optional[float] = p.normalize_amount(explicit.group("amount"))
        elif items:
            total = sum(item.amount for item in items)
        else:
            total = None
        return DebtSummary(total=total, items=items)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def _extract_goals(self, text: str) -> FinancialGoals:
        goals = FinancialGoals()
        for label, pattern in p.SHORT_TERM_GOALS:
            if pattern.search(text):
                goals.short_term.append(label)
        for label, pattern in p.LONG_TERM_GOALS:
            if pattern.search(text):
                goals.long_term.append(label)

        for pattern in p.SAVINGS_TARGET_PATTERNS:
            match = pattern.search(text)
            if match:
                amount = p.normalize_amount(match.group("amount"))
                if amount > 0:
                    goals.savings = amount
                    break
        return goals

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def _extract_profile(
        self, text: str, expenses: ExpenseBreakdown, stated_income: Optional[IncomeInfo]
    ) -> UserProfile:
        return UserProfile(
            name=_first_name(text),
            age=_first_age(text),
            location=_first_group(text, p.LOCATION_PATTERNS, "location"),
            occupation=_first_group(text, p.OCCUPATION_PATTERNS, "occupation"),
            income=stated_income,
            lifestyle=self._extract_lifestyle(text, expenses),
        )

    def _extract_lifestyle(self, text: str, expenses: ExpenseBreakdown) -> LifestyleProfile:
        slots = {}
        for category in LIFESTYLE_CATEGORIES:
            cost = getattr(expenses, category)
            entry = LifestyleEntry(cost=cost)
            for label, pattern in p.LIFESTYLE_PATTERNS.get(category, []):
                match = pattern.search(text)
                if match:
                    entry = LifestyleEntry(
                        preference=label,
                        details=p.sentence_at(text, match.start()),
                        cost=cost,
                    )
                    break
            slots[category] = entry
        return LifestyleProfile(**slots)


_FREQUENCY_WORDS = {
    "year": "annual",
    "yr": "annual",
    "annually": "annual",
    "yearly": "annual",
    "week": "weekly",
    "wk": "weekly",
    "weekly": "weekly",
    "day": "daily",
    "daily": "daily",
}


def _first_name(text: str) -> Optional[str]:
    for pattern in p.NAME_PATTERNS:
        for match in pattern.finditer(text):
            name = match.group("name")
            if name not in p.NAME_STOP_WORDS:
                return name
    return None


def _first_age(text: str) -> Optional[int]:
    for pattern in p.AGE_PATTERNS:
        for match in pattern.finditer(text):
            age = int(match.group("age"))
            if p.MIN_AGE <= age <= p.MAX_AGE:
                return age
    return None


def _first_group(text: str, candidates: List[Pattern[str]], group: str) -> Optional[str]:
    for pattern in candidates:
        match = pattern.search(text)
        if match:
            value = match.group(group).strip(" ,.-")
            if value:
                return value
    return None


def validate_data(data: ExtractedFinancialData) -> ValidationResult:
    """
    Check extracted data for missing or implausible figures.

    Missing income is the one error; implausible income and overspending
    are warnings. The input is never modified.
    """
    errors: List[str] = []
    warnings: List[str] = []

    monthly = data.income.monthly
    if monthly is None and data.income.annual:
        monthly = data.income.annual / 12

    if not monthly:
        errors.append("No income information found.")
    else:
        if monthly < LOW_MONTHLY_INCOME:
            warnings.append(
                f"Monthly income of ${monthly:,.2f} seems unusually low; please verify."
            )
        elif monthly > HIGH_MONTHLY_INCOME:
            warnings.append(
                f"Monthly income of ${monthly:,.2f} seems unusually high; please verify."
            )

        total = data.expenses.total
        if total > monthly:
            warnings.append(
                f"Monthly expenses (${total:,.2f}) exceed monthly income (${monthly:,.2f})."
            )

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
