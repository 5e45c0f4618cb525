"""
Report generation for a coaching session.

Pipeline:
1. Re-extract financial data and profile from the full transcript
2. Attach both to the notebook
3. Build the qualitative and quantitative reports concurrently
4. Attach the reports, unless the notebook ended while they were built

The quantitative report is deterministic budget arithmetic. The
qualitative report asks the text-generation client first and falls back
to a local template on any failure, so callers always get a report.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

import structlog

from fincoach.core.config import BenchmarkConfig, ReportConfig, coaching_config, settings
from fincoach.core.exceptions import NotebookTerminalError
from fincoach.domain.models.financial import ExtractedFinancialData, ValidationResult
from fincoach.domain.models.notebook import SessionNotebook
from fincoach.domain.models.profile import UserProfile
from fincoach.domain.models.reports import (
    MonthlyBudget,
    ProjectionPoint,
    Projections,
    QualitativeReport,
    QuantitativeReport,
    ReportBundle,
    ReportSource,
    SavingsOpportunity,
)
from fincoach.llm.client import LLMClient
from fincoach.llm.prompts.report import (
    ParseFailed,
    get_report_system_prompt,
    get_report_user_prompt,
    parse_report_response,
)
from fincoach.services.extraction.data_extractor import DataExtractor, validate_data

log = structlog.get_logger(__name__)

PROJECTION_MONTHS = {"three_month": 3, "six_month": 6, "one_year": 12}

SUGGESTIONS = {
    "housing": "Housing is above 30% of income. Consider a roommate, renegotiating rent or a lower-cost area when the lease ends.",
    "food": "Food spending is above 12% of income. Planning meals and cooking at home a few more nights a week adds up quickly.",
    "entertainment": "Entertainment is above 7% of income. Set a monthly fun budget and look for free or low-cost alternatives.",
    "subscriptions": "Subscriptions total more than $50 a month. Review them and cancel the ones you rarely use.",
}


def is_ready_for_report(profile: UserProfile, min_categories: Optional[int] = None) -> bool:
    """Whether enough is known to make reports worthwhile.

    Needs name, age and at least ``min_categories`` populated lifestyle
    categories. This is a caller-side gate; the generator does not enforce it.
    """
    required = (
        min_categories
        if min_categories is not None
        else coaching_config.reports.min_lifestyle_categories
    )
    return (
        bool(profile.name)
        and profile.age is not None
        and len(profile.lifestyle.populated_categories()) >= required
    )


def build_quantitative_report(
    data: ExtractedFinancialData, benchmarks: Optional[BenchmarkConfig] = None
) -> QuantitativeReport:
    """
    Deterministic budget, savings opportunities and linear projections.

    Args:
        data: Extracted financial data
        benchmarks: Spending benchmarks (defaults to coaching_config)

    Returns:
        QuantitativeReport; a missing income gives a 0 savings rate
    """
    benchmarks = benchmarks or coaching_config.benchmarks
    income = data.income.monthly or 0.0
    expenses = data.expenses.by_category()
    surplus = round(income - data.expenses.total, 2)
    savings_rate = round(surplus / income * 100, 1) if income > 0 else 0.0

    return QuantitativeReport(
        monthly_budget=MonthlyBudget(
            income=income,
            expenses=expenses,
            surplus=surplus,
            savings_rate=savings_rate,
        ),
        savings_opportunities=find_savings_opportunities(income, expenses, benchmarks),
        projections=Projections(
            **{
                name: ProjectionPoint(
                    savings=round(surplus * months, 2), net_worth=round(surplus * months, 2)
                )
                for name, months in PROJECTION_MONTHS.items()
            }
        ),
    )


def find_savings_opportunities(
    income: float, expenses: Dict[str, float], benchmarks: BenchmarkConfig
) -> List[SavingsOpportunity]:
    """Categories whose spend exceeds their benchmark.

    Percentage benchmarks need a known income; subscriptions use a flat
    threshold regardless.
    """
    limits: List[Tuple[str, float]] = []
    if income > 0:
        limits.extend(
            [
                ("housing", income * benchmarks.housing),
                ("food", income * benchmarks.food),
                ("entertainment", income * benchmarks.entertainment),
            ]
        )
    limits.append(("subscriptions", benchmarks.subscriptions_flat))

    opportunities = []
    for category, limit in limits:
        spend = expenses.get(category)
        if spend is None or spend <= limit:
            continue
        recommended = round(limit, 2)
        opportunities.append(
            SavingsOpportunity(
                category=category,
                current_spend=spend,
                recommended_spend=recommended,
                potential_saving=round(spend - recommended, 2),
                suggestion=SUGGESTIONS[category],
            )
        )
    return opportunities


def build_template_report(
    data: ExtractedFinancialData,
    profile: UserProfile,
    quantitative: Optional[QuantitativeReport] = None,
) -> QualitativeReport:
    """Local qualitative report built only from structured data."""
    quantitative = quantitative or build_quantitative_report(data)
    budget = quantitative.monthly_budget
    who = profile.name or "You"

    if budget.income > 0:
        summary = (
            f"{who} brings in about ${budget.income:,.2f} a month against "
            f"${data.expenses.total:,.2f} of tracked expenses, leaving "
            f"${budget.surplus:,.2f} ({budget.savings_rate}% of income)."
        )
    else:
        summary = (
            f"{who} shared lifestyle details, but no income figure came up in this "
            "session, so the budget below is incomplete."
        )

    insights: List[str] = []
    if budget.expenses:
        top = max(budget.expenses, key=budget.expenses.get)
        insights.append(
            f"Your largest expense category is {top} at ${budget.expenses[top]:,.2f} a month."
        )
    for category in profile.lifestyle.populated_categories()[:3]:
        entry = profile.lifestyle.entry(category)
        insights.append(f"{category.capitalize()}: {entry.preference}.")
    if data.debts.total:
        insights.append(f"You carry about ${data.debts.total:,.2f} in debt.")
    if budget.income > 0 and budget.surplus < 0:
        insights.append("Spending currently exceeds income.")

    recommendations = [o.suggestion for o in quantitative.savings_opportunities]
    if "Build emergency fund" not in data.goals.short_term:
        recommendations.append("Build an emergency fund covering three to six months of expenses.")
    high_rate = [d for d in data.debts.items if d.rate is not None and d.rate >= 10]
    if high_rate:
        recommendations.append(
            f"Prioritise paying down your {high_rate[0].type.lower()} balance; its interest rate is high."
        )
    for goal in data.goals.long_term[:2]:
        recommendations.append(f"Set a monthly target toward your goal: {goal.lower()}.")

    actions = ["Track every expense for the next 30 days."]
    if budget.surplus > 0:
        actions.append(
            f"Set up an automatic transfer of ${budget.surplus * 0.5:,.2f} a month into savings."
        )
    if quantitative.savings_opportunities:
        actions.append(
            f"Review your {quantitative.savings_opportunities[0].category} spending this week."
        )
    actions.append("Schedule a follow-up session to review progress.")

    return QualitativeReport(
        summary=summary,
        key_insights=insights,
        recommendations=recommendations,
        action_items=actions,
        source=ReportSource.TEMPLATE,
    )


class ReportGenerator:
    """Drives extraction and builds both reports for a notebook."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        extractor: Optional[DataExtractor] = None,
        benchmarks: Optional[BenchmarkConfig] = None,
        report_config: Optional[ReportConfig] = None,
        llm_timeout: Optional[float] = None,
    ):
        """
        Args:
            llm_client: Text-generation client; None means template-only
            extractor: Transcript extractor
            benchmarks: Spending benchmarks (defaults to coaching_config)
            report_config: Report behaviour (defaults to coaching_config)
            llm_timeout: Overall budget for the text-generation call,
                retries included
        """
        self.llm = llm_client
        self.extractor = extractor or DataExtractor()
        self.benchmarks = benchmarks or coaching_config.benchmarks
        self.report_config = report_config or coaching_config.reports
        self.llm_timeout = llm_timeout or settings.report_timeout * 2

    def is_ready(self, notebook: SessionNotebook) -> bool:
        return is_ready_for_report(
            notebook.user_profile, self.report_config.min_lifestyle_categories
        )

    async def generate_reports(
        self, notebook: SessionNotebook, regenerate: bool = False
    ) -> ReportBundle:
        """
        Extract, attach and report.

        Args:
            notebook: Active notebook
            regenerate: Rebuild reports even when both already exist

        Returns:
            ReportBundle with both reports and the validation outcome

        Raises:
            NotebookTerminalError: If the notebook is not active, or ended
                while the reports were being built (they are discarded)
        """
        bound_log = log.bind(notebook_id=notebook.id)
        extraction = self.extractor.extract(notebook.messages)
        validation = validate_data(extraction.financial_data)

        if notebook.has_reports() and not regenerate:
            bound_log.info("reports_reused")
            return ReportBundle(
                qualitative=notebook.qualitative_report,
                quantitative=notebook.quantitative_report,
                validation=validation,
            )

        notebook.set_extracted_data(extraction.financial_data)
        notebook.update_profile(extraction.user_profile)
        profile = notebook.user_profile
        data = extraction.financial_data

        if not validation.is_valid:
            bound_log.warning("extraction_invalid", errors=validation.errors)

        bound_log.info("report_generation_started", message_count=len(notebook.messages))
        qualitative, quantitative = await asyncio.gather(
            self._qualitative(notebook, data, profile),
            self._quantitative(data),
        )

        if not notebook.is_active:
            bound_log.warning("reports_discarded", status=notebook.status.value)
            raise NotebookTerminalError(
                f"Notebook {notebook.id} ended while reports were generated; results discarded"
            )

        notebook.attach_qualitative_report(qualitative)
        notebook.attach_quantitative_report(quantitative)
        bound_log.info(
            "report_generation_complete",
            qualitative_source=qualitative.source.value if qualitative.source else None,
            savings_rate=quantitative.monthly_budget.savings_rate,
            opportunities=len(quantitative.savings_opportunities),
        )
        return ReportBundle(
            qualitative=qualitative, quantitative=quantitative, validation=validation
        )

    async def _quantitative(self, data: ExtractedFinancialData) -> QuantitativeReport:
        return build_quantitative_report(data, self.benchmarks)

    async def _qualitative(
        self,
        notebook: SessionNotebook,
        data: ExtractedFinancialData,
        profile: UserProfile,
    ) -> QualitativeReport:
        if self.llm is None:
            return self._fallback(data, profile, reason="no_client")

        try:
            prompt = get_report_user_prompt(notebook.messages, data, profile)
            response = await asyncio.wait_for(
                self.llm.complete(prompt, system=get_report_system_prompt()),
                timeout=self.llm_timeout,
            )
            parsed = parse_report_response(response.content)
        except Exception as e:
            # The quantitative half never depends on this path succeeding
            log.warning("qualitative_report_failed", error=str(e), exc_info=e)
            return self._fallback(data, profile, reason=type(e).__name__, error=str(e))

        if isinstance(parsed, ParseFailed):
            return self._fallback(
                data, profile, reason="parse_failed", error=parsed.reason
            )
        return parsed.report

    def _fallback(
        self,
        data: ExtractedFinancialData,
        profile: UserProfile,
        reason: str,
        error: Optional[str] = None,
    ) -> QualitativeReport:
        log.info("qualitative_report_fallback", reason=reason, error=error)
        return build_template_report(
            data, profile, build_quantitative_report(data, self.benchmarks)
        )
