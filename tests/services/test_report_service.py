"""Tests for report generation: quantitative math, templates and the LLM path."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from fincoach.core.config import BenchmarkConfig
from fincoach.core.exceptions import LLMTimeoutError, NotebookTerminalError
from fincoach.domain.models import (
    DebtItem,
    DebtSummary,
    ExpenseBreakdown,
    ExtractedFinancialData,
    FinancialGoals,
    FinancialIncome,
    QualitativeReport,
    ReportSource,
    UserProfile,
)
from fincoach.llm.client import LLMResponse
from fincoach.services.report_service import (
    ReportGenerator,
    build_quantitative_report,
    build_template_report,
    find_savings_opportunities,
    is_ready_for_report,
)

AI_REPORT = {
    "summary": "You have a healthy surplus.",
    "keyInsights": ["Rent is your largest cost."],
    "recommendations": ["Automate savings."],
    "actionItems": ["Open a high-yield savings account."],
}


def financial(income=None, **expenses):
    return ExtractedFinancialData(
        income=FinancialIncome(monthly=income),
        expenses=ExpenseBreakdown(**expenses),
    )


def llm_returning(content):
    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(content=content, model="test-model")
    return llm


class TestQuantitativeReport:
    def test_budget_and_savings_rate(self):
        report = build_quantitative_report(financial(5000, housing=1500, food=500, other=2000))
        budget = report.monthly_budget
        assert budget.income == 5000
        assert budget.surplus == 1000
        assert budget.savings_rate == 20.0
        assert budget.expenses == {"housing": 1500, "food": 500, "other": 2000}

    def test_zero_income_gives_zero_savings_rate(self):
        report = build_quantitative_report(financial(None, housing=800))
        assert report.monthly_budget.income == 0
        assert report.monthly_budget.savings_rate == 0
        assert report.monthly_budget.surplus == -800

    def test_projections_are_linear(self):
        report = build_quantitative_report(financial(4000, housing=3000))
        projections = report.projections
        assert projections.three_month.savings == 3000
        assert projections.six_month.savings == 6000
        assert projections.one_year.savings == 12_000
        assert projections.one_year.net_worth == 12_000

    def test_savings_rate_rounded_to_one_decimal(self):
        report = build_quantitative_report(financial(6000, housing=2840))
        assert report.monthly_budget.savings_rate == 52.7


class TestSavingsOpportunities:
    def test_housing_over_benchmark(self):
        opportunities = find_savings_opportunities(5000, {"housing": 2000}, BenchmarkConfig())
        assert len(opportunities) == 1
        housing = opportunities[0]
        assert housing.category == "housing"
        assert housing.recommended_spend == 1500
        assert housing.potential_saving == 500

    def test_spend_at_benchmark_is_not_flagged(self):
        assert find_savings_opportunities(6000, {"housing": 1800}, BenchmarkConfig()) == []

    def test_rent_scenario_boundary(self):
        monthly = round(100_000 / 12, 2)
        assert find_savings_opportunities(monthly, {"housing": 2000}, BenchmarkConfig()) == []

    def test_food_and_entertainment(self):
        opportunities = find_savings_opportunities(
            5000, {"food": 700, "entertainment": 400}, BenchmarkConfig()
        )
        by_category = {o.category: o for o in opportunities}
        assert by_category["food"].potential_saving == 100
        assert by_category["entertainment"].potential_saving == 50

    def test_subscriptions_use_flat_threshold(self):
        opportunities = find_savings_opportunities(0, {"subscriptions": 80}, BenchmarkConfig())
        assert [o.category for o in opportunities] == ["subscriptions"]
        assert opportunities[0].potential_saving == 30

    def test_no_income_skips_percentage_benchmarks(self):
        assert find_savings_opportunities(0, {"housing": 2000}, BenchmarkConfig()) == []

    def test_amounts_rounded_to_cents(self):
        opportunities = find_savings_opportunities(3333.33, {"housing": 1200}, BenchmarkConfig())
        assert opportunities[0].recommended_spend == 1000.0
        assert opportunities[0].potential_saving == 200.0


class TestTemplateReport:
    def test_template_uses_structured_data(self):
        data = ExtractedFinancialData(
            income=FinancialIncome(monthly=5000),
            expenses=ExpenseBreakdown(housing=2000, food=400),
            debts=DebtSummary(total=5000, items=[DebtItem(type="Credit Card", amount=5000, rate=22)]),
            goals=FinancialGoals(long_term=["Buy a house"]),
        )
        report = build_template_report(data, UserProfile(name="Sam"))

        assert report.source == ReportSource.TEMPLATE
        assert report.summary.startswith("Sam brings in about $5,000.00 a month")
        assert any("housing" in i for i in report.key_insights)
        assert any("credit card" in r for r in report.recommendations)
        assert any("emergency fund" in r.lower() for r in report.recommendations)
        assert report.action_items[-1] == "Schedule a follow-up session to review progress."

    def test_template_without_income(self):
        report = build_template_report(ExtractedFinancialData(), UserProfile())
        assert "no income figure" in report.summary
        assert report.summary.startswith("You ")


class TestReadiness:
    def test_needs_name_age_and_lifestyle(self):
        profile = UserProfile.model_validate(
            {
                "name": "Sam",
                "age": 30,
                "lifestyle": {
                    c: {"preference": "x"}
                    for c in ["housing", "food", "transport", "fitness", "entertainment", "travel"]
                },
            }
        )
        assert is_ready_for_report(profile)
        assert not is_ready_for_report(profile, min_categories=7)
        assert not is_ready_for_report(profile.model_copy(update={"age": None}))

    def test_empty_profile_not_ready(self):
        assert not is_ready_for_report(UserProfile())


class TestReportGenerator:
    @pytest.mark.asyncio
    async def test_template_when_no_client(self, notebook, coaching_transcript):
        for m in coaching_transcript:
            notebook.add_message(m.speaker, m.text)

        bundle = await ReportGenerator().generate_reports(notebook)

        assert bundle.qualitative.source == ReportSource.TEMPLATE
        assert bundle.quantitative.monthly_budget.income == 6000
        assert bundle.quantitative.savings_opportunities == []
        assert bundle.validation.is_valid
        assert notebook.has_reports()
        assert notebook.user_profile.name == "Jordan"
        assert not notebook.is_extraction_stale()

    @pytest.mark.asyncio
    async def test_ai_report_used_when_valid(self, notebook):
        notebook.add_message("user", "I make 60k a year and rent is 1500.")
        llm = llm_returning(json.dumps(AI_REPORT))

        bundle = await ReportGenerator(llm_client=llm).generate_reports(notebook)

        assert bundle.qualitative.source == ReportSource.AI
        assert bundle.qualitative.summary == AI_REPORT["summary"]
        prompt = llm.complete.call_args.args[0]
        assert "USER: I make 60k a year and rent is 1500." in prompt

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self, notebook):
        notebook.add_message("user", "I make 60k a year.")
        llm = llm_returning("Sorry, I can't help with that.")

        bundle = await ReportGenerator(llm_client=llm).generate_reports(notebook)

        assert bundle.qualitative.source == ReportSource.TEMPLATE

    @pytest.mark.asyncio
    async def test_client_error_falls_back(self, notebook):
        notebook.add_message("user", "I make 60k a year.")
        llm = AsyncMock()
        llm.complete.side_effect = LLMTimeoutError("timed out")

        bundle = await ReportGenerator(llm_client=llm).generate_reports(notebook)

        assert bundle.qualitative.source == ReportSource.TEMPLATE
        assert bundle.quantitative.monthly_budget.income == 5000

    @pytest.mark.asyncio
    async def test_prompt_failure_keeps_quantitative_report(self, notebook, monkeypatch):
        def broken_prompt(*args, **kwargs):
            raise KeyError("missing template field")

        monkeypatch.setattr(
            "fincoach.services.report_service.get_report_user_prompt", broken_prompt
        )
        notebook.add_message("user", "I make 60k a year.")
        llm = llm_returning(json.dumps(AI_REPORT))

        bundle = await ReportGenerator(llm_client=llm).generate_reports(notebook)

        assert bundle.qualitative.source == ReportSource.TEMPLATE
        assert bundle.quantitative.monthly_budget.income == 5000
        assert notebook.has_reports()
        llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parser_crash_falls_back(self, notebook, monkeypatch):
        def broken_parse(content):
            raise TypeError("unexpected payload")

        monkeypatch.setattr("fincoach.services.report_service.parse_report_response", broken_parse)
        notebook.add_message("user", "I make 60k a year.")

        bundle = await ReportGenerator(
            llm_client=llm_returning(json.dumps(AI_REPORT))
        ).generate_reports(notebook)

        assert bundle.qualitative.source == ReportSource.TEMPLATE
        assert bundle.quantitative.monthly_budget.income == 5000

    @pytest.mark.asyncio
    async def test_slow_client_times_out_to_template(self, notebook):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        llm = AsyncMock()
        llm.complete.side_effect = hang

        bundle = await ReportGenerator(llm_client=llm, llm_timeout=0.01).generate_reports(notebook)

        assert bundle.qualitative.source == ReportSource.TEMPLATE

    @pytest.mark.asyncio
    async def test_invalid_extraction_still_reports(self, notebook):
        notebook.add_message("user", "Rent is 1500.")
        bundle = await ReportGenerator().generate_reports(notebook)

        assert not bundle.validation.is_valid
        assert bundle.quantitative.monthly_budget.savings_rate == 0

    @pytest.mark.asyncio
    async def test_existing_reports_reused(self, notebook):
        notebook.add_message("user", "I make 60k a year.")
        generator = ReportGenerator()
        first = await generator.generate_reports(notebook)

        llm = llm_returning(json.dumps(AI_REPORT))
        generator.llm = llm
        again = await generator.generate_reports(notebook)

        assert again.qualitative == first.qualitative
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_regenerate(self, notebook):
        notebook.add_message("user", "I make 60k a year.")
        generator = ReportGenerator()
        await generator.generate_reports(notebook)

        generator.llm = llm_returning(json.dumps(AI_REPORT))
        bundle = await generator.generate_reports(notebook, regenerate=True)

        assert bundle.qualitative.summary == AI_REPORT["summary"]
        assert notebook.qualitative_report.summary == AI_REPORT["summary"]

    @pytest.mark.asyncio
    async def test_reports_discarded_if_notebook_ends(self, notebook):
        notebook.add_message("user", "I make 60k a year.")

        async def abandon_midway(*args, **kwargs):
            notebook.mark_abandoned()
            return LLMResponse(content=json.dumps(AI_REPORT), model="test-model")

        llm = AsyncMock()
        llm.complete.side_effect = abandon_midway

        with pytest.raises(NotebookTerminalError):
            await ReportGenerator(llm_client=llm).generate_reports(notebook)
        assert notebook.qualitative_report is None

    @pytest.mark.asyncio
    async def test_terminal_notebook_rejected(self, notebook):
        notebook.mark_completed()
        with pytest.raises(NotebookTerminalError):
            await ReportGenerator().generate_reports(notebook)

    def test_is_ready(self, notebook):
        assert not ReportGenerator().is_ready(notebook)

    def test_reports_are_immutable(self):
        report = QualitativeReport(summary="x")
        with pytest.raises(Exception):
            report.summary = "y"
