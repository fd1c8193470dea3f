"""Unit tests for metrics aggregators."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from qjournal.libraries.performance.cache import CachedXirrSolver, LRUCache
from qjournal.libraries.performance.models import BenchmarkComparison, PerformanceSummary, RiskSummary
from qjournal.services.analytics.aggregators import (
    HOLDING_DAY_RANGES,
    PNL_RANGES,
    POSITION_SIZE_RANGES,
    build_analytics_report,
    build_benchmark_comparison,
    build_capital_curve,
    build_monthly_performance,
    build_performance_summary,
    build_risk_summary,
    build_setup_performance,
    build_top_performers,
    build_trade_distribution,
    calculate_open_heat,
)
from qjournal.services.journal.accounting import expand_cash_basis
from qjournal.services.journal.models import CapitalChange
from qjournal.services.journal.normalizer import normalize_trades
from qjournal.services.journal.sizing import PortfolioSizeResolver
from qjournal.services.pipeline.models import PipelineRequest
from qjournal.services.pipeline.service import TradePipeline
from qjournal.system.config import AnalyticsConfig

REFERENCE = date(2024, 3, 1)
RESOLVER = PortfolioSizeResolver(Decimal("100000"))


@pytest.fixture
def journal(make_trade):
    """Two winners, one loser and one open position, normalized against 100,000."""
    trades = [
        make_trade(
            "w1",
            name="acme",
            setup="Breakout",
            stop_loss=Decimal("95"),
            plan_followed=True,
            exits=[("110", "10", date(2024, 1, 20))],
        ),
        make_trade(
            "l1",
            name="globex",
            setup="Breakout",
            trade_date=date(2024, 1, 15),
            stop_loss=Decimal("90"),
            plan_followed=False,
            exits=[("95", "10", date(2024, 1, 18))],
        ),
        make_trade(
            "w2",
            name="initech",
            entry_price="50",
            quantity="20",
            trade_date=date(2024, 2, 1),
            exits=[("60", "20", date(2024, 2, 11))],
        ),
        make_trade(
            "o1",
            name="hooli",
            setup="Pullback",
            entry_price="200",
            trade_date=date(2024, 2, 5),
            stop_loss=Decimal("190"),
            cmp=Decimal("210"),
        ),
    ]
    return normalize_trades(trades, RESOLVER, REFERENCE)


@pytest.fixture
def split_exit_trade(make_trade):
    """One trade closed in two exits across two months."""
    trade = make_trade("s1", name="split", exits=[("110", "4", date(2024, 1, 20)), ("120", "6", date(2024, 2, 5))])
    return normalize_trades([trade], RESOLVER, REFERENCE)


class TestOpenHeat:
    """Test calculate_open_heat()."""

    def test_closed_trade_has_no_heat(self, journal):
        """Test closed positions carry no risk."""
        assert calculate_open_heat(journal[0]) == Decimal("0")

    def test_open_trade(self, journal):
        """Test risk to the stop as a share of capital."""
        assert calculate_open_heat(journal[-1]) == Decimal("0.1")

    def test_higher_stop_wins(self, make_trade):
        """Test the higher of stop loss and trailing stop is used."""
        trade = make_trade("h", entry_price="200", stop_loss=Decimal("180"), trailing_stop=Decimal("190"))

        [normalized] = normalize_trades([trade], RESOLVER, REFERENCE)

        assert calculate_open_heat(normalized) == Decimal("0.1")

    @pytest.mark.parametrize("stop,expected", [("210", Decimal("0.1")), ("190", Decimal("0"))])
    def test_short_side(self, make_trade, stop, expected):
        """Test a short is at risk only with a stop above the entry."""
        trade = make_trade("s", entry_price="200", direction="sell", stop_loss=Decimal(stop))

        [normalized] = normalize_trades([trade], RESOLVER, REFERENCE)

        assert calculate_open_heat(normalized) == expected


class TestPerformanceSummary:
    """Test build_performance_summary()."""

    def test_empty(self):
        """Test no trades gives the zero summary."""
        assert build_performance_summary([]) == PerformanceSummary()

    def test_trade_statistics(self, journal):
        """Test realized statistics skip the open position."""
        summary = build_performance_summary(journal)

        assert summary.total_trades == 4
        assert summary.open_positions == 1
        assert summary.win_rate == Decimal("66.67")
        assert summary.avg_gain == Decimal("150.00")
        assert summary.avg_loss == Decimal("-50.00")
        assert summary.avg_pos_move == Decimal("15.00")
        assert summary.avg_neg_move == Decimal("-5.00")
        assert summary.expectancy == Decimal("83.33")
        assert summary.profit_factor == Decimal("6.00")
        assert (summary.max_win_streak, summary.max_loss_streak) == (1, 1)
        assert summary.total_realized_pnl == Decimal("250.00")

    def test_portfolio_statistics(self, journal):
        """Test sizes, holding period, impact and heat average over every trade."""
        summary = build_performance_summary(journal)

        assert summary.avg_position_size == Decimal("1.25")
        assert summary.avg_holding_days == Decimal("12.00")
        assert summary.plan_followed == Decimal("50.00")
        assert summary.realized_pf_impact == Decimal("0.25")
        assert summary.unrealized_pf_impact == Decimal("0.10")
        assert summary.open_heat == Decimal("0.10")

    def test_cash_basis_counts_journal_records(self, split_exit_trade):
        """Test exit rows of one trade count as one trade."""
        rows = expand_cash_basis(split_exit_trade)

        summary = build_performance_summary(rows, cash_basis=True)

        assert len(rows) == 2
        assert summary.total_trades == 1
        assert summary.total_realized_pnl == Decimal("160.00")
        assert summary.realized_pf_impact == Decimal("0.16")

    def test_failure_returns_zero_summary(self):
        """Test an aggregator failure yields the default shape."""
        assert build_performance_summary([object()]) == PerformanceSummary()


class TestCapitalCurveAndRisk:
    """Test build_capital_curve() and build_risk_summary()."""

    def test_capital_curve(self, journal):
        """Test realized P&L moves the curve on its accounting date."""
        curve = build_capital_curve(journal)

        assert curve == [
            (date(2024, 1, 10), Decimal("100100")),
            (date(2024, 1, 15), Decimal("100050")),
            (date(2024, 2, 1), Decimal("100250")),
        ]

    def test_risk_summary(self, journal):
        """Test growth-index return and drawdown."""
        risk = build_risk_summary(journal)

        assert risk.total_return_pct == Decimal("0.25")
        assert risk.max_drawdown_pct == Decimal("0.05")
        assert not risk.money_weighted_return.is_determined

    def test_deposits_are_not_performance(self, journal):
        """Test a deposit moves the curve but not the return."""
        changes = [CapitalChange(date=date(2024, 2, 15), amount=Decimal("10000"))]

        curve = build_capital_curve(journal, changes)
        risk = build_risk_summary(journal, changes)

        assert curve[-1] == (date(2024, 2, 15), Decimal("110250"))
        assert risk.total_return_pct == Decimal("0.25")

    def test_money_weighted_return(self, journal):
        """Test the solver is used when given."""
        risk = build_risk_summary(journal, xirr_solver=CachedXirrSolver(LRUCache(8)))

        assert risk.money_weighted_return.is_determined
        assert risk.money_weighted_return.rate > 0

    def test_empty(self):
        """Test no realized P&L gives the zero summary."""
        assert build_risk_summary([]) == RiskSummary()
        assert build_capital_curve([]) == []


class TestSetupPerformance:
    """Test build_setup_performance()."""

    def test_grouped_by_setup(self, journal):
        """Test blank setups group as Unknown and best P&L comes first."""
        setups = build_setup_performance(journal)

        assert [s.setup for s in setups] == ["Unknown", "Breakout", "Pullback"]
        breakout = setups[1]
        assert breakout.total_trades == 2
        assert breakout.win_rate == Decimal("50.00")
        assert breakout.total_pnl == Decimal("50.00")
        assert breakout.total_pf_impact == Decimal("0.05")
        assert setups[2].win_rate == Decimal("0")


class TestTradeDistribution:
    """Test build_trade_distribution()."""

    def test_empty_keeps_buckets(self):
        """Test fixed buckets are present with zero counts."""
        distribution = build_trade_distribution([])

        assert len(distribution.pnl_pct) == len(PNL_RANGES) == 8
        assert len(distribution.holding_days) == len(HOLDING_DAY_RANGES)
        assert len(distribution.position_size) == len(POSITION_SIZE_RANGES)
        assert all(bucket.count == 0 for bucket in distribution.pnl_pct)
        assert distribution.setup == []

    def test_bucket_counts(self, journal):
        """Test values land in their ranges."""
        distribution = build_trade_distribution(journal)

        pnl = {b.label: b.count for b in distribution.pnl_pct}
        assert pnl["-10% to -5%"] == 1
        assert pnl["2% to 5%"] == 1
        assert pnl["5% to 10%"] == 1
        assert pnl["> 10%"] == 1

        holding = {b.label: b.count for b in distribution.holding_days}
        assert holding == {"≤ 1 day": 0, "2-7 days": 1, "1-4 weeks": 3, "1-3 months": 0, "> 3 months": 0}

        assert distribution.position_size[0].count == 4
        assert distribution.position_size[0].percentage == Decimal("100.00")

    def test_undated_exit_lands_in_first_holding_bucket(self, make_trade):
        """Test a 0-day holding counts in the shortest holding bucket."""
        trades = normalize_trades([make_trade("u1", exits=[("110", "10", None)])], RESOLVER, REFERENCE)
        assert trades[0].holding_days == 0

        distribution = build_trade_distribution(trades)

        assert distribution.holding_days[0].label == "≤ 1 day"
        assert distribution.holding_days[0].count == 1

    def test_setup_counts(self, journal):
        """Test setups ordered by count then name."""
        distribution = build_trade_distribution(journal)

        assert [(b.label, b.count) for b in distribution.setup] == [("Breakout", 2), ("Pullback", 1), ("Unknown", 1)]
        assert distribution.setup[0].percentage == Decimal("50.00")


class TestBenchmarkComparison:
    """Test build_benchmark_comparison()."""

    def test_outperformance_statistics(self):
        """Test period counts, tracking error and information ratio."""
        comparison = build_benchmark_comparison(
            [Decimal("2"), Decimal("1"), Decimal("-1")],
            [Decimal("1"), Decimal("1"), Decimal("1")],
        )

        assert [p.period for p in comparison.periods] == ["1", "2", "3"]
        assert [p.outperformance for p in comparison.periods] == [Decimal("1"), Decimal("0"), Decimal("-2")]
        assert comparison.outperforming_periods == 1
        assert comparison.underperforming_periods == 1
        assert comparison.avg_outperformance == Decimal("-0.33")
        assert comparison.tracking_error == Decimal("1.25")
        assert comparison.information_ratio == Decimal("-0.27")
        assert comparison.beta == Decimal("0")
        assert comparison.alpha == Decimal("0.67")

    def test_beta(self):
        """Test a portfolio moving twice the index has beta 2."""
        comparison = build_benchmark_comparison(
            [Decimal("2"), Decimal("4"), Decimal("6")],
            [Decimal("1"), Decimal("2"), Decimal("3")],
            labels=["Jan", "Feb", "Mar"],
        )

        assert comparison.beta == Decimal("2.0000")
        assert comparison.alpha == Decimal("0")
        assert comparison.periods[0].period == "Jan"

    def test_constant_outperformance(self):
        """Test a constant outperformance has no tracking error and a zero information ratio."""
        comparison = build_benchmark_comparison([Decimal("0.3")] * 3, [Decimal("0.2")] * 3)

        assert comparison.avg_outperformance == Decimal("0.10")
        assert comparison.tracking_error == Decimal("0")
        assert comparison.information_ratio == Decimal("0")
        assert comparison.beta == Decimal("0")

    def test_empty(self):
        """Test no overlapping periods."""
        assert build_benchmark_comparison([], [Decimal("1")]) == BenchmarkComparison()


class TestMonthlyPerformance:
    """Test build_monthly_performance()."""

    def test_accrual_months(self, journal):
        """Test trades group by entry month."""
        months = build_monthly_performance(journal, resolver=RESOLVER)

        assert [(m.month, m.year, m.trades) for m in months] == [("Jan", 2024, 2), ("Feb", 2024, 2)]
        january, february = months
        assert january.win_rate == Decimal("50.00")
        assert january.avg_gain == Decimal("10.00")
        assert january.avg_loss == Decimal("-5.00")
        assert january.pnl == Decimal("50.00")
        assert january.starting_capital == Decimal("100000")
        assert january.pnl_pct == Decimal("0.05")
        assert february.pnl == Decimal("200.00")
        assert february.pnl_pct == Decimal("0.20")

    def test_cash_basis_months(self, split_exit_trade):
        """Test exit rows count in the month they close."""
        months = build_monthly_performance(expand_cash_basis(split_exit_trade), cash_basis=True, resolver=RESOLVER)

        assert [(m.month, m.pnl) for m in months] == [("Jan", Decimal("40.00")), ("Feb", Decimal("120.00"))]

    def test_same_month_different_years(self, make_trade):
        """Test months are keyed by year as well."""
        trades = normalize_trades(
            [make_trade("a", trade_date=date(2024, 1, 5)), make_trade("b", trade_date=date(2025, 1, 5))],
            RESOLVER,
            REFERENCE,
        )

        months = build_monthly_performance(trades)

        assert [(m.month, m.year) for m in months] == [("Jan", 2024), ("Jan", 2025)]
        assert months[0].starting_capital == Decimal("0")


class TestTopPerformers:
    """Test build_top_performers()."""

    @pytest.mark.parametrize(
        "metric,highest,highest_value,lowest,lowest_value",
        [
            ("stock_move", "w2", Decimal("20.00"), "l1", Decimal("-5.00")),
            ("pnl", "w2", Decimal("200.00"), "l1", Decimal("-50.00")),
            ("pf_impact", "w2", Decimal("0.20"), "l1", Decimal("-0.05")),
            ("reward_risk", "w1", Decimal("2.00"), "l1", Decimal("-0.50")),
        ],
    )
    def test_metrics(self, journal, metric, highest, highest_value, lowest, lowest_value):
        """Test best and worst trade per metric."""
        top = build_top_performers(journal, metric)

        assert (top.highest_trade_id, top.highest_value) == (highest, highest_value)
        assert (top.lowest_trade_id, top.lowest_value) == (lowest, lowest_value)
        assert top.has_multiple_trades

    def test_names_are_normalized(self, journal):
        """Test names come from the normalized record."""
        assert build_top_performers(journal).highest_name == "INITECH"

    def test_single_trade(self, split_exit_trade):
        """Test exit rows of one record are merged into one candidate."""
        top = build_top_performers(expand_cash_basis(split_exit_trade), "pnl", cash_basis=True)

        assert top.highest_trade_id == top.lowest_trade_id == "s1"
        assert top.highest_value == Decimal("160.00")
        assert not top.has_multiple_trades

    def test_empty(self):
        """Test no trades."""
        top = build_top_performers([], "pnl")

        assert top.highest_trade_id is None
        assert not top.has_multiple_trades

    def test_unknown_metric(self, journal):
        """Test unknown metrics raise ValueError."""
        with pytest.raises(ValueError, match="Unknown top performer metric"):
            build_top_performers(journal, "volume")


class TestAnalyticsReport:
    """Test build_analytics_report()."""

    def test_report_sections(self, journal):
        """Test every section is built from the same trades."""
        report = build_analytics_report(journal, config=AnalyticsConfig())

        assert report.performance.total_trades == 4
        assert len(report.capital_curve) == 3
        assert [t.metric for t in report.top_performers] == ["stock_move", "pf_impact", "reward_risk", "pnl"]
        assert [m.month for m in report.monthly] == ["Jan", "Feb"]
        assert report.benchmark is None

    def test_benchmark_needs_both_series(self, journal):
        """Test the comparison is built only with both return series."""
        report = build_analytics_report(
            journal,
            config=AnalyticsConfig(),
            portfolio_returns=[Decimal("1")],
            index_returns=[Decimal("0.5")],
        )

        assert report.benchmark is not None
        assert report.benchmark.outperforming_periods == 1


class TestPipelineToReport:
    """Test journals run through the pipeline and then the full report."""

    @staticmethod
    def _run(trades):
        pipeline = TradePipeline(config=AnalyticsConfig())
        result = asyncio.run(pipeline.run(PipelineRequest(trades=trades, reference_date=REFERENCE)))
        assert result.succeeded
        return build_analytics_report(result.trades, config=AnalyticsConfig())

    def test_three_closed_trades(self, make_trade):
        """Test two winners and a loser at 100,000 capital."""
        # Arrange
        trades = [
            make_trade("t1", trade_no="1", exits=[("110", "10", date(2024, 1, 20))]),
            make_trade("t2", trade_no="2", trade_date=date(2024, 1, 15), exits=[("95", "10", date(2024, 1, 18))]),
            make_trade("t3", trade_no="3", trade_date=date(2024, 2, 1), exits=[("120", "10", date(2024, 2, 10))]),
        ]

        # Act
        report = self._run(trades)

        # Assert
        assert report.performance.total_trades == 3
        assert report.performance.win_rate == Decimal("66.67")
        assert report.performance.total_realized_pnl == Decimal("250.00")
        assert [value for _, value in report.capital_curve] == [
            Decimal("100100"),
            Decimal("100050"),
            Decimal("100250"),
        ]
        assert report.risk.max_drawdown_pct == Decimal("0.05")
        for buckets in (
            report.distribution.pnl_pct,
            report.distribution.holding_days,
            report.distribution.position_size,
            report.distribution.setup,
        ):
            assert sum(b.count for b in buckets) == 3
            assert abs(sum(b.percentage for b in buckets) - Decimal("100")) <= Decimal("0.05")

    def test_empty_journal(self):
        """Test every section keeps its zero shape."""
        report = self._run([])

        assert report.performance == PerformanceSummary()
        assert report.risk == RiskSummary()
        assert not report.risk.money_weighted_return.is_determined
        assert report.capital_curve == []
        assert report.setups == []
        assert report.monthly == []
        assert report.benchmark is None
        assert [len(b) for b in (report.distribution.pnl_pct, report.distribution.holding_days)] == [
            len(PNL_RANGES),
            len(HOLDING_DAY_RANGES),
        ]
        assert all(
            b.count == 0 and b.percentage == 0
            for b in report.distribution.pnl_pct + report.distribution.holding_days + report.distribution.position_size
        )
        assert report.distribution.setup == []
        assert all(t.highest_trade_id is None and t.highest_value == 0 for t in report.top_performers)
