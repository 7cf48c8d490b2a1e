from __future__ import annotations

from datetime import date
from decimal import Decimal

from tradebook.accounting import calculate_pnl, classify_outcomes
from tradebook.accounting.outcomes import summarize_results
from tradebook.models import Transaction


def txn(action, qty, price, fee="0", day=1, instrument="AAPL", id=None) -> Transaction:
    return Transaction.create(
        "ACC1", date(2024, 1, day), instrument, action, Decimal(qty), Decimal(price),
        brokerage=Decimal(fee), id=id,
    )


class TestSummarizeResults:
    def test_win_and_loss(self) -> None:
        stats = summarize_results([Decimal("120.5"), Decimal("-40")])
        assert stats.wins == 1
        assert stats.losses == 1
        assert stats.win_rate == Decimal("50")
        assert stats.avg_win == Decimal("120.5")
        assert stats.avg_loss == Decimal("40")
        assert stats.profit_factor == Decimal("3.0125")

    def test_no_losses_gives_zero_profit_factor(self) -> None:
        stats = summarize_results([Decimal("10"), Decimal("30")])
        assert stats.win_rate == Decimal("100")
        assert stats.avg_win == Decimal("20")
        assert stats.avg_loss == Decimal(0)
        assert stats.profit_factor == Decimal(0)

    def test_empty(self) -> None:
        stats = summarize_results([])
        assert stats.win_rate == 0
        assert stats.closed_trades == 0

    def test_breakeven_excluded_from_rate(self) -> None:
        stats = summarize_results([Decimal("0"), Decimal("5"), Decimal("-5")])
        assert stats.breakeven == 1
        assert stats.closed_trades == 3
        assert stats.win_rate == Decimal("50")

    def test_to_dict(self) -> None:
        data = summarize_results([Decimal("120.5"), Decimal("-40")]).to_dict()
        assert data == {
            "wins": 1,
            "losses": 1,
            "breakeven": 0,
            "winRate": 50.0,
            "avgWin": 120.5,
            "avgLoss": 40.0,
            "profitFactor": 3.0125,
        }


class TestClassifyOutcomes:
    def test_instrument_level_classification(self) -> None:
        report = calculate_pnl([
            txn("Buy", "10", "100", "5", day=1, id=1),
            txn("Buy", "10", "110", "5", day=2, id=2),
            txn("Sell", "5", "130", "2", day=3, id=3),
            txn("Buy", "10", "50", day=1, instrument="MSFT", id=4),
            txn("Sell", "10", "46", day=4, instrument="MSFT", id=5),
        ])
        stats = classify_outcomes(report.instruments.values())
        assert stats.wins == 1
        assert stats.losses == 1
        assert stats.avg_win == Decimal("120.5")
        assert stats.avg_loss == Decimal("40")
        assert stats.profit_factor == Decimal("3.0125")

    def test_only_instruments_with_both_sides_count(self) -> None:
        report = calculate_pnl([
            txn("Buy", "10", "100", id=1),
            txn("Sell", "1", "500", instrument="MSFT", id=2),
        ])
        stats = classify_outcomes(report.instruments.values())
        assert stats.closed_trades == 0
        assert stats.win_rate == 0

    def test_multiple_sales_aggregate_into_one_outcome(self) -> None:
        report = calculate_pnl([
            txn("Buy", "10", "100", day=1, id=1),
            txn("Sell", "5", "110", day=2, id=2),
            txn("Sell", "5", "95", day=3, id=3),
        ])
        stats = classify_outcomes(report.instruments.values())
        assert stats.wins == 1
        assert stats.losses == 0
        assert stats.avg_win == Decimal("25")
