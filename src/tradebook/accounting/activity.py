"""Trading-activity analytics for the dashboard and summary views.

Portfolio value over time, weekday/month trading patterns, yearly cash
flows, best and worst performers, and a per-instrument summary with
holding periods.
"""

from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from tradebook.accounting.pnl import InstrumentPnL, realized_roi
from tradebook.accounting.positions import ZERO, chronological, safe_div
from tradebook.models.transaction import Transaction

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
MONTH_NAMES = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


@dataclass(frozen=True)
class HistoryPoint:
    date: date
    investment: Decimal
    returns: Decimal
    holdings_count: Decimal

    @property
    def net_value(self) -> Decimal:
        return self.returns - self.investment

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "investment": float(self.investment),
            "returns": float(self.returns),
            "netValue": float(self.net_value),
            "holdingsCount": float(self.holdings_count),
        }


def portfolio_history(transactions: Iterable[Transaction]) -> list[HistoryPoint]:
    """Cumulative outlay and proceeds after each transaction."""
    points: list[HistoryPoint] = []
    investment = ZERO
    returns = ZERO
    open_units = ZERO
    for txn in chronological(transactions):
        if txn.is_buy:
            investment += txn.cash_flow
            open_units += txn.quantity
        else:
            returns += txn.cash_flow
            open_units -= txn.quantity
        points.append(HistoryPoint(
            date=txn.date, investment=investment, returns=returns, holdings_count=open_units,
        ))
    return points


def trading_patterns(transactions: Iterable[Transaction]) -> dict:
    by_day = Counter()
    by_month = Counter()
    for txn in transactions:
        by_day[txn.date.weekday()] += 1
        by_month[txn.date.month] += 1
    return {
        "byDayOfWeek": [{"day": name, "count": by_day[i]} for i, name in enumerate(DAY_NAMES)],
        "byMonth": [{"month": name, "count": by_month[i + 1]} for i, name in enumerate(MONTH_NAMES)],
    }


def trade_frequency(transactions: Iterable[Transaction], limit: int = 90) -> list[dict]:
    """Transaction counts per trading date, newest first."""
    counts = Counter(txn.date for txn in transactions)
    return [
        {"date": d.isoformat(), "count": counts[d]}
        for d in sorted(counts, reverse=True)[:limit]
    ]


def months_before(day: date, months: int) -> date:
    """Same day ``months`` calendar months earlier, clamped to month end."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def recent_cash_flows(transactions: Iterable[Transaction], since: date) -> list[dict]:
    """Trade value and brokerage totals per action for trades on or after ``since``."""
    totals = {action: [ZERO, ZERO] for action in ("Buy", "Sell")}
    for txn in transactions:
        if txn.date < since:
            continue
        row = totals[txn.action.value]
        row[0] += txn.trade_value
        row[1] += txn.brokerage
    return [
        {"action": action, "tradeValue": float(value), "brokerage": float(fees)}
        for action, (value, fees) in totals.items()
    ]


@dataclass(frozen=True)
class YearlyPerformance:
    year: int
    buy_value: Decimal
    sell_value: Decimal
    transaction_count: int

    @property
    def pnl(self) -> Decimal:
        return self.sell_value - self.buy_value

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "buyValue": float(self.buy_value),
            "sellValue": float(self.sell_value),
            "transactionCount": self.transaction_count,
            "pnl": float(self.pnl),
        }


def yearly_performance(transactions: Iterable[Transaction]) -> list[YearlyPerformance]:
    """Net cash flow per calendar year (sale proceeds minus buy outlay)."""
    years: dict[int, list] = {}
    for txn in transactions:
        row = years.setdefault(txn.date.year, [ZERO, ZERO, 0])
        if txn.is_buy:
            row[0] += txn.cash_flow
        else:
            row[1] += txn.cash_flow
        row[2] += 1
    return [
        YearlyPerformance(year=y, buy_value=b, sell_value=s, transaction_count=n)
        for y, (b, s, n) in sorted(years.items())
    ]


def performers(
    instrument_pnl: Mapping[str, InstrumentPnL], limit: int = 5,
) -> tuple[list[dict], list[dict]]:
    """Best and worst instruments by realized P&L, among those with sales."""
    sold = [p for p in instrument_pnl.values() if p.position.sold_qty > 0]
    ranked = sorted(sold, key=lambda p: p.realized, reverse=True)
    rows = [
        {"instrument": p.instrument, "profitLoss": float(p.realized), "roi": float(realized_roi(p))}
        for p in ranked
    ]
    return rows[:limit], list(reversed(rows[-limit:]))


@dataclass(frozen=True)
class InstrumentSummary:
    instrument: str
    first_buy_date: date
    last_activity_date: date
    bought_qty: Decimal
    sold_qty: Decimal
    invested_value: Decimal
    sold_value: Decimal
    open_qty: Decimal
    avg_buy_price: Decimal
    transaction_count: int
    realized: Decimal
    roi: Decimal

    @property
    def holding_period_days(self) -> int:
        return (self.last_activity_date - self.first_buy_date).days

    @property
    def status(self) -> str:
        return "Active" if self.open_qty > 0 else "Closed"

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "firstBuyDate": self.first_buy_date.isoformat(),
            "lastActivityDate": self.last_activity_date.isoformat(),
            "totalBuyQty": float(self.bought_qty),
            "totalSellQty": float(self.sold_qty),
            "totalBuyValue": float(self.invested_value),
            "totalSellValue": float(self.sold_value),
            "currentQty": float(self.open_qty),
            "avgBuyPrice": float(self.avg_buy_price),
            "holdingPeriodDays": self.holding_period_days,
            "transactionCount": self.transaction_count,
            "status": self.status,
            "realizedPnl": float(self.realized),
            "roi": float(self.roi),
        }


def instrument_summary(
    transactions: Iterable[Transaction], instrument_pnl: Mapping[str, InstrumentPnL],
) -> list[InstrumentSummary]:
    """Per-instrument lifecycle summary, in order of first appearance.

    The holding period runs from the first buy (or first activity when the
    instrument was never bought) to the last transaction.
    """
    first_buy: dict[str, date] = {}
    for txn in chronological(transactions):
        if txn.is_buy and txn.instrument not in first_buy:
            first_buy[txn.instrument] = txn.date

    summaries = []
    for key, item in instrument_pnl.items():
        pos = item.position
        summaries.append(InstrumentSummary(
            instrument=key,
            first_buy_date=first_buy.get(key, pos.first_date),
            last_activity_date=pos.last_date,
            bought_qty=pos.bought_qty,
            sold_qty=pos.sold_qty,
            invested_value=pos.invested_value,
            sold_value=pos.sold_value,
            open_qty=pos.open_qty,
            avg_buy_price=pos.avg_buy_price,
            transaction_count=pos.transaction_count,
            realized=item.realized,
            roi=realized_roi(item),
        ))
    return summaries


def portfolio_metrics(summaries: list[InstrumentSummary], total_transactions: int) -> dict:
    active = sum(1 for s in summaries if s.status == "Active")
    avg_holding = safe_div(
        Decimal(sum(s.holding_period_days for s in summaries)), Decimal(len(summaries)),
    )
    return {
        "totalInstruments": len(summaries),
        "activePositions": active,
        "closedPositions": len(summaries) - active,
        "avgHoldingPeriod": float(avg_holding),
        "diversityScore": min(active * 10, 100),
        "totalTransactions": total_transactions,
    }

