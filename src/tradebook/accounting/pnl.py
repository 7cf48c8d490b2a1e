"""Realized and unrealized P&L over the chronological transaction history.

Realized P&L on a sale is measured against the weighted-average buy price
*at the moment of the sale*, so results depend on transaction order. Callers
must not pre-sort differently; every entry point sorts by (date, id) itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping

from tradebook.accounting.outcomes import OutcomeStats, classify_outcomes
from tradebook.accounting.positions import (
    ZERO,
    Position,
    PositionAccumulator,
    chronological,
    safe_div,
)
from tradebook.models.transaction import Transaction

logger = logging.getLogger(__name__)

# Placeholder rate for unrealized P&L when no market price is available.
DEFAULT_UNREALIZED_RATE = Decimal("0.10")


def estimate_unrealized(open_qty: Decimal, avg_buy_price: Decimal, rate: Decimal) -> Decimal:
    """Placeholder unrealized P&L: a flat fraction of the open cost basis.

    Stands in for ``open_qty * (current_price - avg_buy_price)`` until a price
    feed is wired in. Not a business rule.
    """
    if open_qty <= 0:
        return ZERO
    return open_qty * avg_buy_price * rate


def mark_to_market(open_qty: Decimal, avg_buy_price: Decimal, current_price: Decimal) -> Decimal:
    if open_qty <= 0:
        return ZERO
    return open_qty * (current_price - avg_buy_price)


@dataclass(frozen=True)
class RealizedPnLEvent:
    instrument: str
    month: str
    quantity: Decimal
    proceeds: Decimal
    cost_basis: Decimal
    realized_pnl: Decimal
    avg_buy_price: Decimal
    transaction_id: int | None = None


@dataclass(frozen=True)
class InstrumentPnL:
    position: Position
    realized: Decimal
    unrealized: Decimal
    sold_cost_basis: Decimal = ZERO

    @property
    def instrument(self) -> str:
        return self.position.instrument

    @property
    def total_pnl(self) -> Decimal:
        return self.realized + self.unrealized

    def to_dict(self) -> dict:
        data = self.position.to_dict()
        data.update({
            "realized": float(self.realized),
            "unrealized": float(self.unrealized),
            "totalPnl": float(self.total_pnl),
        })
        return data


@dataclass(frozen=True)
class MonthlyInstrumentDetail:
    instrument: str
    quantity: Decimal = ZERO
    avg_price: Decimal = ZERO
    pnl: Decimal = ZERO
    transactions: int = 0

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "quantity": float(self.quantity),
            "avgPrice": float(self.avg_price),
            "pnl": float(self.pnl),
            "transactions": self.transactions,
        }


class _DetailAccumulator:
    """Running per-instrument totals inside one month bucket."""

    __slots__ = ("instrument", "quantity", "traded_value", "pnl", "transactions")

    def __init__(self, instrument: str) -> None:
        self.instrument = instrument
        self.quantity = ZERO
        self.traded_value = ZERO
        self.pnl = ZERO
        self.transactions = 0

    def add(self, txn: Transaction, pnl: Decimal = ZERO) -> None:
        self.quantity += txn.quantity
        self.traded_value += txn.price * txn.quantity
        self.pnl += pnl
        self.transactions += 1

    def snapshot(self) -> MonthlyInstrumentDetail:
        return MonthlyInstrumentDetail(
            instrument=self.instrument,
            quantity=self.quantity,
            avg_price=safe_div(self.traded_value, self.quantity),
            pnl=self.pnl,
            transactions=self.transactions,
        )


@dataclass(frozen=True)
class MonthlyPnL:
    month: str  # YYYY-MM
    realized: Decimal
    total_transactions: int
    instruments: tuple[MonthlyInstrumentDetail, ...]
    # Unrealized P&L is not attributed to months.
    unrealized: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.realized + self.unrealized

    @property
    def profitable_instruments(self) -> int:
        return sum(1 for d in self.instruments if d.pnl > 0)

    @property
    def loss_instruments(self) -> int:
        return sum(1 for d in self.instruments if d.pnl < 0)

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "realized": float(self.realized),
            "unrealized": float(self.unrealized),
            "total": float(self.total),
            "instruments": [d.to_dict() for d in self.instruments],
            "totalTransactions": self.total_transactions,
            "profitableInstruments": self.profitable_instruments,
            "lossInstruments": self.loss_instruments,
        }


@dataclass(frozen=True)
class PnLSummary:
    total_realized: Decimal
    total_unrealized: Decimal
    outcomes: OutcomeStats
    total_trades: int

    def to_dict(self) -> dict:
        data = {
            "totalRealized": float(self.total_realized),
            "totalUnrealized": float(self.total_unrealized),
            "totalTrades": self.total_trades,
        }
        data.update(self.outcomes.to_dict())
        return data


@dataclass(frozen=True)
class PnLReport:
    instruments: Mapping[str, InstrumentPnL]
    monthly: tuple[MonthlyPnL, ...]
    events: tuple[RealizedPnLEvent, ...]
    summary: PnLSummary
    unrealized_is_estimate: bool = True

    def realized_by_instrument(
        self, month_from: str | None = None, month_to: str | None = None,
    ) -> dict[str, Decimal]:
        """Sum realized events per instrument, optionally limited to a month range."""
        totals: dict[str, Decimal] = {}
        for ev in self.events:
            if month_from and ev.month < month_from:
                continue
            if month_to and ev.month > month_to:
                continue
            totals[ev.instrument] = totals.get(ev.instrument, ZERO) + ev.realized_pnl
        return totals

    def to_dict(self, month_from: str | None = None, month_to: str | None = None) -> dict:
        """Serialise for the API.

        ``monthlyPnl`` and ``realizedByInstrument`` cover the month range; the
        instrument rows and summary always cover the full history.
        """
        in_range = self.realized_by_instrument(month_from, month_to)
        return {
            "instrumentPnl": [p.to_dict() for p in self.instruments.values()],
            "monthlyPnl": [m.to_dict() for m in monthly_between(self, month_from, month_to)],
            "realizedByInstrument": {k: float(v) for k, v in sorted(in_range.items())},
            "summary": self.summary.to_dict(),
            "unrealizedIsEstimate": self.unrealized_is_estimate,
        }


def monthly_between(
    report: PnLReport, month_from: str | None = None, month_to: str | None = None,
) -> list[MonthlyPnL]:
    """Monthly buckets with ``month_from <= month <= month_to`` (YYYY-MM, inclusive)."""
    return [
        m for m in report.monthly
        if (not month_from or m.month >= month_from) and (not month_to or m.month <= month_to)
    ]


def calculate_pnl(
    transactions: Iterable[Transaction],
    *,
    unrealized_rate: Decimal = DEFAULT_UNREALIZED_RATE,
    current_prices: Mapping[str, Decimal] | None = None,
) -> PnLReport:
    """Run the position fold and record a realized P&L event at every sale.

    Args:
        transactions: Full history; sorted here by (date, id).
        unrealized_rate: Rate for the placeholder unrealized estimate.
        current_prices: Optional instrument -> price map. Instruments present
            here are marked to market instead of using the estimate.
    """
    rate = Decimal(str(unrealized_rate))
    prices = current_prices or {}

    accumulators: dict[str, PositionAccumulator] = {}
    realized: dict[str, Decimal] = {}
    sold_cost: dict[str, Decimal] = {}
    events: list[RealizedPnLEvent] = []
    months: dict[str, dict] = {}
    total_trades = 0

    for txn in chronological(transactions):
        acc = accumulators.get(txn.instrument)
        if acc is None:
            acc = accumulators[txn.instrument] = PositionAccumulator(txn.instrument)
            realized[txn.instrument] = ZERO
            sold_cost[txn.instrument] = ZERO

        bucket = months.setdefault(txn.month_key, {"realized": ZERO, "count": 0, "detail": {}})
        bucket["count"] += 1
        detail = bucket["detail"].get(txn.instrument)
        if detail is None:
            detail = bucket["detail"][txn.instrument] = _DetailAccumulator(txn.instrument)

        if txn.is_buy:
            acc.apply(txn)
            detail.add(txn)
            continue

        # Cost basis uses the average in force before this sale is applied.
        # Divide last so a full close costs exactly what was invested.
        avg_at_sale = acc.avg_buy_price
        proceeds = txn.trade_value - txn.brokerage
        cost_basis = safe_div(acc.invested_value * txn.quantity, acc.bought_qty)
        pnl = proceeds - cost_basis
        acc.apply(txn)
        total_trades += 1

        realized[txn.instrument] += pnl
        sold_cost[txn.instrument] += cost_basis
        bucket["realized"] += pnl
        detail.add(txn, pnl)
        events.append(RealizedPnLEvent(
            instrument=txn.instrument,
            month=txn.month_key,
            quantity=txn.quantity,
            proceeds=proceeds,
            cost_basis=cost_basis,
            realized_pnl=pnl,
            avg_buy_price=avg_at_sale,
            transaction_id=txn.id,
        ))
        if acc.open_qty < 0:
            logger.debug("Sale of %s leaves negative open quantity %s", txn.instrument, acc.open_qty)

    instruments: dict[str, InstrumentPnL] = {}
    for key, acc in accumulators.items():
        position = acc.snapshot()
        if key in prices:
            unrealized = mark_to_market(position.open_qty, position.avg_buy_price, Decimal(str(prices[key])))
        else:
            unrealized = estimate_unrealized(position.open_qty, position.avg_buy_price, rate)
        instruments[key] = InstrumentPnL(
            position=position,
            realized=realized[key],
            unrealized=unrealized,
            sold_cost_basis=sold_cost[key],
        )

    monthly = tuple(
        MonthlyPnL(
            month=month,
            realized=bucket["realized"],
            total_transactions=bucket["count"],
            instruments=tuple(sorted(
                (d.snapshot() for d in bucket["detail"].values()), key=lambda d: abs(d.pnl), reverse=True,
            )),
        )
        for month, bucket in sorted(months.items())
    )

    outcomes = classify_outcomes(instruments.values())
    summary = PnLSummary(
        total_realized=sum((p.realized for p in instruments.values()), ZERO),
        total_unrealized=sum((p.unrealized for p in instruments.values()), ZERO),
        outcomes=outcomes,
        total_trades=total_trades,
    )
    logger.debug(
        "P&L computed: %d instruments, %d months, %d sale events",
        len(instruments), len(monthly), len(events),
    )
    return PnLReport(
        instruments=MappingProxyType(instruments),
        monthly=monthly,
        events=tuple(events),
        summary=summary,
        unrealized_is_estimate=any(
            p.position.open_qty > 0 and k not in prices for k, p in instruments.items()
        ),
    )


def realized_roi(item: InstrumentPnL) -> Decimal:
    """Realized P&L as a percentage of the cost basis booked at each sale."""
    return safe_div(item.realized, item.sold_cost_basis) * 100
