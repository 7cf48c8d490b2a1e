"""Position aggregation: weighted-average cost basis per instrument.

Positions are rebuilt from the full transaction history on every call. Edits
and deletions in the store are therefore picked up by simply re-running the
fold; nothing is patched incrementally and no state survives between calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping

from tradebook.models.transaction import Transaction

ZERO = Decimal(0)


def chronological(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Sort ascending by date, then id.

    Unsaved transactions (no id) sort after saved ones on the same date and
    keep their input order.
    """
    return sorted(
        transactions,
        key=lambda t: (t.date, t.id is None, t.id if t.id is not None else 0),
    )


def safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide, returning 0 when the denominator is 0."""
    if denominator == 0:
        return ZERO
    return numerator / denominator


@dataclass(frozen=True)
class Position:
    instrument: str
    bought_qty: Decimal = ZERO
    sold_qty: Decimal = ZERO
    invested_value: Decimal = ZERO
    sold_value: Decimal = ZERO
    avg_buy_price: Decimal = ZERO
    avg_sell_price: Decimal = ZERO
    open_qty: Decimal = ZERO
    transaction_count: int = 0
    first_date: date | None = None
    last_date: date | None = None

    @property
    def is_open(self) -> bool:
        return self.open_qty > 0

    @property
    def is_closed_trade(self) -> bool:
        """At least one buy matched by at least one sell."""
        return self.bought_qty > 0 and self.sold_qty > 0

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "boughtQty": float(self.bought_qty),
            "soldQty": float(self.sold_qty),
            "investedValue": float(self.invested_value),
            "soldValue": float(self.sold_value),
            "avgBuyPrice": float(self.avg_buy_price),
            "avgSellPrice": float(self.avg_sell_price),
            "openQty": float(self.open_qty),
            "transactionCount": self.transaction_count,
            "firstDate": self.first_date.isoformat() if self.first_date else None,
            "lastDate": self.last_date.isoformat() if self.last_date else None,
        }


class PositionAccumulator:
    """Mutable running totals for one instrument during a fold."""

    __slots__ = (
        "instrument", "bought_qty", "sold_qty", "invested_value", "sold_value",
        "avg_buy_price", "avg_sell_price", "open_qty", "transaction_count",
        "first_date", "last_date",
    )

    def __init__(self, instrument: str) -> None:
        self.instrument = instrument
        self.bought_qty = ZERO
        self.sold_qty = ZERO
        self.invested_value = ZERO
        self.sold_value = ZERO
        self.avg_buy_price = ZERO
        self.avg_sell_price = ZERO
        self.open_qty = ZERO
        self.transaction_count = 0
        self.first_date: date | None = None
        self.last_date: date | None = None

    def apply(self, txn: Transaction) -> None:
        if self.first_date is None:
            self.first_date = txn.date
        self.last_date = txn.date
        self.transaction_count += 1

        if txn.is_buy:
            self.bought_qty += txn.quantity
            self.invested_value += txn.trade_value + txn.brokerage
            self.avg_buy_price = safe_div(self.invested_value, self.bought_qty)
            self.open_qty += txn.quantity
        else:
            self.sold_qty += txn.quantity
            self.sold_value += txn.trade_value - txn.brokerage
            self.avg_sell_price = safe_div(self.sold_value, self.sold_qty)
            self.open_qty -= txn.quantity

    def snapshot(self) -> Position:
        return Position(
            instrument=self.instrument,
            bought_qty=self.bought_qty,
            sold_qty=self.sold_qty,
            invested_value=self.invested_value,
            sold_value=self.sold_value,
            avg_buy_price=self.avg_buy_price,
            avg_sell_price=self.avg_sell_price,
            open_qty=self.open_qty,
            transaction_count=self.transaction_count,
            first_date=self.first_date,
            last_date=self.last_date,
        )


def aggregate_positions(transactions: Iterable[Transaction]) -> Mapping[str, Position]:
    """Fold the transaction history into one Position per instrument.

    Returns a read-only mapping keyed by instrument, in order of first
    appearance.
    """
    accumulators: dict[str, PositionAccumulator] = {}
    for txn in chronological(transactions):
        acc = accumulators.get(txn.instrument)
        if acc is None:
            acc = accumulators[txn.instrument] = PositionAccumulator(txn.instrument)
        acc.apply(txn)
    return MappingProxyType({k: acc.snapshot() for k, acc in accumulators.items()})


def position_for(positions: Mapping[str, Position], instrument: str) -> Position:
    """Look up a position, returning an all-zero one for unseen instruments."""
    key = instrument.strip().upper()
    return positions.get(key) or Position(instrument=key)
