"""Per-account trade books: open holdings, the full summary book, and lots.

Values on these views are trade value only. Brokerage is reported in its own
column rather than folded into the averages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

from tradebook.accounting.positions import ZERO, chronological, safe_div
from tradebook.models.account import Account
from tradebook.models.transaction import Transaction, normalize_instrument

ALL_ACCOUNTS = "all"
ACTIVE_ACCOUNTS = "active"

# Summary book position filters
ALL_POSITIONS = "all"
HOLDING = "holding"
CLOSED = "closed"


@dataclass(frozen=True)
class Lot:
    """An unsold (or partially sold) buy."""

    transaction: Transaction
    quantity: Decimal

    @property
    def original_quantity(self) -> Decimal:
        return self.transaction.quantity

    def to_dict(self) -> dict:
        t = self.transaction
        return {
            "id": t.id,
            "date": t.date.isoformat(),
            "price": float(t.price),
            "quantity": float(self.quantity),
            "originalQuantity": float(self.original_quantity),
        }


def remaining_lots(buys: Iterable[Transaction], sold_qty: Decimal) -> list[Lot]:
    """Consume buy lots oldest-first by the total sold quantity."""
    remaining = sold_qty
    lots: list[Lot] = []
    for buy in chronological(buys):
        if remaining <= 0:
            lots.append(Lot(buy, buy.quantity))
        elif remaining >= buy.quantity:
            remaining -= buy.quantity
        else:
            lots.append(Lot(buy, buy.quantity - remaining))
            remaining = ZERO
    return lots


def _transaction_row(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "action": txn.action.value,
        "quantity": float(txn.quantity),
        "price": float(txn.price),
        "tradeValue": float(txn.trade_value),
        "brokerage": float(txn.brokerage),
        "netValue": float(txn.cash_flow),
        "orderRef": txn.order_ref,
        "remarks": txn.remarks,
    }


@dataclass
class AccountHolding:
    account_id: str
    name: str
    buy_qty: Decimal = ZERO
    sell_qty: Decimal = ZERO
    total_buy_value: Decimal = ZERO
    total_sell_value: Decimal = ZERO
    total_brokerage: Decimal = ZERO
    transactions: list[Transaction] = field(default_factory=list)
    lots: list[Lot] = field(default_factory=list)

    @property
    def net_qty(self) -> Decimal:
        return self.buy_qty - self.sell_qty

    @property
    def avg_buy_price(self) -> Decimal:
        return safe_div(self.total_buy_value, self.buy_qty)

    @property
    def avg_sell_price(self) -> Decimal:
        return safe_div(self.total_sell_value, self.sell_qty)

    def add(self, txn: Transaction) -> None:
        self.transactions.append(txn)
        if txn.is_buy:
            self.buy_qty += txn.quantity
            self.total_buy_value += txn.trade_value
        else:
            self.sell_qty += txn.quantity
            self.total_sell_value += txn.trade_value
        self.total_brokerage += txn.brokerage

    def to_dict(self, include_transactions: bool = False) -> dict:
        data = {
            "accountId": self.account_id,
            "name": self.name,
            "buyQty": float(self.buy_qty),
            "sellQty": float(self.sell_qty),
            "netQty": float(self.net_qty),
            "avgBuyPrice": float(self.avg_buy_price),
            "avgSellPrice": float(self.avg_sell_price),
            "totalBuyValue": float(self.total_buy_value),
            "totalSellValue": float(self.total_sell_value),
            "totalBrokerage": float(self.total_brokerage),
            "lots": [lot.to_dict() for lot in self.lots],
        }
        if include_transactions:
            newest_first = sorted(self.transactions, key=lambda t: t.date, reverse=True)
            data["transactions"] = [_transaction_row(t) for t in newest_first]
        return data


@dataclass(frozen=True)
class InstrumentHolding:
    instrument: str
    accounts: tuple[AccountHolding, ...]

    @property
    def total_buy_qty(self) -> Decimal:
        return sum((a.buy_qty for a in self.accounts), ZERO)

    @property
    def total_sell_qty(self) -> Decimal:
        return sum((a.sell_qty for a in self.accounts), ZERO)

    @property
    def total_net_qty(self) -> Decimal:
        return self.total_buy_qty - self.total_sell_qty

    @property
    def total_buy_value(self) -> Decimal:
        return sum((a.total_buy_value for a in self.accounts), ZERO)

    @property
    def total_sell_value(self) -> Decimal:
        return sum((a.total_sell_value for a in self.accounts), ZERO)

    @property
    def total_brokerage(self) -> Decimal:
        return sum((a.total_brokerage for a in self.accounts), ZERO)

    @property
    def avg_buy_price(self) -> Decimal:
        return safe_div(self.total_buy_value, self.total_buy_qty)

    @property
    def avg_sell_price(self) -> Decimal:
        return safe_div(self.total_sell_value, self.total_sell_qty)

    @property
    def open_cost(self) -> Decimal:
        """Net quantity at the average buy price (0 once closed out)."""
        if self.total_net_qty <= 0:
            return ZERO
        return safe_div(self.total_buy_value * self.total_net_qty, self.total_buy_qty)

    @property
    def gross_realized(self) -> Decimal:
        """Sell value less the average buy price of the units sold, before fees."""
        sold_cost = safe_div(self.total_buy_value * self.total_sell_qty, self.total_buy_qty)
        return self.total_sell_value - sold_cost

    def to_dict(self, include_transactions: bool = False) -> dict:
        return {
            "instrument": self.instrument,
            "totalBuyQty": float(self.total_buy_qty),
            "totalSellQty": float(self.total_sell_qty),
            "totalNetQty": float(self.total_net_qty),
            "avgBuyPrice": float(self.avg_buy_price),
            "avgSellPrice": float(self.avg_sell_price),
            "totalBuyValue": float(self.total_buy_value),
            "totalSellValue": float(self.total_sell_value),
            "totalBrokerage": float(self.total_brokerage),
            "accounts": [a.to_dict(include_transactions) for a in self.accounts],
        }


def _account_allowed(
    account_id: str, account_filter: str | None, active_ids: set[str],
) -> bool:
    if not account_filter or account_filter == ALL_ACCOUNTS:
        return True
    if account_filter == ACTIVE_ACCOUNTS:
        return account_id in active_ids
    return account_id == account_filter.upper()


def _group(
    transactions: Iterable[Transaction], known: dict[str, Account],
) -> dict[str, dict[str, AccountHolding]]:
    """instrument -> account code -> holding, with remaining lots filled in."""
    book: dict[str, dict[str, AccountHolding]] = {}
    for txn in chronological(transactions):
        per_account = book.setdefault(txn.instrument, {})
        holding = per_account.get(txn.account_id)
        if holding is None:
            account = known.get(txn.account_id)
            holding = per_account[txn.account_id] = AccountHolding(
                account_id=txn.account_id,
                name=account.name if account else txn.account_id,
            )
        holding.add(txn)

    for per_account in book.values():
        for holding in per_account.values():
            holding.lots = remaining_lots(
                (t for t in holding.transactions if t.is_buy), holding.sell_qty,
            )
    return book


def holdings_book(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account] = (),
    account_filter: str | None = None,
) -> list[InstrumentHolding]:
    """Open holdings per instrument, broken down by account.

    Only accounts still holding units (net quantity > 0) are kept, and only
    instruments with at least one such account. Totals are computed from the
    surviving accounts.

    Args:
        transactions: Transaction history.
        accounts: Known accounts, used for display names and active flags.
        account_filter: ``None``/``"all"``, ``"active"``, or an account code.
    """
    known = {a.userid: a for a in accounts}
    active_ids = {code for code, a in known.items() if a.active}
    book = _group(transactions, known)

    result = []
    for instrument in sorted(book):
        kept = tuple(
            h for h in book[instrument].values()
            if h.net_qty > 0 and _account_allowed(h.account_id, account_filter, active_ids)
        )
        if kept:
            result.append(InstrumentHolding(instrument=instrument, accounts=kept))
    return result


@dataclass(frozen=True)
class BookSummary:
    total_buy_value: Decimal
    total_sell_value: Decimal
    total_brokerage: Decimal
    current_investment: Decimal
    realized_pnl: Decimal
    unique_instruments: int
    active_positions: int

    @classmethod
    def of(cls, holdings: Iterable[InstrumentHolding]) -> BookSummary:
        holdings = list(holdings)
        return cls(
            total_buy_value=sum((h.total_buy_value for h in holdings), ZERO),
            total_sell_value=sum((h.total_sell_value for h in holdings), ZERO),
            total_brokerage=sum((h.total_brokerage for h in holdings), ZERO),
            current_investment=sum((h.open_cost for h in holdings), ZERO),
            realized_pnl=sum((h.gross_realized for h in holdings if h.total_sell_qty > 0), ZERO),
            unique_instruments=len(holdings),
            active_positions=sum(1 for h in holdings if h.total_net_qty > 0),
        )

    def to_dict(self) -> dict:
        return {
            "totalBuyValue": float(self.total_buy_value),
            "totalSellValue": float(self.total_sell_value),
            "totalBrokerage": float(self.total_brokerage),
            "currentInvestment": float(self.current_investment),
            "realizedPnl": float(self.realized_pnl),
            "uniqueInstruments": self.unique_instruments,
            "activePositions": self.active_positions,
        }


@dataclass(frozen=True)
class SummaryBook:
    instruments: tuple[InstrumentHolding, ...]
    summary: BookSummary

    def to_dict(self) -> dict:
        return {
            "instruments": [h.to_dict(include_transactions=True) for h in self.instruments],
            "summary": self.summary.to_dict(),
        }


def summary_book(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account] = (),
    *,
    account_filter: str | None = None,
    instrument: str | None = None,
    position_filter: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> SummaryBook:
    """Every traded instrument, open or closed, with per-account books.

    The date range restricts the transactions before anything is grouped, so
    averages, lots and totals all describe that window. Instrument totals are
    recomputed from the accounts that pass ``account_filter``.

    Args:
        position_filter: ``None``/``"all"``, ``"holding"`` (net quantity > 0)
            or ``"closed"`` (net quantity <= 0), judged per instrument.
    """
    if position_filter not in (None, ALL_POSITIONS, HOLDING, CLOSED):
        raise ValueError(f"Unsupported position filter: {position_filter!r}")

    known = {a.userid: a for a in accounts}
    active_ids = {code for code, a in known.items() if a.active}
    wanted = normalize_instrument(instrument) if instrument else None

    window = [
        t for t in transactions
        if (date_from is None or t.date >= date_from) and (date_to is None or t.date <= date_to)
    ]
    book = _group(window, known)

    result = []
    for key in sorted(book):
        if wanted and key != wanted:
            continue
        kept = tuple(
            h for h in book[key].values()
            if _account_allowed(h.account_id, account_filter, active_ids)
        )
        if not kept:
            continue
        holding = InstrumentHolding(instrument=key, accounts=kept)
        if position_filter == HOLDING and holding.total_net_qty <= 0:
            continue
        if position_filter == CLOSED and holding.total_net_qty > 0:
            continue
        result.append(holding)

    return SummaryBook(instruments=tuple(result), summary=BookSummary.of(result))


def holdings_breakdown(transactions: Iterable[Transaction]) -> list[dict]:
    """Open instruments valued at their average buy trade price (fees excluded)."""
    rows = []
    for key, per_account in sorted(_group(transactions, {}).items()):
        holding = InstrumentHolding(instrument=key, accounts=tuple(per_account.values()))
        if holding.total_net_qty <= 0:
            continue
        rows.append({
            "instrument": key,
            "quantity": float(holding.total_net_qty),
            "value": float(holding.open_cost),
            "avgPrice": float(holding.avg_buy_price),
        })
    return rows
