from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum


class Action(StrEnum):
    BUY = "Buy"
    SELL = "Sell"


class InvalidTransactionError(ValueError):
    """Raised when a transaction fails validation at the write boundary."""


def normalize_instrument(symbol: str) -> str:
    return symbol.strip().upper()


@dataclass(frozen=True)
class Transaction:
    """A single Buy or Sell record.

    ``trade_value`` is stored alongside quantity and price. ``create`` derives
    it from ``quantity * price``; rows loaded from the store keep whatever value
    was persisted, and cash-flow math always uses it.
    """

    account_id: str
    date: date
    instrument: str
    action: Action
    quantity: Decimal
    price: Decimal
    trade_value: Decimal
    brokerage: Decimal = Decimal(0)
    source: str | None = None
    order_ref: str | None = None
    remarks: str | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        try:
            action = Action(self.action)
        except ValueError:
            raise InvalidTransactionError(f"Unsupported action: {self.action!r}") from None
        instrument = normalize_instrument(self.instrument or "")
        if not instrument:
            raise InvalidTransactionError("Instrument is required")
        if self.quantity <= 0:
            raise InvalidTransactionError(f"Quantity must be positive, got {self.quantity}")
        if self.price <= 0:
            raise InvalidTransactionError(f"Price must be positive, got {self.price}")
        if self.brokerage < 0:
            raise InvalidTransactionError(f"Brokerage cannot be negative, got {self.brokerage}")
        # frozen: normalised values go through object.__setattr__
        object.__setattr__(self, "action", action)
        object.__setattr__(self, "instrument", instrument)

    @classmethod
    def create(
        cls,
        account_id: str,
        date: date,
        instrument: str,
        action: Action | str,
        quantity: Decimal,
        price: Decimal,
        brokerage: Decimal = Decimal(0),
        source: str | None = None,
        order_ref: str | None = None,
        remarks: str | None = None,
        id: int | None = None,
    ) -> Transaction:
        """Build a transaction with ``trade_value`` computed from quantity and price."""
        quantity = Decimal(str(quantity))
        price = Decimal(str(price))
        return cls(
            account_id=account_id,
            date=date,
            instrument=instrument,
            action=action,
            quantity=quantity,
            price=price,
            trade_value=quantity * price,
            brokerage=Decimal(str(brokerage)),
            source=source or None,
            order_ref=order_ref or None,
            remarks=remarks or None,
            id=id,
        )

    @property
    def is_buy(self) -> bool:
        return self.action is Action.BUY

    @property
    def cash_flow(self) -> Decimal:
        """Outlay for a buy (trade value + fees) or proceeds for a sell (trade value - fees)."""
        if self.is_buy:
            return self.trade_value + self.brokerage
        return self.trade_value - self.brokerage

    @property
    def month_key(self) -> str:
        return f"{self.date.year:04d}-{self.date.month:02d}"
