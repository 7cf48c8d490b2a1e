"""Win/loss statistics over closed positions.

Buys and sells are matched in aggregate per instrument, not lot by lot: each
instrument that has both bought and sold units counts as one closed trade,
scored by its total realized P&L.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from tradebook.accounting.positions import ZERO, safe_div

if TYPE_CHECKING:
    from tradebook.accounting.pnl import InstrumentPnL


@dataclass(frozen=True)
class OutcomeStats:
    wins: int
    losses: int
    breakeven: int
    win_rate: Decimal  # percent, 0-100
    avg_win: Decimal
    avg_loss: Decimal  # magnitude
    profit_factor: Decimal

    @property
    def closed_trades(self) -> int:
        return self.wins + self.losses + self.breakeven

    def to_dict(self) -> dict:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "breakeven": self.breakeven,
            "winRate": float(self.win_rate),
            "avgWin": float(self.avg_win),
            "avgLoss": float(self.avg_loss),
            "profitFactor": float(self.profit_factor),
        }


def summarize_results(results: Iterable[Decimal]) -> OutcomeStats:
    """Compute win-rate statistics from a sequence of realized results."""
    winners: list[Decimal] = []
    losers: list[Decimal] = []
    breakeven = 0
    for r in results:
        if r > 0:
            winners.append(r)
        elif r < 0:
            losers.append(r)
        else:
            breakeven += 1

    wins, losses = len(winners), len(losers)
    win_rate = safe_div(Decimal(wins), Decimal(wins + losses)) * 100
    avg_win = safe_div(sum(winners, ZERO), Decimal(wins))
    avg_loss = abs(safe_div(sum(losers, ZERO), Decimal(losses)))
    return OutcomeStats(
        wins=wins,
        losses=losses,
        breakeven=breakeven,
        win_rate=win_rate,
        avg_win=avg_win,
        avg_loss=avg_loss,
        profit_factor=safe_div(avg_win, avg_loss),
    )


def classify_outcomes(instrument_pnl: Iterable[InstrumentPnL]) -> OutcomeStats:
    """Classify each closed instrument as a win, loss or breakeven."""
    return summarize_results(
        item.realized for item in instrument_pnl if item.position.is_closed_trade
    )
