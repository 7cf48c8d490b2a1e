from __future__ import annotations

from tradebook.accounting.outcomes import OutcomeStats, classify_outcomes
from tradebook.accounting.pnl import (
    InstrumentPnL,
    MonthlyPnL,
    PnLReport,
    RealizedPnLEvent,
    calculate_pnl,
    monthly_between,
)
from tradebook.accounting.positions import (
    Position,
    aggregate_positions,
    chronological,
    position_for,
)

__all__ = [
    "InstrumentPnL",
    "MonthlyPnL",
    "OutcomeStats",
    "PnLReport",
    "Position",
    "RealizedPnLEvent",
    "aggregate_positions",
    "calculate_pnl",
    "chronological",
    "classify_outcomes",
    "monthly_between",
    "position_for",
]
