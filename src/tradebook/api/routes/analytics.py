"""Analytics endpoints: positions, P&L, dashboard, summary, holdings and the summary book."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from tradebook.accounting import aggregate_positions, calculate_pnl
from tradebook.accounting.activity import (
    instrument_summary,
    months_before,
    performers,
    portfolio_history,
    portfolio_metrics,
    recent_cash_flows,
    trade_frequency,
    trading_patterns,
    yearly_performance,
)
from tradebook.accounting.holdings import holdings_book, holdings_breakdown, summary_book
from tradebook.api.deps import get_config, get_registry
from tradebook.api.routes.shared import ANY, build_filter, parse_date
from tradebook.config import AppConfig
from tradebook.registry.queries import Registry

router = APIRouter()

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


@router.get("/analytics/positions")
def get_positions(
    account: str | None = None,
    registry: Registry = Depends(get_registry),
) -> list[dict]:
    """Per-instrument position state, sorted by instrument."""
    transactions = registry.list_transactions_chronological(build_filter(account=account))
    positions = aggregate_positions(transactions)
    return [positions[key].to_dict() for key in sorted(positions)]


@router.get("/analytics/profit-loss")
def get_profit_loss(
    month_from: str | None = Query(default=None, pattern=MONTH_PATTERN),
    month_to: str | None = Query(default=None, pattern=MONTH_PATTERN),
    account: str | None = None,
    registry: Registry = Depends(get_registry),
    config: AppConfig = Depends(get_config),
) -> dict:
    """Per-instrument and monthly realized P&L with outcome statistics.

    The month range limits the monthly buckets only; instrument totals and
    the summary always cover the full history.
    """
    transactions = registry.list_transactions_chronological(build_filter(account=account))
    report = calculate_pnl(transactions, unrealized_rate=config.unrealized_estimate_rate)
    return report.to_dict(month_from, month_to)


@router.get("/analytics/dashboard")
def get_dashboard(
    registry: Registry = Depends(get_registry),
    config: AppConfig = Depends(get_config),
) -> dict:
    transactions = registry.list_transactions_chronological()
    report = calculate_pnl(transactions, unrealized_rate=config.unrealized_estimate_rate)
    top, worst = performers(report.instruments)
    return {
        "portfolioHistory": [p.to_dict() for p in portfolio_history(transactions)],
        "holdingsBreakdown": holdings_breakdown(transactions),
        "monthlyPerformance": recent_cash_flows(transactions, months_before(date.today(), 6)),
        "tradeFrequency": trade_frequency(transactions),
        "topPerformers": top,
        "worstPerformers": worst,
    }


@router.get("/analytics/summary")
def get_summary(
    registry: Registry = Depends(get_registry),
    config: AppConfig = Depends(get_config),
) -> dict:
    transactions = registry.list_transactions_chronological()
    report = calculate_pnl(transactions, unrealized_rate=config.unrealized_estimate_rate)
    summaries = instrument_summary(transactions, report.instruments)
    return {
        "instrumentSummary": [s.to_dict() for s in summaries],
        "yearlyPerformance": [y.to_dict() for y in yearly_performance(transactions)],
        "tradingPatterns": trading_patterns(transactions),
        "portfolioMetrics": portfolio_metrics(summaries, len(transactions)),
    }


@router.get("/analytics/holdings")
def get_holdings(
    account: str | None = None,
    registry: Registry = Depends(get_registry),
) -> list[dict]:
    """Open holdings by instrument with per-account lots.

    ``account`` is ``all`` (default), ``active``, or an account code.
    """
    transactions = registry.list_transactions_chronological()
    book = holdings_book(transactions, registry.list_accounts(), account_filter=account)
    return [h.to_dict() for h in book]


@router.get("/analytics/summary-book")
def get_summary_book(
    account: str | None = None,
    instrument: str | None = None,
    holding: str = Query(default="all", pattern="^(all|holding|closed)$"),
    dateFrom: str | None = None,
    dateTo: str | None = None,
    registry: Registry = Depends(get_registry),
) -> dict:
    """Every instrument traded in the date range, open or closed, per account.

    ``account`` takes the same values as the holdings view.
    """
    book = summary_book(
        registry.list_transactions_chronological(),
        registry.list_accounts(),
        account_filter=account,
        instrument=instrument if instrument and instrument != ANY else None,
        position_filter=holding,
        date_from=parse_date(dateFrom, "dateFrom"),
        date_to=parse_date(dateTo, "dateTo"),
    )
    return book.to_dict()
