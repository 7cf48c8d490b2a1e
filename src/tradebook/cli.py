"""CLI entry point for Tradebook.

Commands:
  - migrate: Run database migrations
  - positions: Print per-instrument positions
  - pnl: Print realized/unrealized P&L and monthly buckets
  - status: Show ledger and database status
"""

from __future__ import annotations

import argparse
import json
import logging

from tradebook.accounting import aggregate_positions, calculate_pnl, monthly_between
from tradebook.config import AppConfig, load_config
from tradebook.registry.db import MIGRATIONS_DIR, Database
from tradebook.registry.queries import Registry, TransactionFilter
from tradebook.registry.retry import RetryPolicy

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _connect(config: AppConfig) -> tuple[Database, Registry]:
    db = Database(config.db_dsn)
    db.connect()
    return db, Registry(db, retry=RetryPolicy.from_config(config))


def _account_filter(args: argparse.Namespace) -> TransactionFilter:
    account = getattr(args, "account", None)
    return TransactionFilter(account_id=account.upper() if account else None)


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    config = load_config()
    db = Database(config.db_dsn)
    db.connect()
    try:
        applied = db.run_migrations(MIGRATIONS_DIR)
    finally:
        db.close()
    if applied:
        for name in applied:
            print(f"  applied {name}")
    print("Migrations complete.")


def cmd_positions(args: argparse.Namespace) -> None:
    """Print per-instrument positions."""
    config = load_config()
    db, registry = _connect(config)
    try:
        transactions = registry.list_transactions_chronological(_account_filter(args))
    finally:
        db.close()

    positions = aggregate_positions(transactions)
    if not positions:
        print("No transactions recorded.")
        return

    print(f"{'Instrument':12s} {'Bought':>10s} {'Sold':>10s} {'Open':>10s} {'Avg Buy':>12s} {'Avg Sell':>12s}")
    for key in sorted(positions):
        p = positions[key]
        print(
            f"{p.instrument:12s} {p.bought_qty:>10} {p.sold_qty:>10} {p.open_qty:>10} "
            f"{p.avg_buy_price:>12.2f} {p.avg_sell_price:>12.2f}"
        )


def cmd_pnl(args: argparse.Namespace) -> None:
    """Print realized P&L per instrument and per month."""
    config = load_config()
    db, registry = _connect(config)
    try:
        transactions = registry.list_transactions_chronological(_account_filter(args))
    finally:
        db.close()

    report = calculate_pnl(transactions, unrealized_rate=config.unrealized_estimate_rate)
    if args.json:
        print(json.dumps(report.to_dict(args.month_from, args.month_to), indent=2))
        return

    print("Per instrument:")
    for key in sorted(report.instruments):
        item = report.instruments[key]
        print(f"  {key:12s} realized={item.realized:>12.2f} unrealized={item.unrealized:>12.2f}")

    print("\nMonthly:")
    for month in monthly_between(report, args.month_from, args.month_to):
        print(
            f"  {month.month}: realized={month.realized:.2f} "
            f"trades={month.total_transactions} "
            f"(+{month.profitable_instruments}/-{month.loss_instruments})"
        )

    summary = report.summary
    outcomes = summary.outcomes
    print(f"\nTotal realized: {summary.total_realized:.2f}")
    label = " (estimate)" if report.unrealized_is_estimate else ""
    print(f"Total unrealized{label}: {summary.total_unrealized:.2f}")
    print(
        f"Win rate: {outcomes.win_rate:.1f}% ({outcomes.wins}W/{outcomes.losses}L), "
        f"profit factor {outcomes.profit_factor:.2f}, sales {summary.total_trades}"
    )


def cmd_status(args: argparse.Namespace) -> None:
    """Show ledger and database status."""
    config = load_config()
    db, registry = _connect(config)
    try:
        healthy = db.health_check()
        print(f"Database: {'ok' if healthy else 'unreachable'}")
        if not healthy:
            return
        accounts = registry.list_accounts()
        active = sum(1 for a in accounts if a.active)
        print(f"Accounts: {len(accounts)} ({active} active)")
        total = registry.list_transactions(limit=1).total_count
        print(f"Transactions: {total}")
        instruments = registry.unique_instruments()
        print(f"Instruments traded: {len(instruments)}")
    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="tradebook",
        description="Personal stock-trading ledger with position and P&L analytics",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subs = parser.add_subparsers(dest="command", required=True)

    # migrate
    subs.add_parser("migrate", help="Run database migrations")

    # positions
    p_positions = subs.add_parser("positions", help="Print per-instrument positions")
    p_positions.add_argument("--account", help="Limit to one account code")

    # pnl
    p_pnl = subs.add_parser("pnl", help="Print realized and unrealized P&L")
    p_pnl.add_argument("--month-from", help="First month to show (YYYY-MM)")
    p_pnl.add_argument("--month-to", help="Last month to show (YYYY-MM)")
    p_pnl.add_argument("--account", help="Limit to one account code")
    p_pnl.add_argument("--json", action="store_true", help="Print the full report as JSON")

    # status
    subs.add_parser("status", help="Show ledger and database status")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "migrate": cmd_migrate,
        "positions": cmd_positions,
        "pnl": cmd_pnl,
        "status": cmd_status,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
