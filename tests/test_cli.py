from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from tradebook.cli import main
from tradebook.config import AppConfig
from tradebook.models import Account, Transaction
from tradebook.registry.queries import Page, Registry

HISTORY = [
    Transaction.create("ACC1", date(2024, 1, 2), "AAPL", "Buy", Decimal("10"), Decimal("100"), id=1),
    Transaction.create("ACC1", date(2024, 2, 9), "AAPL", "Sell", Decimal("4"), Decimal("130"), id=2),
]


class TestCLIParsing:
    def test_no_command_fails(self) -> None:
        with pytest.raises(SystemExit):
            main([])

    def test_help_flag(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--help"])
        assert exc_info.value.code == 0

    def test_migrate_command(self) -> None:
        with patch("tradebook.cli.cmd_migrate") as mock_cmd:
            main(["migrate"])
            mock_cmd.assert_called_once()

    def test_positions_with_account(self) -> None:
        with patch("tradebook.cli.cmd_positions") as mock_cmd:
            main(["positions", "--account", "acc1"])
            args = mock_cmd.call_args[0][0]
            assert args.account == "acc1"

    def test_pnl_options(self) -> None:
        with patch("tradebook.cli.cmd_pnl") as mock_cmd:
            main(["pnl", "--month-from", "2024-01", "--month-to", "2024-06", "--json"])
            args = mock_cmd.call_args[0][0]
            assert args.month_from == "2024-01"
            assert args.month_to == "2024-06"
            assert args.json is True
            assert args.account is None

    def test_status_command(self) -> None:
        with patch("tradebook.cli.cmd_status") as mock_cmd:
            main(["status"])
            mock_cmd.assert_called_once()

    def test_verbose_flag(self) -> None:
        with patch("tradebook.cli.cmd_status") as mock_cmd:
            main(["-v", "status"])
            args = mock_cmd.call_args[0][0]
            assert args.verbose is True


@pytest.fixture
def registry() -> MagicMock:
    reg = MagicMock(spec=Registry)
    reg.list_transactions_chronological.return_value = HISTORY
    return reg


@pytest.fixture
def db() -> MagicMock:
    return MagicMock()


@pytest.fixture
def connected(db: MagicMock, registry: MagicMock):
    with patch("tradebook.cli.load_config", return_value=AppConfig(db_dsn="")), \
            patch("tradebook.cli._connect", return_value=(db, registry)):
        yield


@pytest.mark.usefixtures("connected")
class TestCommands:
    def test_positions(self, capsys: pytest.CaptureFixture, registry: MagicMock, db: MagicMock) -> None:
        main(["positions", "--account", "acc1"])
        out = capsys.readouterr().out
        assert "AAPL" in out
        filters = registry.list_transactions_chronological.call_args[0][0]
        assert filters.account_id == "ACC1"
        db.close.assert_called_once()

    def test_positions_empty(self, capsys: pytest.CaptureFixture, registry: MagicMock) -> None:
        registry.list_transactions_chronological.return_value = []
        main(["positions"])
        assert "No transactions recorded." in capsys.readouterr().out

    def test_pnl_text(self, capsys: pytest.CaptureFixture) -> None:
        main(["pnl"])
        out = capsys.readouterr().out
        assert "Total realized: 120.00" in out
        assert "Total unrealized (estimate): 60.00" in out
        assert "2024-02: realized=120.00" in out

    def test_pnl_json_month_range(self, capsys: pytest.CaptureFixture) -> None:
        main(["pnl", "--json", "--month-from", "2024-02"])
        data = json.loads(capsys.readouterr().out)
        assert [m["month"] for m in data["monthlyPnl"]] == ["2024-02"]
        assert data["summary"]["totalRealized"] == 120.0

    def test_status(self, capsys: pytest.CaptureFixture, registry: MagicMock, db: MagicMock) -> None:
        db.health_check.return_value = True
        registry.list_accounts.return_value = [
            Account(userid="ACC1", name="Main"),
            Account(userid="ACC2", name="Old", active=False),
        ]
        registry.list_transactions.return_value = Page([], page=1, limit=1, total_count=2)
        registry.unique_instruments.return_value = ["AAPL"]

        main(["status"])
        out = capsys.readouterr().out
        assert "Database: ok" in out
        assert "Accounts: 2 (1 active)" in out
        assert "Transactions: 2" in out
        assert "Instruments traded: 1" in out

    def test_status_database_down(self, capsys: pytest.CaptureFixture, registry: MagicMock, db: MagicMock) -> None:
        db.health_check.return_value = False
        main(["status"])
        assert "Database: unreachable" in capsys.readouterr().out
        registry.list_accounts.assert_not_called()
        db.close.assert_called_once()


class TestMigrate:
    def test_prints_applied_files(self, capsys: pytest.CaptureFixture) -> None:
        with patch("tradebook.cli.load_config", return_value=AppConfig(db_dsn="")), \
                patch("tradebook.cli.Database") as mock_db_cls:
            mock_db_cls.return_value.run_migrations.return_value = ["001_initial_schema.sql"]
            main(["migrate"])

        out = capsys.readouterr().out
        assert "applied 001_initial_schema.sql" in out
        assert "Migrations complete." in out
        mock_db_cls.return_value.close.assert_called_once()
