"""Tests for the command line entry point."""

from __future__ import annotations

import asyncio
import json
from datetime import date
from pathlib import Path

import pytest

from wattly import main as cli
from wattly.db.engine import close_db, init_db
from wattly.db.repository import Repository

CSV = "pod,timestamp,consumption,production\nCH-CONS-1,2025-01-15T12:00:00,12.5,0\n"


@pytest.fixture
def defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    path = tmp_path / "config.defaults.yaml"
    path.write_text(f"db:\n  path: '{tmp_path / 'cli.db'}'\n")
    return path


def _seed(db_path: Path) -> int:
    async def seed() -> int:
        repo = Repository(await init_db(db_path))
        org_id = await repo.create_organization("Soleil du Lac")
        member_id = await repo.create_member(org_id, "Claire", "Consumer")
        await repo.create_meter_point(org_id, member_id, "CH-CONS-1")
        await close_db()
        return org_id

    return asyncio.run(seed())


class TestParseArgs:
    def test_period_command(self) -> None:
        args = cli.parse_args(["generate-invoices", "3", "2025", "1", "--member", "7", "--member", "8"])
        assert args.command == "generate-invoices"
        assert (args.organization_id, args.year, args.month) == (3, 2025, 1)
        assert args.member_ids == [7, 8]

    def test_overdue_date(self) -> None:
        args = cli.parse_args(["check-overdue", "--today", "2025-03-01"])
        assert args.today == date(2025, 3, 1)

    def test_retry_default(self) -> None:
        assert cli.parse_args(["retry-deliveries"]).max_attempts == 5

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.parse_args([])


class TestMain:
    def test_import_and_overview(
        self, tmp_path: Path, defaults: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        org_id = _seed(tmp_path / "cli.db")
        curve = tmp_path / "curve.csv"
        curve.write_text(CSV)
        base = ["--defaults", str(defaults), "--config", str(tmp_path / "missing.yaml")]

        assert cli.main([*base, "import", str(org_id), str(curve)]) == 0
        imported = json.loads(capsys.readouterr().out)
        assert imported["accepted"] == 1

        assert cli.main([*base, "check-overdue", "--today", "2099-01-01"]) == 0
        assert json.loads(capsys.readouterr().out)["overdue_count"] == 0

    def test_billing_error_exit_code(
        self, tmp_path: Path, defaults: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        base = ["--defaults", str(defaults), "--config", str(tmp_path / "missing.yaml")]
        assert cli.main([*base, "recompute", "999", "2025", "1"]) == 1
        err = capsys.readouterr().err
        error = json.loads(err[err.index("{"):])
        assert error["error"] == "NotFoundError"
