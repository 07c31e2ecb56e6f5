"""Tests for the twelveweeks command-line interface."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from tests.conftest import FakePlannerApi, seed_plan
from twelveweeks import cli
from twelveweeks.api.client import PlannerClient


@pytest.fixture()
def run_cli(tmp_path: Path, api: FakePlannerApi):
    config = tmp_path / "config.yaml"
    config.write_text(f"log_dir: {tmp_path / 'logs'}\nlog_level: WARNING\n")
    logger = logging.getLogger("twelveweeks")
    before = list(logger.handlers)

    def fake_client(cfg: dict) -> PlannerClient:
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=api.app), base_url="http://test")
        return PlannerClient(http=http)

    def run(*argv: str) -> None:
        with patch.object(PlannerClient, "from_config", side_effect=fake_client):
            cli.main(["--config", str(config), *argv])

    yield run

    for handler in logger.handlers[len(before):]:
        handler.close()
        logger.removeHandler(handler)


class TestCli:
    def test_plans(self, api: FakePlannerApi, run_cli, capsys: pytest.CaptureFixture) -> None:
        seed_plan(api)
        run_cli("plans")
        out = capsys.readouterr().out
        assert "1 plan(s)" in out
        assert "Q1 Sprint" in out
        assert "2026-01-05 -> 2026-03-30" in out

    def test_tree(self, api: FakePlannerApi, run_cli, capsys: pytest.CaptureFixture) -> None:
        seed_plan(api)
        run_cli("tree", "--plan", "plan-1")
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "[ ] Q1 Sprint"
        assert lines[1] == "  [ ] Ship the book (0%)"
        assert lines[2] == "    [ ] Draft done"

    def test_day_lanes(self, api: FakePlannerApi, run_cli, capsys: pytest.CaptureFixture) -> None:
        seed_plan(api)
        api.seed("tasks", plan_id="plan-1", title="Write 500 words", week_number=1, due_day=1, priority="A")
        run_cli("day", "--plan", "plan-1", "--week", "1", "--day", "1")
        out = capsys.readouterr().out
        assert "most_important (1/1)" in out
        assert "[A] Write 500 words (todo)" in out

    def test_api_error_exits(self, api: FakePlannerApi, run_cli, capsys: pytest.CaptureFixture) -> None:
        with pytest.raises(SystemExit) as exc:
            run_cli("tree", "--plan", "missing")
        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_review_write_and_complete(self, api: FakePlannerApi, run_cli, capsys: pytest.CaptureFixture) -> None:
        seed_plan(api)
        run_cli("review", "--plan", "plan-1", "--week", "1", "--worked", "Morning writing", "--complete")
        out = capsys.readouterr().out
        assert "Week 1 review (complete)" in out
        assert "Morning writing" in out
        assert "[ ] Draft done" in out
        row = next(iter(api.db["weekly-reviews"].values()))
        assert row["is_completed"] is True

    def test_review_empty_cannot_complete(self, api: FakePlannerApi, run_cli, capsys: pytest.CaptureFixture) -> None:
        seed_plan(api)
        run_cli("review", "--plan", "plan-1", "--week", "2", "--complete")
        captured = capsys.readouterr()
        assert "Week 2 review (not started)" in captured.out
        assert "Nothing to complete" in captured.err
        assert api.db["weekly-reviews"] == {}
