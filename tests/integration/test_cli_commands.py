"""Integration tests for the pageviews CLI: exit codes, JSON output and audit trail."""

import json
import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from click.testing import CliRunner
from loguru import logger

from pageviews.cli import ExitCode, cli, main
from pageviews.core.time import format_utc_iso8601, get_current_utc
from pageviews.rollups.time_windows import local_date_string

pytestmark = pytest.mark.integration

VISITOR = "v_1709337600000_abcd1234"
OTHER_VISITOR = "v_1709337600001_wxyz5678"


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Fresh database, no stray config files, loguru restored afterwards."""
    for var in [k for k in os.environ if k.startswith("PAGEVIEWS_")]:
        monkeypatch.delenv(var)

    import pageviews.config.settings as settings_module

    monkeypatch.setattr(settings_module, "_settings", None)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PAGEVIEWS_DB_PATH", str(tmp_path / "pageviews.db"))

    yield tmp_path

    logger.remove()
    logger.add(sys.stderr)


def run_json(capsys, *args: str) -> tuple[int, dict]:
    exit_code = main([*args, "--json"])
    return exit_code, json.loads(capsys.readouterr().out)


class TestExitCodes:
    def test_track_success(self, capsys):
        exit_code, payload = run_json(capsys, "track", "/", VISITOR)

        assert exit_code == ExitCode.SUCCESS
        assert payload["status"] == "success"
        assert payload["data"]["pagePath"] == "/"
        assert payload["data"]["visitorId"] == VISITOR

    def test_untracked_path_is_validation_error(self, capsys):
        exit_code, payload = run_json(capsys, "track", "/admin", VISITOR)

        assert exit_code == ExitCode.VALIDATION_ERROR
        assert payload["status"] == "error"
        assert "Invalid page path" in payload["error"]

    def test_bad_visitor_id_is_validation_error(self, capsys):
        exit_code, _ = run_json(capsys, "track", "/", "visitor-1")

        assert exit_code == ExitCode.VALIDATION_ERROR

    def test_bad_instant_is_validation_error(self, capsys):
        exit_code, _ = run_json(capsys, "track", "/", VISITOR, "--at", "last tuesday")

        assert exit_code == ExitCode.VALIDATION_ERROR

    def test_missing_db_path_is_config_error(self, capsys, monkeypatch):
        monkeypatch.delenv("PAGEVIEWS_DB_PATH")

        exit_code, payload = run_json(capsys, "retention", "stats")

        assert exit_code == ExitCode.CONFIG_ERROR
        assert "PAGEVIEWS_DB_PATH" in payload["error"]

    def test_unopenable_store(self, capsys, monkeypatch, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        monkeypatch.setenv("PAGEVIEWS_DB_PATH", str(blocker / "pv.db"))

        exit_code, payload = run_json(capsys, "dashboard", "today")

        assert exit_code == ExitCode.STORE_UNAVAILABLE
        assert payload["meta"]["error_type"] == "StoreUnavailableError"

    def test_usage_error(self):
        assert main(["retention", "run", "--deadline", "soon"]) == 2


class TestRetentionFlow:
    def test_stats_then_run_then_trends(self, capsys):
        now = get_current_utc()
        old = now - timedelta(days=10)
        old_day = local_date_string(old)

        main(["track", "/", VISITOR, "--at", format_utc_iso8601(old), "--json"])
        main(["track", "/checkout", VISITOR, "--at", format_utc_iso8601(old), "--json"])
        main(["track", "/", OTHER_VISITOR, "--json"])
        capsys.readouterr()

        exit_code, stats = run_json(capsys, "retention", "stats")
        assert exit_code == ExitCode.SUCCESS
        assert stats["data"]["currentRecordCount"] == 3
        assert stats["data"]["recordsToCleanup"] == 2
        assert stats["data"]["oldestRecordDate"] == old_day
        assert stats["data"]["oldestRecordAge"] == "10d ago"

        exit_code, run = run_json(capsys, "retention", "run", "--deadline", "60")
        assert exit_code == ExitCode.SUCCESS
        assert run["data"]["recordsArchived"] == 2
        assert run["data"]["recordsDeleted"] == 2
        assert run["data"]["summariesUpdated"] == 1

        exit_code, again = run_json(capsys, "retention", "run")
        assert exit_code == ExitCode.SUCCESS
        assert again["data"]["message"] == "No records needed cleanup."

        exit_code, trends = run_json(capsys, "dashboard", "trends", "--days", "14")
        by_date = {row["date"]: row for row in trends["data"]}
        assert by_date[old_day]["landingVisits"] == 1
        assert by_date[old_day]["conversionRate"] == 100.0

        exit_code, today = run_json(capsys, "dashboard", "today")
        assert today["data"]["landingUniqueVisitors"] == 1


class TestDashboardCommands:
    def test_revenue_commands(self, capsys):
        main(["orders", "add", "A-1", "120.5", "--json"])
        main(["orders", "add", "A-2", "80", "--status", "pending", "--json"])
        capsys.readouterr()

        exit_code, chart = run_json(capsys, "dashboard", "chart", "--days", "3")
        assert exit_code == ExitCode.SUCCESS
        assert len(chart["data"]) == 3
        assert chart["data"][-1]["isToday"] is True
        assert chart["data"][-1]["revenue"] == 120.5

        exit_code, monthly = run_json(capsys, "dashboard", "monthly", "--metric", "revenue")
        assert monthly["data"]["currentMonth"] == 120.5
        assert monthly["data"]["percentageChange"] == 0.0

    def test_snapshot(self, capsys):
        main(["track", "/", VISITOR, "--json"])
        capsys.readouterr()

        exit_code, snapshot = run_json(capsys, "dashboard", "snapshot")

        assert exit_code == ExitCode.SUCCESS
        assert snapshot["data"]["pageViews"]["today"]["landingVisits"] == 1
        assert "monthlyRevenueComparison" in snapshot["data"]


class TestOperationalFlags:
    def test_trace_id_is_echoed(self, capsys):
        exit_code = main(["retention", "stats", "--json", "--trace-id", "trace-test-1"])

        assert exit_code == ExitCode.SUCCESS
        assert json.loads(capsys.readouterr().out)["trace_id"] == "trace-test-1"

    def test_audit_trail_and_log_file(self, capsys, monkeypatch, tmp_path):
        log_dir = tmp_path / "logs"
        monkeypatch.setenv("PAGEVIEWS_LOG_DIR", str(log_dir))

        main(["retention", "run", "--json", "--trace-id", "trace-audit"])

        audit_files = list((log_dir / "audit").glob("audit-*.jsonl"))
        assert len(audit_files) == 1
        entry = json.loads(audit_files[0].read_text().splitlines()[-1])
        assert entry["command"] == "retention.run"
        assert entry["trace_id"] == "trace-audit"
        assert entry["result"]["status"] == "success"
        assert (log_dir / "pageviews.jsonl").exists()

    def test_human_output(self, capsys):
        exit_code = main(["retention", "stats"])

        assert exit_code == ExitCode.SUCCESS
        assert "currentRecordCount: 0" in capsys.readouterr().out


def test_click_runner_reports_exit_codes(isolated: Path):
    runner = CliRunner()

    ok = runner.invoke(cli, ["track", "/checkout", VISITOR, "--json"])
    bad = runner.invoke(cli, ["track", "/nope", VISITOR, "--json"])

    assert ok.exit_code == ExitCode.SUCCESS
    assert json.loads(ok.stdout)["data"]["pagePath"] == "/checkout"
    assert bad.exit_code == ExitCode.VALIDATION_ERROR
