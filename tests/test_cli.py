"""End-to-end tests for the command line interface."""

import json
import logging
import signal
import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from store_migrate import cli

CITIES = [
    {"id": "c1", "name": "Pune", "created_at": "2024-01-01T00:00:00Z", "updated_at": "2024-01-01T00:00:00Z"},
    {"id": "c2", "name": "Delhi", "created_at": "2024-01-02T00:00:00Z", "updated_at": None},
]
CLUSTERS = [
    {"id": "k1", "name": "West", "city_id": "c1", "created_at": "2024-01-05T00:00:00Z"},
    {"id": "k2", "name": "North", "city_id": "c2", "created_at": "2024-01-06T00:00:00Z"},
    {"id": "k3", "name": "Ghost", "city_id": "c9", "created_at": "2024-01-07T00:00:00Z"},
]


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def export_dir(tmp_path):
    directory = tmp_path / "exports"
    directory.mkdir()
    (directory / "master_cities.json").write_text(json.dumps(CITIES))
    (directory / "master_clusters.json").write_text(json.dumps(CLUSTERS))
    return directory


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "target.db"
    connection = sqlite3.connect(path)
    connection.execute(
        "CREATE TABLE master_cities (id TEXT PRIMARY KEY, name TEXT NOT NULL, created_at TEXT, updated_at TEXT)"
    )
    connection.execute(
        "CREATE TABLE master_clusters (id TEXT PRIMARY KEY, name TEXT NOT NULL, city_id TEXT, "
        "created_at TEXT, updated_at TEXT)"
    )
    connection.commit()
    connection.close()
    return path


@pytest.fixture
def env(monkeypatch, db_path):
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_KEY", "SUPABASE_ANON_KEY", "LOG_LEVEL", "EXISTING_ROWS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TARGET_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", str(db_path))
    monkeypatch.setenv("BATCH_DELAY_MS", "0")
    with patch("store_migrate.config.load_dotenv"):
        yield


def rows(db_path, table):
    connection = sqlite3.connect(db_path)
    try:
        return connection.execute(f"SELECT * FROM {table} ORDER BY id").fetchall()
    finally:
        connection.close()


def run(*argv):
    return cli.main(list(argv))


class TestPlan:
    """Dependency order output"""

    def test_plan(self, env, capsys):
        assert run("plan") == cli.EXIT_OK
        out = capsys.readouterr().out
        assert out.index("employees") < out.index("issues") < out.index("ticket_feedback")

    def test_plan_json_only(self, env, capsys):
        assert run("plan", "--only", "master_clusters", "--json") == cli.EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert [s["name"] for s in data["order"]] == ["master_cities", "master_clusters"]

    def test_no_command(self, env, capsys):
        assert run() == cli.EXIT_FATAL


class TestMigrate:
    """Migration exit codes and output"""

    def test_migrate(self, env, export_dir, db_path, capsys):
        code = run("migrate", "--source-dir", str(export_dir), "--only", "master_clusters")
        assert code == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "MIGRATION SUMMARY" in out
        assert "PASS" in out
        assert len(rows(db_path, "master_cities")) == 2
        assert rows(db_path, "master_cities")[0][2] == "2024-01-01 00:00:00"
        assert len(rows(db_path, "master_clusters")) == 3

    def test_rerun_is_idempotent(self, env, export_dir, db_path, capsys):
        run("migrate", "--source-dir", str(export_dir), "--only", "master_clusters")
        capsys.readouterr()
        code = run("migrate", "--source-dir", str(export_dir), "--only", "master_clusters", "--json")
        assert code == cli.EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["total_migrated"] == 0
        assert data["per_type"]["master_clusters"]["skipped"] == 3
        assert len(rows(db_path, "master_clusters")) == 3

    def test_json_report(self, env, export_dir, capsys):
        code = run("migrate", "--source-dir", str(export_dir), "--only", "master_cities", "--json")
        assert code == cli.EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["per_type"]["master_cities"]["migrated"] == 2
        assert data["total_errors"] == 0

    def test_existing_rows_column(self, env, export_dir, capsys):
        run("migrate", "--source-dir", str(export_dir), "--only", "master_cities")
        capsys.readouterr()
        run("migrate", "--source-dir", str(export_dir), "--only", "master_cities", "--existing-rows", "report")
        assert "Existing" in capsys.readouterr().out

    def test_row_errors_exit_code(self, env, export_dir, db_path):
        broken = CITIES + [{"id": "c3", "name": None, "created_at": "2024-01-03T00:00:00Z"}]
        (export_dir / "master_cities.json").write_text(json.dumps(broken))
        code = run("migrate", "--source-dir", str(export_dir), "--only", "master_cities")
        assert code == cli.EXIT_ROW_ERRORS
        assert len(rows(db_path, "master_cities")) == 2

    def test_dry_run(self, env, export_dir, db_path):
        code = run("migrate", "--source-dir", str(export_dir), "--only", "master_cities", "--dry-run")
        assert code == cli.EXIT_OK
        assert rows(db_path, "master_cities") == []

    def test_report_dir(self, env, export_dir, tmp_path):
        reports = tmp_path / "reports"
        run("migrate", "--source-dir", str(export_dir), "--only", "master_cities", "--report-dir", str(reports))
        saved = list(reports.glob("migration_report_*.json"))
        assert len(saved) == 1
        assert json.loads(saved[0].read_text())["total_migrated"] == 2

    def test_log_dir(self, env, export_dir, tmp_path):
        logs = tmp_path / "logs"
        run("migrate", "--source-dir", str(export_dir), "--only", "master_cities", "--log-dir", str(logs))
        assert (logs / "migration.log").exists()
        assert (logs / "migration_errors.log").exists()
        assert "Completed master_cities" in (logs / "migration.log").read_text()

    def test_missing_source_settings(self, env, capsys):
        assert run("migrate", "--only", "master_cities") == cli.EXIT_FATAL

    def test_unknown_entity_type(self, env, export_dir):
        assert run("migrate", "--source-dir", str(export_dir), "--only", "invoices") == cli.EXIT_FATAL

    def test_unreachable_target(self, env, export_dir, monkeypatch, tmp_path):
        monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "missing" / "target.db"))
        assert run("migrate", "--source-dir", str(export_dir), "--only", "master_cities") == cli.EXIT_FATAL

    def test_abort_prints_partial_summary(self, env, export_dir, capsys):
        (export_dir / "master_clusters.json").unlink()
        code = run("migrate", "--source-dir", str(export_dir), "--only", "master_clusters")
        assert code == cli.EXIT_FATAL
        out = capsys.readouterr().out
        assert "master_cities" in out
        assert "ABORTED while migrating master_clusters" in out

    def test_non_object_export_entry_is_a_row_error(self, env, export_dir, db_path):
        (export_dir / "master_cities.json").write_text(json.dumps(CITIES + ["garbage"]))
        code = run("migrate", "--source-dir", str(export_dir), "--only", "master_cities")
        assert code == cli.EXIT_ROW_ERRORS
        assert len(rows(db_path, "master_cities")) == 2


class TestVerify:
    """Verification exit codes"""

    def test_findings_exit_code(self, env, export_dir, capsys):
        run("migrate", "--source-dir", str(export_dir), "--only", "master_clusters")
        capsys.readouterr()
        code = run("verify", "--source-dir", str(export_dir), "--only", "master_clusters")
        assert code == cli.EXIT_FINDINGS
        out = capsys.readouterr().out
        assert "master_clusters.city_id -> master_cities: 1 orphaned references" in out

    def test_clean_verification(self, env, export_dir):
        run("migrate", "--source-dir", str(export_dir), "--only", "master_cities")
        code = run("verify", "--source-dir", str(export_dir), "--only", "master_cities")
        assert code == cli.EXIT_OK

    def test_without_source_counts(self, env, capsys):
        code = run("verify", "--no-source-counts", "--only", "master_cities", "--json")
        assert code == cli.EXIT_OK
        assert json.loads(capsys.readouterr().out)["count"] == 0

    def test_missing_tables_reported(self, env, capsys):
        code = run("verify", "--no-source-counts", "--only", "issues", "--json")
        assert code == cli.EXIT_FINDINGS
        kinds = {f["kind"] for f in json.loads(capsys.readouterr().out)["findings"]}
        assert kinds == {"missing_table"}

    def test_run_migrates_then_verifies(self, env, export_dir, db_path, capsys):
        code = run("run", "--source-dir", str(export_dir), "--only", "master_clusters")
        assert code == cli.EXIT_FINDINGS
        out = capsys.readouterr().out
        assert "MIGRATION SUMMARY" in out
        assert "VERIFICATION REPORT" in out
        assert len(rows(db_path, "master_clusters")) == 3


class TestCheck:
    """Pre-flight command"""

    def test_ready(self, env, export_dir, capsys):
        code = run("check", "--source-dir", str(export_dir), "--only", "master_clusters")
        assert code == cli.EXIT_OK
        assert "Ready to migrate" in capsys.readouterr().out

    def test_missing_export(self, env, export_dir, capsys):
        code = run("check", "--source-dir", str(export_dir), "--only", "issues")
        assert code == cli.EXIT_FATAL
        assert "Not ready to migrate" in capsys.readouterr().out


class TestSignals:
    """Interrupt and termination handling"""

    def test_sigterm_closes_target_and_exits(self):
        target = MagicMock()
        before = signal.getsignal(signal.SIGTERM)
        previous = cli.install_signal_handlers(target)
        try:
            handler = signal.getsignal(signal.SIGTERM)
            assert handler is not before
            with patch("store_migrate.cli.logging.shutdown") as shutdown:
                with pytest.raises(SystemExit) as exc_info:
                    handler(signal.SIGTERM, None)
            assert exc_info.value.code == 128 + signal.SIGTERM
            target.close.assert_called_once()
            shutdown.assert_called_once()
        finally:
            cli.restore_signal_handlers(previous)
        assert signal.getsignal(signal.SIGTERM) == before

    def test_sigint_handler_installed_and_restored(self):
        before = signal.getsignal(signal.SIGINT)
        previous = cli.install_signal_handlers(MagicMock())
        try:
            assert signal.getsignal(signal.SIGINT) is not before
            assert previous[signal.SIGINT] == before
        finally:
            cli.restore_signal_handlers(previous)
        assert signal.getsignal(signal.SIGINT) == before

    def test_logs_flushed_even_if_close_fails(self):
        target = MagicMock()
        target.close.side_effect = OSError("socket already gone")
        previous = cli.install_signal_handlers(target)
        try:
            handler = signal.getsignal(signal.SIGTERM)
            with patch("store_migrate.cli.logging.shutdown") as shutdown:
                with pytest.raises(SystemExit):
                    handler(signal.SIGTERM, None)
            shutdown.assert_called_once()
        finally:
            cli.restore_signal_handlers(previous)
