"""
Tests for the omnihook CLI.
"""

from unittest.mock import patch
from uuid import uuid4

import pytest
from typer.testing import CliRunner

from omnihook.cli.main import APP_FACTORY, app

runner = CliRunner()


@pytest.fixture
def cli_settings(test_settings, temp_db, monkeypatch):
    test_settings.database_url = temp_db
    monkeypatch.setattr("omnihook.cli.main.settings", test_settings)
    return test_settings


class TestServe:
    def test_runs_uvicorn_with_app_factory(self):
        with patch("omnihook.cli.main.subprocess.run") as run:
            result = runner.invoke(app, ["serve", "--port", "9000", "--workers", "2"])

        assert result.exit_code == 0
        cmd = run.call_args.args[0]
        assert cmd[1:5] == ["-m", "uvicorn", APP_FACTORY, "--factory"]
        assert cmd[cmd.index("--port") + 1] == "9000"
        assert cmd[-2:] == ["--workers", "2"]

    def test_reload_replaces_workers(self):
        with patch("omnihook.cli.main.subprocess.run") as run:
            runner.invoke(app, ["serve", "--reload"])

        cmd = run.call_args.args[0]
        assert "--reload" in cmd
        assert "--workers" not in cmd


class TestRecordStoreCommands:
    def test_init_db_then_empty_dead_letters(self, cli_settings):
        created = runner.invoke(app, ["init-db"])
        listed = runner.invoke(app, ["dead-letters"])

        assert created.exit_code == 0
        assert "Tables created" in created.output
        assert listed.exit_code == 0
        assert "No dead-lettered events" in listed.output

    def test_replay_rejects_bad_id(self, cli_settings):
        result = runner.invoke(app, ["replay", "not-a-uuid"])

        assert result.exit_code == 2

    def test_replay_unknown_entry(self, cli_settings):
        runner.invoke(app, ["init-db"])

        result = runner.invoke(app, ["replay", str(uuid4())])

        assert result.exit_code == 1
