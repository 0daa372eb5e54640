"""Tests for CLI module."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from agent_runner.cli import app

runner = CliRunner()


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "agent-runner v" in result.output

    def test_commands(self):
        result = runner.invoke(app, ["commands"])
        assert result.exit_code == 0
        assert "echo-test" in result.output
        assert "gemini" in result.output

    def test_run_echo_test(self):
        result = runner.invoke(app, ["run", "echo-test"])
        assert result.exit_code == 0
        assert "Hello from AI Agent Tester!" in result.output
        assert "[OK]" in result.output

    def test_run_unknown_command(self):
        result = runner.invoke(app, ["run", "format-disk"])
        assert result.exit_code == 1
        assert "Unknown command" in result.output

    def test_run_requires_message(self):
        result = runner.invoke(app, ["run", "gemini"])
        assert result.exit_code == 1
        assert "requires a message" in result.output

    def test_run_raw_terminal(self):
        result = runner.invoke(app, ["run", "raw-terminal", "echo from-shell"])
        assert result.exit_code == 0
        assert "from-shell" in result.output

    def test_run_failure_exit_code(self):
        result = runner.invoke(app, ["run", "raw-terminal", "exit 3"])
        assert result.exit_code == 1
        assert "ERR(3)" in result.output

    def test_run_api_request_without_url(self):
        result = runner.invoke(app, ["run", "api-request"])
        assert result.exit_code == 1
        assert "URL" in result.output

    def test_run_records_to_thread(self, tmp_path):
        result = runner.invoke(app, ["run", "echo-test", "--thread", "1"])
        assert result.exit_code == 0
        assert "Saved to thread 1" in result.output

        stored = json.loads((tmp_path / "cli-sessions" / "2024-01-15.json").read_text())
        messages = next(s for s in stored if s["id"] == 1)["messages"]
        assert messages[-2]["role"] == "user"
        assert messages[-2]["commandId"] == "echo-test"
        assert messages[-1]["role"] == "system"
        assert messages[-1]["command"] == "echo Hello from AI Agent Tester!"

    def test_run_unknown_thread(self):
        result = runner.invoke(app, ["run", "echo-test", "--thread", "999"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_threads_seeded(self):
        result = runner.invoke(app, ["threads"])
        assert result.exit_code == 0
        assert "Git" in result.output

    def test_show(self):
        result = runner.invoke(app, ["show", "3"])
        assert result.exit_code == 0
        assert "v20.10.0" in result.output

    def test_show_missing(self):
        result = runner.invoke(app, ["show", "999"])
        assert result.exit_code == 1

    def test_delete(self):
        assert runner.invoke(app, ["delete", "5"]).exit_code == 0
        assert runner.invoke(app, ["show", "5"]).exit_code == 1

    def test_config_show_defaults(self):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "shell.timeout" in result.output

    def test_config_set(self, isolated_home):
        result = runner.invoke(app, ["config", "shell.timeout", "45"])
        assert result.exit_code == 0
        assert (isolated_home / "config.toml").exists()

        from agent_runner.config import load_config

        assert load_config().shell.timeout == 45

    def test_config_change_applies_to_next_command(self):
        assert runner.invoke(app, ["run", "raw-terminal", "echo on"]).exit_code == 0

        assert runner.invoke(app, ["config", "shell.enabled", "false"]).exit_code == 0
        result = runner.invoke(app, ["run", "raw-terminal", "echo off"])
        assert result.exit_code == 1
        assert "disabled" in result.output

    def test_config_bad_key(self):
        result = runner.invoke(app, ["config", "shell", "1"])
        assert result.exit_code == 1
        result = runner.invoke(app, ["config", "nope.key", "1"])
        assert result.exit_code == 1

    def test_config_bad_value(self):
        result = runner.invoke(app, ["config", "server.port", "abc"])
        assert result.exit_code == 1

    def test_logs_no_file(self):
        result = runner.invoke(app, ["logs"])
        assert result.exit_code == 0
        assert "no log" in result.output.lower()

    def test_logs_tail(self, tmp_path):
        (tmp_path / "cli.log").write_text("\n".join(f"line {i}" for i in range(10)))
        result = runner.invoke(app, ["logs", "-n", "2"])
        assert result.exit_code == 0
        assert "line 9" in result.output
        assert "line 7" not in result.output
