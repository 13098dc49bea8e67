"""Tests for the lily-client command line."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from lily_client.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestConfigCommand:
    """Configuration resolution as seen from the CLI."""

    def test_defaults(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch):
        for name in ("LILY_EXECUTABLE", "LILY_FILE_GLOB", "LILY_DIAGNOSTIC_CHANNEL"):
            monkeypatch.delenv(name, raising=False)

        result = runner.invoke(cli, ["config"])

        assert result.exit_code == 0, result.output
        assert "executable" in result.output
        assert "**/*.lily" in result.output

    def test_flags_override_file_and_environment(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        config_file = tmp_path / "lily.toml"
        config_file.write_text('[tool.lily-client]\nexecutable = "from-file"\n', encoding="utf-8")
        monkeypatch.setenv("LILY_EXECUTABLE", "from-env")

        result = runner.invoke(cli, ["--config", str(config_file), "--executable", "from-flag", "config"])

        assert result.exit_code == 0, result.output
        assert "from-flag" in result.output
        assert "from-env" not in result.output

    def test_invalid_config_file(self, runner: CliRunner, tmp_path: Path):
        config_file = tmp_path / "lily.toml"
        config_file.write_text('[tool.lily-client]\nflavour = "x"\n', encoding="utf-8")

        result = runner.invoke(cli, ["--config", str(config_file), "config"])

        assert result.exit_code == 1
        assert "Unknown configuration keys: flavour" in result.output


class TestCheckCommand:
    """One-shot diagnostics."""

    def test_missing_server_exits_2(self, runner: CliRunner, tmp_path: Path):
        source = tmp_path / "a.lily"
        source.write_text("let x = 1\n", encoding="utf-8")

        result = runner.invoke(cli, ["--executable", "lily-definitely-not-installed", "check", str(source)])

        assert result.exit_code == 2

    def test_clean_file(self, runner: CliRunner, lily_on_path, tmp_path: Path):
        source = tmp_path / "clean.lily"
        source.write_text("let x = 1\n", encoding="utf-8")

        result = runner.invoke(cli, ["check", "--wait", "10", str(source)])

        assert result.exit_code == 0, result.output
        assert "0 error(s)" in result.output

    def test_file_with_errors(self, runner: CliRunner, lily_on_path, tmp_path: Path):
        source = tmp_path / "broken.lily"
        source.write_text("let x = error\n", encoding="utf-8")

        result = runner.invoke(cli, ["check", "--wait", "10", str(source)])

        assert result.exit_code == 1, result.output
        assert "unexpected error token" in result.output
        assert "1 error(s)" in result.output
        methods = [entry["method"] for entry in lily_on_path.entries()]
        assert methods[-3:] == ["textDocument/didClose", "shutdown", "exit"]

    def test_requires_files(self, runner: CliRunner):
        result = runner.invoke(cli, ["check"])

        assert result.exit_code == 2
        assert "Missing argument" in result.output


class TestServeCommand:
    def test_missing_server_exits_1(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(cli, ["--executable", "lily-definitely-not-installed", "serve", str(tmp_path)])

        assert result.exit_code == 1
