"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from lily_client.config import ClientConfig, load_config


def write_toml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "pyproject.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestClientConfig:
    """Defaults and validation."""

    def test_defaults(self):
        config = ClientConfig()

        assert config.executable == "lily"
        assert config.file_glob == "**/*.lily"
        assert config.diagnostic_channel == "lily"
        assert config.restart_command == "lily.commands.restart"

    @pytest.mark.parametrize("field", ["executable", "file_glob", "diagnostic_channel"])
    def test_empty_strings_rejected(self, field: str):
        with pytest.raises(ValueError, match=field):
            ClientConfig(**{field: "  "})

    @pytest.mark.parametrize("value", [0, -1.5, True])
    def test_timeouts_must_be_positive_numbers(self, value):
        with pytest.raises(ValueError, match="handshake_timeout_s"):
            ClientConfig(handshake_timeout_s=value)

    def test_with_overrides_ignores_none(self):
        config = ClientConfig().with_overrides(executable="/opt/lily/bin/lily", file_glob=None)

        assert config.executable == "/opt/lily/bin/lily"
        assert config.file_glob == "**/*.lily"

    def test_with_no_overrides_returns_same_instance(self):
        config = ClientConfig()
        assert config.with_overrides(executable=None) is config


class TestLoadConfig:
    """TOML table and environment layering."""

    def test_no_sources(self):
        assert load_config(None, environ={}) == ClientConfig()

    def test_reads_tool_table_with_dashed_keys(self, tmp_path: Path):
        path = write_toml(
            tmp_path,
            """
[tool.lily-client]
executable = "lily-nightly"
file-glob = "src/**/*.lily"
shutdown-timeout-s = 2.5
""",
        )

        config = load_config(path, environ={})

        assert config.executable == "lily-nightly"
        assert config.file_glob == "src/**/*.lily"
        assert config.shutdown_timeout_s == 2.5

    def test_file_without_table(self, tmp_path: Path):
        path = write_toml(tmp_path, "[project]\nname = 'x'\n")
        assert load_config(path, environ={}) == ClientConfig()

    def test_environment_wins_over_file(self, tmp_path: Path):
        path = write_toml(tmp_path, '[tool.lily-client]\nexecutable = "from-file"\n')

        config = load_config(
            path,
            environ={"LILY_EXECUTABLE": "from-env", "LILY_DIAGNOSTIC_CHANNEL": "lily-dev"},
        )

        assert config.executable == "from-env"
        assert config.diagnostic_channel == "lily-dev"

    def test_empty_environment_value_is_ignored(self):
        assert load_config(None, environ={"LILY_FILE_GLOB": ""}).file_glob == "**/*.lily"

    def test_unknown_keys(self, tmp_path: Path):
        path = write_toml(tmp_path, '[tool.lily-client]\nexecutable = "lily"\ncolour = "blue"\n')

        with pytest.raises(ValueError, match="Unknown configuration keys: colour"):
            load_config(path, environ={})

    def test_invalid_value(self, tmp_path: Path):
        path = write_toml(tmp_path, "[tool.lily-client]\nhandshake-timeout-s = 0\n")

        with pytest.raises(ValueError):
            load_config(path, environ={})

    def test_invalid_toml(self, tmp_path: Path):
        path = write_toml(tmp_path, "[tool.lily-client\n")

        with pytest.raises(ValueError):
            load_config(path, environ={})
