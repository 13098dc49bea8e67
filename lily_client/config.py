"""
Client configuration.

Only three options are exposed to the host: the server executable, the
watched file glob and the diagnostics channel label. Everything else has
a fixed default.

Sources are layered, later ones winning:
- dataclass defaults
- the [tool.lily-client] table of a TOML file
- LILY_* environment variables
- explicit overrides (CLI flags)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

TOML_TABLE = ("tool", "lily-client")

ENV_OVERRIDES = {
    "LILY_EXECUTABLE": "executable",
    "LILY_FILE_GLOB": "file_glob",
    "LILY_DIAGNOSTIC_CHANNEL": "diagnostic_channel",
}


@dataclass(frozen=True)
class ClientConfig:
    executable: str = "lily"
    file_glob: str = "**/*.lily"
    diagnostic_channel: str = "lily"
    language_id: str = "lily"
    restart_command: str = "lily.commands.restart"
    handshake_timeout_s: float = 10.0
    shutdown_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        for name in ("executable", "file_glob", "diagnostic_channel", "language_id", "restart_command"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
        for name in ("handshake_timeout_s", "shutdown_timeout_s"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"{name} must be a positive number")

    def with_overrides(self, **overrides: Any) -> ClientConfig:
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _table_from_toml(path: Path) -> dict[str, Any]:
    import tomllib

    data = tomllib.loads(path.read_text(encoding="utf-8"))
    table: Any = data
    for key in TOML_TABLE:
        table = table.get(key, {}) if isinstance(table, dict) else {}
    if not isinstance(table, dict):
        raise ValueError(f"[{'.'.join(TOML_TABLE)}] in {path} must be a table")
    # TOML keys use dashes, dataclass fields use underscores
    return {str(k).replace("-", "_"): v for k, v in table.items()}


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ClientConfig:
    """
    Resolve the client configuration.

    Args:
        path: TOML file holding a [tool.lily-client] table (optional)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated ClientConfig

    Raises:
        ValueError: unknown keys or invalid values
    """
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(ClientConfig)}

    values: dict[str, Any] = {}
    if path is not None:
        values.update(_table_from_toml(path))

    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    for env_name, field_name in ENV_OVERRIDES.items():
        env_value = environ.get(env_name)
        if env_value:
            values[field_name] = env_value

    return ClientConfig(**values)
