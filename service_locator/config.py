"""Runtime settings for the service locator.

Settings are read from ``SERVICE_LOCATOR_*`` environment variables, optionally
backed by an env file with ``KEY=value`` lines.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "SERVICE_LOCATOR_"

_TRUTHY = ("1", "true", "yes", "on")


def parse_bool(value: str | None, default: bool) -> bool:
    """Interpret an environment string as a boolean.

    Args:
        value: Raw value (None when unset)
        default: Value to use when unset or blank

    Returns:
        Parsed boolean
    """
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


def load_env_file(path: Path) -> dict[str, str]:
    """Load a ``KEY=value`` env file.

    Blank lines and ``#`` comments are skipped, an ``export `` prefix is
    allowed and surrounding quotes are stripped from values.

    Args:
        path: File to read

    Returns:
        Mapping of keys to raw string values (empty if the file is missing)
    """
    if not path.exists():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[7:]
        if "=" in line:
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")

    return values


@dataclass
class LocatorSettings:
    """Behaviour switches for a ServiceRegistry.

    Attributes:
        auto_dispose: Opt in to calling ``dispose()`` on materialized instances
            that expose one when no explicit disposer was registered. Off by
            default
        check_types: Reject factory results that are not instances of the
            class used as the registration key
        log_level: Level passed to ``configure_logging``
        log_json: Render log lines as JSON instead of console output
        log_file: Append log lines to this file instead of stderr
    """

    auto_dispose: bool = False
    check_types: bool = True
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Path | None = None

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        env_file: Path | None = None,
    ) -> LocatorSettings:
        """Load settings from environment variables.

        Args:
            environ: Environment mapping (defaults to ``os.environ``)
            env_file: Optional env file; real environment variables win

        Returns:
            LocatorSettings instance
        """
        values: dict[str, str] = {}
        if env_file is not None:
            values.update(load_env_file(env_file))
        values.update(os.environ if environ is None else environ)

        def get(name: str) -> str | None:
            return values.get(ENV_PREFIX + name)

        defaults = cls()
        return cls(
            auto_dispose=parse_bool(get("AUTO_DISPOSE"), defaults.auto_dispose),
            check_types=parse_bool(get("CHECK_TYPES"), defaults.check_types),
            log_level=(get("LOG_LEVEL") or defaults.log_level).strip().upper(),
            log_json=parse_bool(get("LOG_JSON"), defaults.log_json),
            log_file=Path(get("LOG_FILE")) if get("LOG_FILE") else defaults.log_file,
        )
