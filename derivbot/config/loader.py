"""Layered TOML configuration.

Sources, later ones winning key by key within a section:

1. ``config/default.toml``
2. ``config/{env}.toml``, env from ``DERIVBOT_ENV`` (default ``development``)
3. ``DERIVBOT__<section>__<key>`` environment variables

Every file is a set of ``[section]`` tables holding scalars or lists; there
is no deeper nesting. Environment values are read as TOML literals
(``5``, ``true``, ``[0.35, 0.69]``); a bare comma list such as
``R_10,R_25`` or a plain word is accepted too.
"""

from __future__ import annotations

import os

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_PREFIX = "DERIVBOT__"

Sections = dict[str, dict[str, Any]]


class ConfigError(Exception):
    """Raised when config loading or validation fails."""


class ValidationError(ConfigError):
    """Raised when startup inputs (instruments, threshold) are invalid."""


def parse_env_value(raw: str) -> Any:
    """Read one environment value the way it would be written in TOML."""
    try:
        return tomllib.loads(f"value = {raw}")["value"]
    except tomllib.TOMLDecodeError:
        pass
    if "," in raw:
        return [parse_env_value(item.strip()) for item in raw.split(",") if item.strip()]
    return raw


def env_sections(environ: Mapping[str, str]) -> Sections:
    """Collect ``DERIVBOT__section__key`` variables into section tables."""
    sections: Sections = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        parts = name[len(ENV_PREFIX) :].lower().split("__")
        if len(parts) != 2 or not all(parts):
            msg = f"{name}: expected {ENV_PREFIX}<section>__<key>"
            raise ConfigError(msg)
        section, key = parts
        sections.setdefault(section, {})[key] = parse_env_value(raw)
    return sections


def _overlay(target: Sections, layer: Mapping[str, Any], source: str) -> None:
    for section, values in layer.items():
        if not isinstance(values, dict):
            msg = f"{source}: '{section}' must be a [section] table"
            raise ConfigError(msg)
        target.setdefault(section, {}).update(values)


class ConfigLoader:
    """Reads the config directory and environment into section tables."""

    def __init__(
        self,
        config_dir: str | Path = "config",
        env: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config_dir = Path(config_dir)
        self._env = env or os.environ.get("DERIVBOT_ENV", "development")
        self._environ = os.environ if environ is None else environ
        self._sections: Sections | None = None
        self._sources: list[str] = []

    @property
    def env(self) -> str:
        return self._env

    @property
    def sources(self) -> list[str]:
        """Files and layers applied by the last ``load()``, in order."""
        return list(self._sources)

    def load(self) -> Sections:
        default_path = self._config_dir / "default.toml"
        if not default_path.exists():
            msg = f"Default config not found: {default_path}"
            raise ConfigError(msg)

        sections: Sections = {}
        sources = [default_path.name]
        _overlay(sections, self._read(default_path), default_path.name)

        env_path = self._config_dir / f"{self._env}.toml"
        if env_path.exists():
            _overlay(sections, self._read(env_path), env_path.name)
            sources.append(env_path.name)

        overrides = env_sections(self._environ)
        if overrides:
            _overlay(sections, overrides, "environment")
            sources.append("environment")

        self._sections = sections
        self._sources = sources
        return sections

    def section(self, name: str) -> dict[str, Any]:
        """Merged values of one ``[section]``; empty when absent."""
        sections = self._sections if self._sections is not None else self.load()
        return dict(sections.get(name, {}))

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"{path}: {exc}"
            raise ConfigError(msg) from exc
