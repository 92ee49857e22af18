"""Engine configuration.

Limits come from, in increasing priority: built-in defaults, environment
variables, a ``[tool.userprops]`` table in pyproject.toml, and finally an
explicit ``EngineConfig`` passed to an engine call or installed with
:func:`engine_config`.
"""

from __future__ import annotations

import os
import tomllib
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING

from ._errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

ENV_PREFIX = "USER_PROPS_"


@dataclass(slots=True, frozen=True)
class EngineConfig:
    """Resource limits for snippet execution and expression evaluation.

    Attributes:
        execution_limit_ms: Wall-clock budget for one snippet execution.
        max_steps: Loop-iteration budget for one snippet execution.
        max_passes: Ceiling on fixpoint passes in one expression phase.

    """

    execution_limit_ms: int = 40
    max_steps: int = 50_000
    max_passes: int = 10

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                msg = f"Invalid {f.name}: expected a positive integer, got {value!r}"
                raise ConfigError(msg)


def _parse_int(name: str, raw: object) -> int:
    if isinstance(raw, bool):
        msg = f"Invalid {name}: expected integer, got {raw!r}"
        raise ConfigError(msg)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw.strip(), 10)
        except ValueError as e:
            msg = f"Invalid {name}: expected integer, got {raw!r}"
            raise ConfigError(msg) from e
    msg = f"Invalid {name}: expected integer, got {raw!r}"
    raise ConfigError(msg)


def _overrides(source: Mapping[str, object], key_for: dict[str, str], origin: str) -> dict[str, int]:
    result: dict[str, int] = {}
    for field_name, key in key_for.items():
        if key in source:
            result[field_name] = _parse_int(f"{origin}{key}", source[key])
    return result


def config_from_env(environ: Mapping[str, str] | None = None, base: EngineConfig | None = None) -> EngineConfig:
    """Build a config from ``USER_PROPS_*`` environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ``.
        base: Config providing values for variables that are not set.

    Returns:
        The resulting EngineConfig.

    Raises:
        ConfigError: If a variable is not a positive integer.

    """
    environ = os.environ if environ is None else environ
    key_for = {f.name: ENV_PREFIX + f.name.upper() for f in fields(EngineConfig)}
    return replace(base or EngineConfig(), **_overrides(environ, key_for, ""))


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(pyproject_path: Path, base: EngineConfig | None = None) -> EngineConfig:
    """Load and validate the [tool.userprops] table from pyproject.toml.

    Keys use the dataclass field names, with dashes or underscores
    (``max-steps`` and ``max_steps`` are both accepted).

    Raises:
        ConfigError: If the file or the table is invalid.

    """
    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    section = data.get("tool", {}).get("userprops", {})
    if not isinstance(section, dict):
        msg = "Invalid [tool.userprops]: expected a table"
        raise ConfigError(msg)

    known = {f.name for f in fields(EngineConfig)}
    normalized = {str(k).replace("-", "_"): v for k, v in section.items()}
    unknown = sorted(set(normalized) - known)
    if unknown:
        msg = f"Unknown key(s) in [tool.userprops]: {', '.join(unknown)}"
        raise ConfigError(msg)

    key_for = {name: name for name in known}
    return replace(base or EngineConfig(), **_overrides(normalized, key_for, "[tool.userprops]."))


def get_config(start_dir: Path | None = None) -> EngineConfig:
    """Get config from the environment, then pyproject.toml in start_dir or its parents."""
    config = config_from_env()
    pyproject_path = find_pyproject_toml(start_dir)
    if pyproject_path is None:
        return config
    return load_config(pyproject_path, base=config)


_engine_config_var: ContextVar[EngineConfig | None] = ContextVar("engine_config", default=None)


def get_engine_config() -> EngineConfig:
    """Return the config installed with :func:`engine_config`, else one built from the environment."""
    config = _engine_config_var.get()
    if config is None:
        return config_from_env()
    return config


@contextmanager
def engine_config(config: EngineConfig) -> Iterator[EngineConfig]:
    """Context manager installing ``config`` for engine calls that do not pass one.

    Example:
        with engine_config(EngineConfig(max_steps=1_000)):
            evaluate_pipeline(tree)

    """
    token = _engine_config_var.set(config)
    try:
        yield config
    finally:
        _engine_config_var.reset(token)
