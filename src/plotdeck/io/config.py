"""
Runtime settings for plotdeck.

Defines Settings, a frozen dataclass carrying the output base directory, the
configuration directory and the batch runner's tuning knobs. Defaults come from
plotdeck.core.constants.

Precedence
- environment (PLOTDECK_*) > TOML > defaults. CLI flags are applied by the caller
  on top of the loaded settings.

TOML lookup (when no explicit path is given)
1) ./plotdeck.toml, either a [plotdeck] table or top-level keys
2) ./pyproject.toml under [tool.plotdeck]

Notes
- Invalid values raise ConfigurationError naming the key; unknown keys are ignored.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from plotdeck.core.constants import DEFAULT_CONCURRENCY, DEFAULT_HEARTBEAT_SECONDS, DEFAULT_OUT_DIR
from plotdeck.core.errors import ConfigurationError

__all__ = ["Settings", "ENV_PREFIX"]

logger = logging.getLogger(__name__)

ENV_PREFIX = "PLOTDECK_"

_TRUE = {"1", "true", "t", "yes", "y", "on"}
_FALSE = {"0", "false", "f", "no", "n", "off", ""}


def _bool(key: str, v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        lo = v.strip().lower()
        if lo in _TRUE:
            return True
        if lo in _FALSE:
            return False
    raise ConfigurationError(f"setting {key!r} must be a boolean, got {v!r}")


def _number(key: str, v: Any, kind: type[int] | type[float], minimum: float) -> Any:
    try:
        n = kind(v)
    except (TypeError, ValueError):
        raise ConfigurationError(f"setting {key!r} must be a number, got {v!r}") from None
    if n < minimum:
        raise ConfigurationError(f"setting {key!r} must be at least {minimum}, got {n}")
    return n


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for plot generation.

    Attributes:
        out_dir (str): Base directory of the dated artifact hierarchy.
        conf_dir (str): Directory holding profiles.yaml, colors.yaml and plot
            definitions. Empty means "not configured".
        concurrency (int): Width of the batch worker pool (>= 1).
        compact (bool): Write compact JSON instead of indented JSON.
        heartbeat_seconds (float): Interval of the per-plot progress log (> 0).

    Examples:
        >>> Settings(out_dir="charts", concurrency=2)  # doctest: +ELLIPSIS
        Settings(out_dir='charts', ...)
    """

    out_dir: str = DEFAULT_OUT_DIR
    conf_dir: str = ""
    concurrency: int = DEFAULT_CONCURRENCY
    compact: bool = False
    heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS

    @classmethod
    def _apply_mapping(cls, base: Settings, cfg: dict[str, Any] | None) -> Settings:
        """Apply a loose config mapping onto Settings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        s = base
        if "out_dir" in cfg:
            s = replace(s, out_dir=str(cfg["out_dir"]))
        if "conf_dir" in cfg:
            s = replace(s, conf_dir=str(cfg["conf_dir"]))
        if "concurrency" in cfg:
            s = replace(s, concurrency=_number("concurrency", cfg["concurrency"], int, 1))
        if "compact" in cfg:
            s = replace(s, compact=_bool("compact", cfg["compact"]))
        if "heartbeat_seconds" in cfg:
            hb = _number("heartbeat_seconds", cfg["heartbeat_seconds"], float, 0.0)
            if hb == 0:
                raise ConfigurationError("setting 'heartbeat_seconds' must be positive")
            s = replace(s, heartbeat_seconds=hb)
        return s

    @classmethod
    def from_env(cls, base: Settings | None = None, prefix: str = ENV_PREFIX) -> Settings:
        """
        Build Settings from environment variables. Precedence is env > base (if provided) > defaults.

        Recognized variables:
            - PLOTDECK_OUT_DIR
            - PLOTDECK_CONF_DIR
            - PLOTDECK_CONCURRENCY
            - PLOTDECK_COMPACT (1/0/true/false/yes/no/on/off)
            - PLOTDECK_HEARTBEAT_SECONDS
        """
        s = base or cls()
        mapping: dict[str, Any] = {}
        for key in ("out_dir", "conf_dir", "concurrency", "compact", "heartbeat_seconds"):
            v = os.getenv(prefix + key.upper())
            if v:
                mapping[key] = v
        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> Settings:
        """
        Build Settings from a TOML file.

        Returns defaults when no file is present or no plotdeck table is found.

        Raises:
            ConfigurationError: An explicitly given file cannot be read or parsed.
        """
        s = cls()

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "plotdeck.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        for p in cand:
            if not p.exists():
                if path is not None:
                    raise ConfigurationError(f"settings file not found: {p}")
                continue
            try:
                with p.open("rb") as fh:
                    data = tomllib.load(fh)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                raise ConfigurationError(f"cannot read settings file {p}: {exc}") from exc

            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("plotdeck") if isinstance(tool, dict) else None
            elif isinstance(data.get("plotdeck"), dict):
                cfg = data["plotdeck"]
            else:
                cfg = data
            if cfg:
                logger.debug("loaded settings from %s", p)
                return cls._apply_mapping(s, cfg)

        return s

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> Settings:
        """
        Load Settings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search plotdeck.toml then
                pyproject.toml in the working directory.
        """
        s = cls.from_toml(path)
        return cls.from_env(base=s)
