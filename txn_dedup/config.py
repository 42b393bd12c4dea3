"""YAML configuration loader for txn-dedup.

Loads ``dedup.yaml`` from a config directory. Every setting has a default,
so the engine runs without any config file (client-side preview).

Sections (all optional):
  tier1:    threshold, secondary_threshold, word_match_threshold
  index:    window_days, amount_precision
  verifier: max_candidates, batch_limit, model, max_tokens
  engine:   exclusive_matches
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-20250514"


class Config:
    """Loads and provides access to the dedup YAML configuration."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._dedup: dict | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def dedup(self) -> dict:
        if self._dedup is None:
            data = self._load("dedup.yaml")
            if not isinstance(data, dict):
                raise ValueError(
                    f"Expected a mapping in {self.config_dir / 'dedup.yaml'}"
                )
            self._dedup = data
        return self._dedup

    def section(self, name: str) -> dict:
        value = self.dedup.get(name) or {}
        if not isinstance(value, dict):
            raise ValueError(f"Config section '{name}' must be a mapping")
        return value


@dataclass(frozen=True)
class DedupSettings:
    """Tunables for one engine instance."""
    tier1_threshold: float = 0.88
    secondary_threshold: float = 0.75
    word_match_threshold: float = 0.85
    window_days: int = 2
    amount_precision: int = 2
    max_candidates: int = 5
    batch_limit: int = 100
    exclusive_matches: bool = False
    claude_model: str = DEFAULT_CLAUDE_MODEL
    claude_max_tokens: int = 2048

    def __post_init__(self) -> None:
        for name in ("tier1_threshold", "secondary_threshold", "word_match_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.window_days < 0:
            raise ValueError(f"window_days must be >= 0, got {self.window_days}")
        if self.amount_precision < 0:
            raise ValueError(
                f"amount_precision must be >= 0, got {self.amount_precision}"
            )
        if self.max_candidates < 1:
            raise ValueError(f"max_candidates must be >= 1, got {self.max_candidates}")
        if self.batch_limit < 1:
            raise ValueError(f"batch_limit must be >= 1, got {self.batch_limit}")

    @classmethod
    def from_config(cls, config: Config) -> DedupSettings:
        """Overlay the YAML sections onto the defaults."""
        tier1 = config.section("tier1")
        index = config.section("index")
        verifier = config.section("verifier")
        engine = config.section("engine")

        overrides = {
            "tier1_threshold": tier1.get("threshold"),
            "secondary_threshold": tier1.get("secondary_threshold"),
            "word_match_threshold": tier1.get("word_match_threshold"),
            "window_days": index.get("window_days"),
            "amount_precision": index.get("amount_precision"),
            "max_candidates": verifier.get("max_candidates"),
            "batch_limit": verifier.get("batch_limit"),
            "claude_model": verifier.get("model"),
            "claude_max_tokens": verifier.get("max_tokens"),
            "exclusive_matches": engine.get("exclusive_matches"),
        }
        types = {f.name: f.type for f in fields(cls)}
        coerced = {}
        for name, value in overrides.items():
            if value is None:
                continue
            coerced[name] = _coerce(name, value, types[name])
        return replace(cls(), **coerced)


def _coerce(name: str, value, type_name: str):
    try:
        if type_name == "float":
            return float(value)
        if type_name == "int":
            if isinstance(value, bool):
                raise TypeError
            return int(value)
        if type_name == "bool":
            if not isinstance(value, bool):
                raise TypeError
            return value
        return str(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {value!r}") from e


def load_settings(config_dir: Path | str | None = None) -> DedupSettings:
    """Load settings from ``config_dir`` or ``DEDUP_CONFIG_DIR``.

    Falls back to defaults when neither is set. ``DEDUP_CLAUDE_MODEL``
    overrides the verifier model either way.
    """
    if config_dir is None:
        config_dir = os.environ.get("DEDUP_CONFIG_DIR")
    settings = DedupSettings.from_config(Config(config_dir)) if config_dir else DedupSettings()
    model = os.environ.get("DEDUP_CLAUDE_MODEL")
    if model:
        settings = replace(settings, claude_model=model)
    return settings
