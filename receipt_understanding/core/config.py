"""
Tunable heuristics for receipt parsing.

Every threshold and blending weight used by the parsers lives here so it can
be tuned from a rules file instead of being edited in place.
"""

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional


class ConfigError(Exception):
    """Raised when a settings file cannot be read or holds unknown keys."""


@dataclass(frozen=True)
class ParserSettings:
    # Items-sum vs. subtotal mismatch: flagged only when over both limits
    items_subtotal_tolerance_pct: float = 0.05
    items_subtotal_tolerance_abs: float = 1.0

    # Plausible tax rate, in percent of subtotal
    tax_rate_min_pct: float = 1.0
    tax_rate_max_pct: float = 30.0

    # subtotal + tax - discount + tip vs. total
    totals_consistent_tolerance: float = 0.05
    totals_discrepancy_tolerance: float = 1.0

    # Receipt-level blend
    receipt_base_weight: float = 0.2
    receipt_component_weight: float = 0.5
    receipt_ocr_weight: float = 0.3
    store_weight: float = 0.2
    date_weight: float = 0.1
    items_weight: float = 0.4
    totals_weight: float = 0.3

    # Punitive multipliers applied after the blend
    no_items_multiplier: float = 0.3
    no_store_multiplier: float = 0.7
    zero_total_multiplier: float = 0.7
    very_short_text_chars: int = 30
    very_short_text_multiplier: float = 0.5
    short_text_chars: int = 80
    short_text_multiplier: float = 0.8

    # Item aggregate blend
    item_base_weight: float = 0.4
    item_mean_weight: float = 0.6

    # Template matching
    template_accept_threshold: float = 0.3
    generic_fallback_threshold: float = 0.6

    max_receipt_age_days: int = 365

    # Callers gate acceptance on this
    confidence_threshold: float = 0.5

    def with_overrides(self, overrides: Optional[Dict]) -> "ParserSettings":
        """Return a copy with the given fields replaced."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(unknown)}")
        return replace(self, **overrides)


DEFAULT_SETTINGS = ParserSettings()


def load_rules(path: Path) -> Dict:
    """Load a rules file (settings and item categorisation matchers)."""
    if not path.exists():
        return {"settings": {}, "item_matchers": []}
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read rules file {path}: {e}") from e


def load_settings(path: Optional[Path] = None, env: Optional[Dict[str, str]] = None) -> ParserSettings:
    """
    Build settings from defaults, a rules file and the environment.

    Args:
        path: Optional rules.json; its "settings" object overrides defaults
        env: Environment mapping (defaults to os.environ)

    Returns:
        ParserSettings instance
    """
    env = os.environ if env is None else env
    settings = DEFAULT_SETTINGS
    if path is not None:
        settings = settings.with_overrides(load_rules(path).get("settings") or {})

    threshold = env.get("RECEIPT_CONFIDENCE_THRESHOLD")
    if threshold:
        try:
            settings = replace(settings, confidence_threshold=float(threshold))
        except ValueError as e:
            raise ConfigError(f"Invalid RECEIPT_CONFIDENCE_THRESHOLD: {threshold}") from e
    return settings
