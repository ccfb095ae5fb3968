"""Configuration management for incluster."""

import copy
import os
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

DEFAULT_CONFIG = {
    "embedding_model": "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2",
    "candidate": 2,
    "note_candidate": "weighted_post_sigmoid",
    "weights": {"navigation": 0.5, "text": 0.8, "entities": 0.5},
    "sigmoid": {"beta": 10.0, "text_middle": 0.5, "entities_middle": 0.5},
    "noise_epsilon": 1e-2,  # above the sigmoid floor of unrelated pairs
    "eviction_quota": 3,
    "pages_before_ranking": 100,
    "pages_before_notes": 3,
    "time_to_remove": 0.5,  # seconds
    "kmeans_trials": 15,
    "max_depth": 4,
}

WEIGHT_KEYS = ("navigation", "text", "entities")


def _find_config_file() -> Path | None:
    """Look for a config file in standard locations."""
    candidates = [
        Path.cwd() / "config" / "incluster.yaml",
        Path.cwd() / "incluster.yaml",
        Path.home() / ".incluster" / "config.yaml",
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration, merging defaults with file and env vars."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path) if config_path else _find_config_file()
    if path and path.exists():
        with open(path) as f:
            file_cfg = yaml.safe_load(f) or {}
        _deep_merge(cfg, file_cfg)

    # Env overrides
    if candidate := os.environ.get("INCLUSTER_CANDIDATE"):
        cfg["candidate"] = candidate
    if model := os.environ.get("INCLUSTER_EMBEDDING_MODEL"):
        cfg["embedding_model"] = model

    return cfg


def merge_defaults(config: dict[str, Any] | None) -> dict[str, Any]:
    """Fill a partial config dict with defaults."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if config:
        _deep_merge(cfg, copy.deepcopy(config))
    return cfg


def validate_weights(weights: dict[str, Any]) -> dict[str, float]:
    missing = [k for k in WEIGHT_KEYS if k not in weights]
    if missing:
        raise ConfigurationError(f"Missing weights: {missing}", {"missing": missing})
    try:
        return {k: float(weights[k]) for k in WEIGHT_KEYS}
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid weights: {e}") from e


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place."""
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
