# -*- coding: utf-8 -*-

"""Widget settings: .env environment plus a JSON settings file.

Features:
- .env loaded from the app directory (EXE folder when compiled, else cwd / source folder)
- config.json with built-in defaults; nested sections merged key-wise so
  settings added in newer versions appear in older files
- get/set/reload; set() persists immediately
- apply_to(graph) pushes thresholds, colours, window and units into a CGMGraph;
  malformed values are reported and replaced by their defaults

Environment variables:
- CGM_CONFIG_DIR: directory holding config.json (default $XDG_CONFIG_HOME/cgm-widget or ~/.config/cgm-widget)
- DEBUG_GRAPH: print renderer diagnostics (1/true/yes/on)
"""

from __future__ import annotations

import copy
import json
import math
import os
import sys
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv

from glucose import UNITS

GRAPH_HOURS_CHOICES = (3, 6, 12, 24)
NESTED_SECTIONS = ("thresholds", "colors")


def load_env(override: bool = False) -> Optional[str]:
    """Load .env from the executable's folder (frozen builds), the cwd or this file's folder.

    The first existing file wins; returns its path, or None when there is none.
    """
    search = [os.getcwd(), os.path.dirname(os.path.abspath(__file__))]
    if getattr(sys, 'frozen', False):
        search.insert(0, os.path.dirname(sys.executable))
    for base in search:
        env_path = os.path.join(base, '.env')
        if os.path.isfile(env_path):
            load_dotenv(dotenv_path=env_path, override=override)
            return env_path
    return None


def _as_bool(val: Optional[str], default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "on")


def _as_number(val: Any) -> Optional[float]:
    """Finite float from a number or numeric string; None otherwise."""
    if isinstance(val, bool):
        return None
    if isinstance(val, str):
        try:
            val = float(val.strip().replace(",", "."))
        except ValueError:
            return None
    if not isinstance(val, (int, float)):
        return None
    val = float(val)
    return val if math.isfinite(val) else None


def default_config_dir() -> str:
    explicit = os.getenv("CGM_CONFIG_DIR")
    if explicit:
        return explicit
    base = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "cgm-widget")


def default_config() -> Dict[str, Any]:
    return {
        "graph_hours": 6,
        "units": "mmol/L",
        "debug": False,
        # mmol/L
        "thresholds": {
            "low": 3.9,
            "high": 10.0,
        },
        "colors": {
            "low": "#ff4444",
            "high": "#ffaa00",
            "normal": "#ffffff",
        },
    }


def merge_config(user: Dict[str, Any], log: Optional[Callable[[str], None]] = None) -> Dict[str, Any]:
    merged = default_config()
    for key, value in user.items():
        if key in NESTED_SECTIONS:
            if isinstance(value, dict):
                merged[key] = {**merged[key], **value}
            elif log is not None:
                log(f"Ignoring {key}: expected an object, got {value!r}")
        else:
            merged[key] = value
    return merged


class Config:
    def __init__(self, config_dir: Optional[str] = None, debug_log=None):
        self.config_dir = config_dir or default_config_dir()
        self.config_file = os.path.join(self.config_dir, "config.json")
        self.log = debug_log or (lambda msg: print(f"[CONFIG] {msg}", flush=True))
        self._config = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.config_file):
            # First run: write defaults
            defaults = default_config()
            if self._save(defaults):
                self.log(f"Created default CGM config at: {self.config_file}")
            return defaults
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                user = json.load(f)
        except (OSError, ValueError) as e:
            self.log(f"Error loading CGM config: {e}")
            return default_config()
        if not isinstance(user, dict):
            self.log(f"Error loading CGM config: expected an object, got {type(user).__name__}")
            return default_config()
        return merge_config(user, self.log)

    def _save(self, data: Dict[str, Any]) -> bool:
        try:
            os.makedirs(self.config_dir, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            self.log(f"Error saving CGM config: {e}")
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._config:
            return copy.deepcopy(self._config[key])
        return copy.deepcopy(default_config().get(key, default))

    def set(self, key: str, value: Any):
        self._config[key] = value
        self._save(self._config)

    def reload(self):
        self._config = self._load()

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    @property
    def debug(self) -> bool:
        return bool(self.get("debug")) or _as_bool(os.getenv("DEBUG_GRAPH"))

    def apply_to(self, graph):
        defaults = default_config()

        thresholds = self.get("thresholds")
        if not isinstance(thresholds, dict):
            self.log(f"Invalid thresholds {thresholds!r}, using defaults")
            thresholds = {}
        clean = {}
        for key in ("low", "high"):
            value = _as_number(thresholds.get(key))
            if value is None:
                value = defaults["thresholds"][key]
                self.log(f"Invalid {key} threshold {thresholds.get(key)!r}, using {value}")
            clean[key] = value
        graph.set_thresholds(clean)

        colors = self.get("colors")
        if not isinstance(colors, dict):
            self.log(f"Invalid colors {colors!r}, using defaults")
            colors = defaults["colors"]
        graph.set_colors(colors)

        raw_hours = self.get("graph_hours")
        hours = _as_number(raw_hours)
        if hours is None or hours <= 0:
            hours = defaults["graph_hours"]
            self.log(f"Invalid graph_hours {raw_hours!r}, using {hours}")
        graph.set_graph_hours(hours)

        units = self.get("units")
        if units not in UNITS:
            self.log(f"Invalid units {units!r}, using {defaults['units']}")
            units = defaults["units"]
        graph.set_units(units)


__all__ = [
    "Config",
    "GRAPH_HOURS_CHOICES",
    "default_config",
    "default_config_dir",
    "merge_config",
    "load_env",
]
