# -*- coding: utf-8 -*-

"""Glucose units and Nightscout entry normalisation.

Samples and thresholds are kept in mmol/L throughout; mg/dL only exists at
the edges (Nightscout payloads, settings form, axis labels).
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

import dateutil.parser
import pandas as pd

MGDL_PER_MMOL = 18.01559

UNIT_MMOL = "mmol/L"
UNIT_MGDL = "mg/dL"
UNITS = (UNIT_MMOL, UNIT_MGDL)


class Sample(NamedTuple):
    time: dt.datetime
    value: float


def mgdl_to_mmol(x: float) -> float:
    return round(x / MGDL_PER_MMOL, 1)


def mmol_to_mgdl(x: float) -> int:
    return int(round(x * MGDL_PER_MMOL))


def is_mgdl(units: Optional[str]) -> bool:
    return str(units or "").strip().lower() in ("mg/dl", "mgdl")


def format_glucose(mmol: float, units: str = UNIT_MMOL) -> str:
    if is_mgdl(units):
        return str(mmol_to_mgdl(mmol))
    return f"{mmol:.1f}"


def threshold_for_display(mmol: float, units: str = UNIT_MMOL) -> float:
    """Stored threshold (mmol/L) -> value shown in the settings form."""
    if is_mgdl(units):
        return float(mmol_to_mgdl(mmol))
    return mmol


def threshold_from_display(value: float, units: str = UNIT_MMOL) -> float:
    """Settings form value -> stored threshold (mmol/L)."""
    if is_mgdl(units):
        return value / MGDL_PER_MMOL
    return value


# --- Nightscout entries -----------------------------------------------
def _entry_time(e: Dict[str, Any]) -> Optional[dt.datetime]:
    ts_raw = e.get("dateString") or e.get("created_at")
    ts = None
    if ts_raw:
        try:
            ts = dateutil.parser.isoparse(ts_raw)
        except (ValueError, TypeError):
            ts = None
    if ts is None:
        ms = e.get("date")
        if isinstance(ms, (int, float)) and not isinstance(ms, bool):
            ts = dt.datetime.fromtimestamp(ms / 1000.0, tz=dt.timezone.utc)
    if ts is None:
        return None
    if ts.tzinfo is None:
        # Nightscout stores naive timestamps as UTC
        ts = ts.replace(tzinfo=dt.timezone.utc)
    return ts


def entries_frame(entries: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for e in entries or []:
        if not isinstance(e, dict):
            continue
        # sgv is mg/dL; mbg/glucose for meter and manual entries
        val = e.get("sgv") or e.get("mbg") or e.get("glucose")
        if not isinstance(val, (int, float)) or isinstance(val, bool):
            continue
        ts = _entry_time(e)
        if ts is None:
            continue
        rows.append({"time": ts.astimezone(dt.timezone.utc), "mgdl": float(val), "direction": e.get("direction")})
    if not rows:
        return pd.DataFrame(columns=["time", "mgdl", "mmol", "direction"]).set_index("time")
    df = pd.DataFrame(rows).dropna(subset=["time", "mgdl"]).sort_values("time", kind="mergesort")
    df["mmol"] = df["mgdl"].apply(mgdl_to_mmol)
    df = df.set_index("time")
    return df


def entries_to_samples(entries: Iterable[Dict[str, Any]]) -> List[Sample]:
    df = entries_frame(entries)
    return [Sample(ts.to_pydatetime(), float(v)) for ts, v in df["mmol"].items()]


__all__ = [
    "MGDL_PER_MMOL",
    "UNIT_MMOL",
    "UNIT_MGDL",
    "UNITS",
    "Sample",
    "mgdl_to_mmol",
    "mmol_to_mgdl",
    "format_glucose",
    "threshold_for_display",
    "threshold_from_display",
    "entries_frame",
    "entries_to_samples",
]
