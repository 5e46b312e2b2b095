from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import pandas as pd

class Chamber(str, Enum):
    LOWER = "House"
    UPPER = "Senate"

_CHAMBER_ALIASES = {
    "rep": Chamber.LOWER,
    "house": Chamber.LOWER,
    "lower": Chamber.LOWER,
    "sen": Chamber.UPPER,
    "senate": Chamber.UPPER,
    "upper": Chamber.UPPER,
}

def parse_chamber(value) -> Chamber:
    if isinstance(value, Chamber):
        return value
    key = str(value).strip().lower()
    if key not in _CHAMBER_ALIASES:
        raise ValueError(f"Unknown chamber: {value!r}")
    return _CHAMBER_ALIASES[key]

@dataclass(frozen=True)
class OfficeholderTerm:
    person_id: str
    full_name: str
    party: str
    chamber: Chamber
    state: str
    district_number: Optional[int] = None
    start_year: int = 0
    end_year: Optional[int] = None
    external_ref: Optional[str] = None

    @property
    def is_at_large(self) -> bool:
        return not self.district_number

def stdcols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [
        re.sub(r"_{2,}", "_", re.sub(r"[^\w]+", "_", str(c).strip().lower())).strip("_")
        for c in df.columns
    ]
    return df

def _optional_int(value) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)

def _optional_str(value) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    s = str(value).strip()
    return s or None

def terms_from_frame(df: pd.DataFrame) -> List[OfficeholderTerm]:
    """
    Build terms from a flat legislator-term table.

    Accepts the upstream column names (``bioguide``, ``type`` with rep/sen,
    ``wikipedia``) as well as the model's own (``person_id``, ``chamber``,
    ``external_ref``). No year filtering happens here.
    """
    df = stdcols(df)
    df = df.rename(columns={
        "bioguide": "person_id",
        "type": "chamber",
        "name": "full_name",
        "district": "district_number",
        "wikipedia": "external_ref",
    })

    required = {"person_id", "chamber", "state", "start_year"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"Roster missing columns: {sorted(missing)}")

    out = []
    for row in df.to_dict("records"):
        out.append(OfficeholderTerm(
            person_id=str(row["person_id"]),
            full_name=_optional_str(row.get("full_name")) or "",
            party=_optional_str(row.get("party")) or "Unknown",
            chamber=parse_chamber(row["chamber"]),
            state=str(row["state"]).strip().upper(),
            district_number=_optional_int(row.get("district_number")),
            start_year=int(row["start_year"]),
            end_year=_optional_int(row.get("end_year")),
            external_ref=_optional_str(row.get("external_ref")),
        ))
    return out
