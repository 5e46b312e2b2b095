from __future__ import annotations

from typing import Optional, Tuple

from .config import EARLIEST_VINTAGE, ERA_THRESHOLDS

FIRST_CONGRESS_YEAR = 1789

def vintage_for_year(year: int) -> int:
    """
    Boundary vintage in force during a calendar year.

    New maps take effect with the Congress seated the year after the
    redistricting cycle, so 2022 maps apply from 2023 on. Years before the
    earliest cycle with shape data fall back to that cycle.
    """
    for first_year, vintage in ERA_THRESHOLDS:
        if year >= first_year:
            return vintage
    return EARLIEST_VINTAGE

def congress_range_for_vintage(vintage: int, legacy_vintage_max: int = 2002) -> Optional[Tuple[int, int]]:
    # 1789-2012 dataset ends at the 112th Congress
    if vintage > legacy_vintage_max:
        return None
    start = (vintage + 1 - FIRST_CONGRESS_YEAR) // 2 + 1
    return start, start + 4
