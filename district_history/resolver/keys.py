from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .config import AT_LARGE_LABEL
from .terms import Chamber, OfficeholderTerm

_AT_LARGE_SPELLINGS = {"AL", "ATLARGE", "AT_LARGE", "AT-LARGE", "AT LARGE"}

@dataclass(frozen=True)
class DistrictCode:
    """
    (state, district) identity used for dedup and cache keys.

    ``number`` is 0 for at-large seats. ``label`` keeps the spelling a data
    source uses ("0", "AL", "14") and takes no part in equality or hashing.
    """
    state: str
    number: int
    label: str = field(default="", compare=False)

    @classmethod
    def of(cls, state: str, label=None) -> "DistrictCode":
        state = str(state).strip().upper()
        if label is None:
            return cls(state, 0, "0")
        if isinstance(label, bool):
            raise ValueError(f"Invalid district label: {label!r}")
        if isinstance(label, (int, float)):
            if label < 0 or int(label) != label:
                raise ValueError(f"Invalid district label: {label!r}")
            return cls(state, int(label), str(int(label)))

        raw = str(label).strip()
        if raw.upper() in _AT_LARGE_SPELLINGS or raw == "":
            return cls(state, 0, AT_LARGE_LABEL if raw else "0")
        m = re.fullmatch(r"(\d+)(?:\.0+)?", raw)
        if not m:
            raise ValueError(f"Invalid district label: {label!r}")
        number = int(m.group(1))
        return cls(state, number, str(number))

    @property
    def is_at_large(self) -> bool:
        return self.number == 0

    @property
    def spelling(self) -> str:
        """Spelling to use in source paths."""
        return self.label or (AT_LARGE_LABEL if self.is_at_large else str(self.number))

    def respelled(self, label: str) -> "DistrictCode":
        return DistrictCode(self.state, self.number, label)

    def __str__(self) -> str:
        return f"{self.state}-{AT_LARGE_LABEL if self.is_at_large else self.number}"

def district_code_for(term: OfficeholderTerm) -> Optional[DistrictCode]:
    if term.chamber != Chamber.LOWER:
        return None
    return DistrictCode.of(term.state, 0 if term.is_at_large else term.district_number)

def candidates_for(term: OfficeholderTerm) -> List[DistrictCode]:
    """
    Ordered district spellings to look up for a term.

    Upper-chamber terms yield nothing. At-large seats yield both the numeric
    and the symbolic spelling because sources disagree on which they use.
    """
    code = district_code_for(term)
    if code is None:
        return []
    if code.is_at_large:
        return [code.respelled("0"), code.respelled(AT_LARGE_LABEL)]
    return [code]
