from dataclasses import dataclass
from typing import Dict, Tuple

# (first calendar year, boundary vintage), newest first
ERA_THRESHOLDS: Tuple[Tuple[int, int], ...] = (
    (2023, 2022),  # post-2020 census (MT-2, OR-6, TX-38, NC-14, CO-8, FL-28)
    (2013, 2012),
    (2003, 2002),
    (1993, 1992),
    (1983, 1982),
    (1973, 1972),
    (1963, 1962),
)
# No shape data predates the 1962 cycle; older years approximate with it
EARLIEST_VINTAGE = 1962

# Symbolic at-large spelling; the numeric one is "0"
AT_LARGE_LABEL = "AL"

@dataclass(frozen=True)
class ResolverParams:
    concurrency: int = 16

    # Vintages up to this one ship as one multi-district file per state
    legacy_vintage_max: int = 2002

    # Degrees of longitude or latitude no single district can span
    max_extent_degrees: float = 30.0

    # Per-state limits; Alaska runs from the Aleutians (172E) to 130W
    extent_overrides: Tuple[Tuple[str, float], ...] = (("AK", 60.0),)

    # Tried in order when the requested vintage has no per-district record
    fallback_vintages: Tuple[int, ...] = (2012, 2002, 1992, 1982, 1972, 1962)

    def max_extent_for(self, state: str) -> float:
        return dict(self.extent_overrides).get(state, self.max_extent_degrees)

@dataclass(frozen=True)
class SourceLayout:
    bulk_dir: str = "1789-2012"
    district_dir: str = "cds"
    state_dir: str = "states"
    shape_file: str = "shape.geojson"

# File-name spelling of each state in the 1789-2012 bulk dataset
STATE_FILE_NAMES: Dict[str, str] = {
    "AL": "Alabama",
    "AK": "Alaska",
    "AZ": "Arizona",
    "AR": "Arkansas",
    "CA": "California",
    "CO": "Colorado",
    "CT": "Connecticut",
    "DE": "Delaware",
    "DC": "District_Of_Columbia",
    "FL": "Florida",
    "GA": "Georgia",
    "HI": "Hawaii",
    "ID": "Idaho",
    "IL": "Illinois",
    "IN": "Indiana",
    "IA": "Iowa",
    "KS": "Kansas",
    "KY": "Kentucky",
    "LA": "Louisiana",
    "ME": "Maine",
    "MD": "Maryland",
    "MA": "Massachusetts",
    "MI": "Michigan",
    "MN": "Minnesota",
    "MS": "Mississippi",
    "MO": "Missouri",
    "MT": "Montana",
    "NE": "Nebraska",
    "NV": "Nevada",
    "NH": "New_Hampshire",
    "NJ": "New_Jersey",
    "NM": "New_Mexico",
    "NY": "New_York",
    "NC": "North_Carolina",
    "ND": "North_Dakota",
    "OH": "Ohio",
    "OK": "Oklahoma",
    "OR": "Oregon",
    "PA": "Pennsylvania",
    "RI": "Rhode_Island",
    "SC": "South_Carolina",
    "SD": "South_Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "UT": "Utah",
    "VT": "Vermont",
    "VA": "Virginia",
    "WA": "Washington",
    "WV": "West_Virginia",
    "WI": "Wisconsin",
    "WY": "Wyoming",
    "PR": "Puerto_Rico",
    "GU": "Guam",
    "VI": "Virgin_Islands",
    "MP": "Northern_Mariana_Islands",
    "AS": "American_Samoa",
}
