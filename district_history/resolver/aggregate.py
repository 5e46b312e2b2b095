from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

import geopandas as gpd
from shapely.geometry import mapping

from .cache import ResolvedShape
from .terms import OfficeholderTerm

PROPERTY_COLUMNS = [
    "district_key",
    "party",
    "state",
    "district",
    "person_id",
    "name",
    "external_ref",
    "vintage",
    "shape_vintage",
]

@dataclass(frozen=True)
class AnnotatedFeature:
    shape: ResolvedShape
    term: OfficeholderTerm
    vintage: int

    @property
    def district_key(self) -> str:
        return str(self.shape.code)

    @property
    def properties(self) -> Dict[str, Any]:
        code = self.shape.code
        return {
            "district_key": self.district_key,
            "party": self.term.party,
            "state": code.state,
            "district": "AL" if code.is_at_large else str(code.number),
            "person_id": self.term.person_id,
            "name": self.term.full_name,
            "external_ref": self.term.external_ref,
            "vintage": self.vintage,
            "shape_vintage": self.shape.vintage,
        }

def annotate(shape: ResolvedShape, term: OfficeholderTerm, vintage: int) -> AnnotatedFeature:
    return AnnotatedFeature(shape=shape, term=term, vintage=vintage)

def merge_features(features: Iterable[AnnotatedFeature]) -> List[AnnotatedFeature]:
    seen = set()
    out = []
    for feat in features:
        if feat.district_key in seen:
            continue
        seen.add(feat.district_key)
        out.append(feat)
    return out

def to_feature_collection(features: Iterable[AnnotatedFeature]) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": mapping(f.shape.geometry),
                "properties": f.properties,
            }
            for f in merge_features(features)
        ],
    }

def to_geodataframe(features: Iterable[AnnotatedFeature]) -> gpd.GeoDataFrame:
    merged = merge_features(features)
    records = [{**f.properties, "geometry": f.shape.geometry} for f in merged]
    return gpd.GeoDataFrame(records, columns=PROPERTY_COLUMNS + ["geometry"], geometry="geometry", crs="EPSG:4326")
