from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import numpy as np
import shapely
from loguru import logger
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry

POLYGONAL = (Polygon, MultiPolygon)

def extract_geometry_mapping(payload: Any) -> Optional[Dict[str, Any]]:
    """Pull the raw geometry out of a Feature, FeatureCollection or bare geometry."""
    if not isinstance(payload, dict):
        return None
    kind = payload.get("type")
    if kind == "Feature":
        return payload.get("geometry")
    if kind == "FeatureCollection":
        for feat in payload.get("features") or []:
            if isinstance(feat, dict) and feat.get("geometry"):
                return feat["geometry"]
        return None
    if "geometry" in payload:
        return payload.get("geometry")
    return payload

def to_shape(geometry_mapping: Any) -> Optional[BaseGeometry]:
    if not isinstance(geometry_mapping, dict) or not geometry_mapping.get("type"):
        return None
    try:
        geom = shape(geometry_mapping)
    except (ShapelyError, ValueError, TypeError, KeyError, AttributeError, IndexError) as e:
        logger.debug(f"Unreadable geometry ({geometry_mapping.get('type')}): {e}")
        return None
    if geom.is_empty or not isinstance(geom, POLYGONAL):
        return None
    return geom

def normalize_payload(payload: Any) -> Optional[BaseGeometry]:
    return to_shape(extract_geometry_mapping(payload))

def extent(geom: BaseGeometry) -> Tuple[float, float]:
    """
    Longitude and latitude spans of a geometry, in degrees.

    Shapes crossing the antimeridian (the Aleutians) are measured with
    longitudes shifted into [0, 360) so they do not appear to circle the globe.
    """
    minx, miny, maxx, maxy = geom.bounds
    dx = maxx - minx
    if dx > 180:
        lon = np.mod(shapely.get_coordinates(geom)[:, 0], 360.0)
        dx = min(dx, float(lon.max() - lon.min()))
    return dx, maxy - miny

def is_plausible_district(geom: BaseGeometry, max_extent_degrees: float) -> bool:
    dx, dy = extent(geom)
    return dx <= max_extent_degrees and dy <= max_extent_degrees
