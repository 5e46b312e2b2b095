"""Tests for geometry normalization, shape sources and the fetch strategy chain."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import httpx
import pytest
from shapely.geometry import MultiPolygon, Point, box, mapping

from district_history.resolver.cache import ShapeCache
from district_history.resolver.config import ResolverParams
from district_history.resolver.fetcher import ShapeFetcher
from district_history.resolver.geometry import extent, is_plausible_district, normalize_payload
from district_history.resolver.io import (
    DirectoryShapeSource,
    HttpShapeSource,
    ShapeSource,
    ShapeSourceError,
    open_shape_source,
)
from district_history.resolver.keys import DistrictCode

NY14 = box(-73.95, 40.75, -73.80, 40.90)
NY15 = box(-73.95, 40.80, -73.85, 40.90)
WYOMING = box(-111.05, 41.0, -104.05, 45.0)
# Aleutians west of the antimeridian plus the mainland; about 58 degrees wide once wrapped
ALASKA = MultiPolygon([box(172.4, 51.0, 179.99, 53.0), box(-179.99, 51.0, -130.0, 71.5)])
NATIONWIDE = box(-125.0, 24.0, -66.0, 49.0)


class MemorySource(ShapeSource):
    def __init__(self, payloads=None, failing=()):
        self.payloads = dict(payloads or {})
        self.failing = set(failing)
        self.requests = []
        self._lock = threading.Lock()

    def fetch_json(self, path):
        with self._lock:
            self.requests.append(path)
        if path in self.failing:
            raise ShapeSourceError(f"simulated failure: {path}")
        return self.payloads.get(path)


def _feature(geom, **props) -> dict:
    return {"type": "Feature", "geometry": mapping(geom), "properties": props}


def _cd(vintage: int, state: str, label: str) -> str:
    return f"cds/{vintage}/{state}-{label}/shape.geojson"


def _resolve(fetcher: ShapeFetcher, state: str, label, vintage: int):
    code = DistrictCode.of(state, label)
    if code.is_at_large:
        cands = [code.respelled("0"), code.respelled("AL")]
    else:
        cands = [code]
    return fetcher.resolve(cands, vintage)


# ----------------------------- geometry -----------------------------
def test_normalize_payload_accepts_feature_collection_and_bare_geometry() -> None:
    as_feature = _feature(NY14)
    as_collection = {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": None}, as_feature]}
    as_geometry = mapping(NY14)

    for payload in (as_feature, as_collection, as_geometry):
        geom = normalize_payload(payload)
        assert geom is not None
        assert geom.equals(NY14)


@pytest.mark.parametrize(
    "payload",
    [None, [], "shape", {"type": "FeatureCollection", "features": []}, _feature(Point(0, 0)), {"type": "Feature"}],
)
def test_normalize_payload_rejects_unusable_payloads(payload) -> None:
    assert normalize_payload(payload) is None


def test_extent_and_plausibility() -> None:
    dx, dy = extent(WYOMING)
    assert pytest.approx(dx) == 7.0
    assert pytest.approx(dy) == 4.0
    assert is_plausible_district(WYOMING, 30.0)
    assert not is_plausible_district(NATIONWIDE, 30.0)
    # Tall but narrow still fails on latitude
    assert not is_plausible_district(box(0, 0, 1, 31), 30.0)


def test_extent_unwraps_the_antimeridian() -> None:
    dx, dy = extent(ALASKA)
    assert dx == pytest.approx(360.0 - 172.4 - 130.0)
    assert dy == pytest.approx(20.5)
    # A shape that really spans the globe stays wide
    dx, _ = extent(MultiPolygon([box(-179.0, 0, -60.0, 1), box(0, 0, 179.0, 1)]))
    assert dx > 180


# ----------------------------- sources -----------------------------
def test_source_paths() -> None:
    src = MemorySource()
    assert src.district_path(2022, DistrictCode.of("NY", 14)) == "cds/2022/NY-14/shape.geojson"
    assert src.district_path(2022, DistrictCode.of("WY", "AL")) == "cds/2022/WY-AL/shape.geojson"
    assert src.state_path("wy") == "states/WY/shape.geojson"
    assert src.bulk_path("NY", 1992) == "1789-2012/New_York_103_to_107.geojson"
    assert src.bulk_path("DC", 1962) == "1789-2012/District_Of_Columbia_88_to_92.geojson"
    assert src.bulk_path("NY", 2012) is None
    assert src.bulk_path("ZZ", 1992) is None


def test_directory_source_reads_mirror(tmp_path: Path) -> None:
    fp = tmp_path / "cds" / "2022" / "NY-14" / "shape.geojson"
    fp.parent.mkdir(parents=True)
    fp.write_text(json.dumps(_feature(NY14)), encoding="utf-8")
    broken = tmp_path / "states" / "NY" / "shape.geojson"
    broken.parent.mkdir(parents=True)
    broken.write_text("{not json", encoding="utf-8")

    src = open_shape_source(str(tmp_path))

    assert isinstance(src, DirectoryShapeSource)
    assert normalize_payload(src.fetch_json("cds/2022/NY-14/shape.geojson")).equals(NY14)
    assert src.fetch_json("cds/2022/NY-15/shape.geojson") is None
    with pytest.raises(ShapeSourceError):
        src.fetch_json("states/NY/shape.geojson")


def test_http_source_maps_statuses() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/districts/cds/2022/NY-14/shape.geojson":
            return httpx.Response(200, json=_feature(NY14))
        if path == "/districts/states/NY/shape.geojson":
            return httpx.Response(503)
        if path == "/districts/states/WY/shape.geojson":
            return httpx.Response(200, content=b"<html>oops</html>")
        if path == "/districts/states/AK/shape.geojson":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(404)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with HttpShapeSource("https://example.test/districts/", client=client) as src:
        assert normalize_payload(src.fetch_json("cds/2022/NY-14/shape.geojson")).equals(NY14)
        assert src.fetch_json("cds/2022/NY-99/shape.geojson") is None
        for state in ("NY", "WY", "AK"):
            with pytest.raises(ShapeSourceError):
                src.fetch_json(f"states/{state}/shape.geojson")
    client.close()


def test_open_shape_source_picks_http_for_urls() -> None:
    src = open_shape_source("https://example.test/districts")
    try:
        assert isinstance(src, HttpShapeSource)
        assert src.base_url == "https://example.test/districts"
    finally:
        src.close()


# ----------------------------- strategies -----------------------------
def test_strategy_order_is_explicit() -> None:
    fetcher = ShapeFetcher(MemorySource())
    assert [s.name for s in fetcher.strategies] == [
        "cache",
        "legacy-bulk",
        "district-record",
        "older-vintage",
        "whole-state",
    ]


def test_second_resolution_hits_cache_without_fetching() -> None:
    src = MemorySource({_cd(2022, "NY", "14"): _feature(NY14)})
    fetcher = ShapeFetcher(src)

    first = _resolve(fetcher, "NY", 14, 2022)
    n_requests = len(src.requests)
    second = _resolve(fetcher, "NY", "14", 2022)

    assert first is not None and first.geometry.equals(NY14)
    assert second is first
    assert len(src.requests) == n_requests == 1


def test_at_large_spellings_share_one_cache_entry() -> None:
    src = MemorySource({_cd(2022, "WY", "AL"): _feature(WYOMING)})
    cache = ShapeCache()
    fetcher = ShapeFetcher(src, cache=cache)

    numeric = fetcher.resolve([DistrictCode.of("WY", 0)], 2022)
    assert numeric is None  # only the symbolic spelling exists upstream

    both = _resolve(fetcher, "WY", 0, 2022)
    n_requests = len(src.requests)
    symbolic = fetcher.resolve([DistrictCode.of("WY", "AL")], 2022)
    again_numeric = fetcher.resolve([DistrictCode.of("WY", "0")], 2022)

    assert both is not None
    assert symbolic is both and again_numeric is both
    assert len(cache) == 1
    assert len(src.requests) == n_requests


def test_at_large_tries_numeric_then_symbolic_spelling() -> None:
    src = MemorySource({_cd(2022, "WY", "AL"): _feature(WYOMING)})
    shape = _resolve(ShapeFetcher(src), "WY", None, 2022)

    assert shape is not None
    assert src.requests == [_cd(2022, "WY", "0"), _cd(2022, "WY", "AL")]


def test_legacy_bulk_collection_is_loaded_once_per_state() -> None:
    bulk = {
        "type": "FeatureCollection",
        "features": [
            _feature(NY14, district="14", statename="New York"),
            _feature(NY15, district=15, statename="New York"),
        ],
    }
    src = MemorySource({"1789-2012/New_York_103_to_107.geojson": bulk})
    fetcher = ShapeFetcher(src)

    s14 = _resolve(fetcher, "NY", 14, 1992)
    s15 = _resolve(fetcher, "NY", 15, 1992)

    assert s14.geometry.equals(NY14) and s15.geometry.equals(NY15)
    assert s14.vintage == s15.vintage == 1992
    assert src.requests == ["1789-2012/New_York_103_to_107.geojson"]


def test_legacy_bulk_matches_either_at_large_spelling() -> None:
    delaware = box(-75.8, 38.4, -75.0, 39.9)
    bulk = {"type": "FeatureCollection", "features": [_feature(delaware, district=0)]}
    src = MemorySource({"1789-2012/Delaware_98_to_102.geojson": bulk})

    shape = _resolve(ShapeFetcher(src), "DE", "AL", 1982)

    assert shape is not None and shape.geometry.equals(delaware)
    assert shape.code == DistrictCode.of("DE", 0)


def test_missing_bulk_file_falls_through_to_district_record() -> None:
    src = MemorySource({_cd(1992, "NY", "14"): _feature(NY14)})
    fetcher = ShapeFetcher(src)

    shape = _resolve(fetcher, "NY", 14, 1992)
    _resolve(fetcher, "NY", 15, 1992)

    assert shape.geometry.equals(NY14)
    # Absence of the state file is remembered too
    assert src.requests.count("1789-2012/New_York_103_to_107.geojson") == 1


@pytest.mark.parametrize(
    "bulk",
    [
        [{"oops": 1}],
        "New York",
        {"type": "FeatureCollection", "features": "nope"},
        {"type": "FeatureCollection", "features": ["nope", None, 7]},
        {"type": "FeatureCollection", "features": [{"type": "Feature", "properties": "x", "geometry": mapping(NY15)}]},
        {"type": "FeatureCollection", "features": [_feature(NY15, district=float("inf"))]},
        {"type": "FeatureCollection", "features": [_feature(NY15, district=float("nan"))]},
        {"type": "FeatureCollection", "features": [_feature(NY15, district="fourteen")]},
    ],
    ids=["list", "string", "features-not-list", "non-dict-features", "string-properties", "inf", "nan", "word"],
)
def test_malformed_bulk_file_falls_through_to_district_record(bulk) -> None:
    src = MemorySource(
        {
            "1789-2012/New_York_103_to_107.geojson": bulk,
            _cd(1992, "NY", "14"): _feature(NY14),
        }
    )

    shape = _resolve(ShapeFetcher(src), "NY", 14, 1992)

    assert shape is not None
    assert shape.geometry.equals(NY14)
    assert shape.vintage == 1992
    assert src.requests == ["1789-2012/New_York_103_to_107.geojson", _cd(1992, "NY", "14")]


def test_modern_vintages_skip_bulk_and_try_district_record_first() -> None:
    src = MemorySource({_cd(2022, "NY", "14"): _feature(NY14)})
    _resolve(ShapeFetcher(src), "NY", 14, 2022)
    assert src.requests == [_cd(2022, "NY", "14")]


def test_older_vintage_fallback_caches_under_both_keys() -> None:
    src = MemorySource({_cd(2002, "NY", "14"): _feature(NY14)})
    cache = ShapeCache()
    fetcher = ShapeFetcher(src, cache=cache)

    shape = _resolve(fetcher, "NY", 14, 2012)

    assert shape is not None
    assert shape.vintage == 2002
    assert src.requests == [_cd(2012, "NY", "14"), _cd(2002, "NY", "14")]
    code = DistrictCode.of("NY", 14)
    assert cache.lookup(2002, code) is shape
    assert cache.lookup(2012, code) is shape

    n_requests = len(src.requests)
    assert _resolve(fetcher, "NY", 14, 2012) is shape
    assert len(src.requests) == n_requests


def test_transient_failure_falls_through_to_next_strategy() -> None:
    src = MemorySource(
        {_cd(2012, "NY", "14"): _feature(NY14)},
        failing={_cd(2022, "NY", "14")},
    )
    shape = _resolve(ShapeFetcher(src), "NY", 14, 2022)

    assert shape is not None
    assert shape.vintage == 2012


def test_whole_state_fallback_only_for_at_large() -> None:
    src = MemorySource(
        {
            "states/WY/shape.geojson": _feature(WYOMING),
            "states/NY/shape.geojson": _feature(box(-79.8, 40.5, -71.8, 45.0)),
        }
    )
    fetcher = ShapeFetcher(src)

    wy = _resolve(fetcher, "WY", None, 2022)
    ny = _resolve(fetcher, "NY", 3, 2022)

    assert wy is not None and wy.geometry.equals(WYOMING)
    assert wy.code == DistrictCode.of("WY", "AL")
    assert ny is None
    assert "states/NY/shape.geojson" not in src.requests


def test_whole_state_boundary_is_validated_across_the_antimeridian() -> None:
    src = MemorySource({"states/AK/shape.geojson": _feature(ALASKA)})
    shape = _resolve(ShapeFetcher(src), "AK", 0, 2022)

    assert shape is not None
    assert shape.geometry.equals(ALASKA)


def test_nationwide_whole_state_record_is_not_found() -> None:
    src = MemorySource({"states/WY/shape.geojson": _feature(NATIONWIDE)})
    cache = ShapeCache()

    shape = _resolve(ShapeFetcher(src, cache=cache), "WY", 0, 2022)

    assert shape is None
    assert len(cache) == 0
    assert src.requests.count("states/WY/shape.geojson") == 1


def test_implausible_district_then_implausible_state_is_not_found() -> None:
    src = MemorySource(
        {
            _cd(2022, "WY", "0"): _feature(NATIONWIDE),
            "states/WY/shape.geojson": _feature(NATIONWIDE),
        }
    )
    assert _resolve(ShapeFetcher(src), "WY", 0, 2022) is None


def test_implausible_numbered_district_is_never_returned() -> None:
    src = MemorySource(
        {
            _cd(2022, "TX", "23"): _feature(NATIONWIDE),
            _cd(2012, "TX", "23"): _feature(box(-104.0, 29.0, -98.0, 32.0)),
            "states/TX/shape.geojson": _feature(box(-106.6, 25.8, -93.5, 36.5)),
        }
    )
    cache = ShapeCache()

    shape = _resolve(ShapeFetcher(src, cache=cache), "TX", 23, 2022)

    assert shape is None
    assert len(cache) == 0
    assert "states/TX/shape.geojson" not in src.requests
    assert _cd(2012, "TX", "23") not in src.requests


def test_implausible_at_large_substitutes_whole_state() -> None:
    src = MemorySource(
        {
            _cd(2022, "WY", "0"): _feature(NATIONWIDE),
            "states/WY/shape.geojson": _feature(WYOMING),
        }
    )
    cache = ShapeCache()

    shape = _resolve(ShapeFetcher(src, cache=cache), "WY", 0, 2022)

    assert shape is not None and shape.geometry.equals(WYOMING)
    assert cache.lookup(2022, DistrictCode.of("WY", 0)) is shape


def test_implausible_threshold_is_configurable() -> None:
    src = MemorySource({_cd(2022, "NY", "14"): _feature(box(-75.0, 40.0, -73.0, 41.0))})
    strict = ShapeFetcher(src, params=ResolverParams(max_extent_degrees=1.5))
    assert _resolve(strict, "NY", 14, 2022) is None


def test_extent_override_applies_only_to_its_state() -> None:
    wide = box(-120.0, 40.0, -80.0, 45.0)
    src = MemorySource(
        {
            "states/AK/shape.geojson": _feature(wide),
            "states/WY/shape.geojson": _feature(wide),
        }
    )
    fetcher = ShapeFetcher(src)

    assert _resolve(fetcher, "AK", 0, 2022) is not None
    assert _resolve(fetcher, "WY", 0, 2022) is None
    assert ResolverParams().max_extent_for("AK") == 60.0
    assert ResolverParams().max_extent_for("WY") == 30.0


def test_not_found_after_every_strategy() -> None:
    src = MemorySource()
    assert _resolve(ShapeFetcher(src), "NY", 14, 2022) is None
    expected = [_cd(v, "NY", "14") for v in (2022, 2012, 2002, 1992, 1982, 1972, 1962)]
    assert src.requests == expected


def test_empty_candidates_are_not_applicable() -> None:
    src = MemorySource()
    assert ShapeFetcher(src).resolve([], 2022) is None
    assert src.requests == []
