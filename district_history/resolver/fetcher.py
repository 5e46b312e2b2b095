from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from .cache import CollectionCache, ResolvedShape, ShapeCache
from .config import ResolverParams
from .geometry import extent, is_plausible_district, normalize_payload, to_shape
from .io import ShapeSource, ShapeSourceError
from .keys import DistrictCode

EMPTY_COLLECTION: Dict[str, Any] = {"type": "FeatureCollection", "features": []}

class Strategy:
    name = "strategy"
    # Cached shapes were validated when first stored
    from_cache = False

    def fetch(self, candidates: Sequence[DistrictCode], vintage: int) -> Optional[ResolvedShape]:
        raise NotImplementedError

class CacheLookup(Strategy):
    name = "cache"
    from_cache = True

    def __init__(self, cache: ShapeCache):
        self.cache = cache

    def fetch(self, candidates, vintage):
        for code in candidates:
            cached = self.cache.lookup(vintage, code)
            if cached is not None:
                return cached
        return None

class LegacyBulkCollection(Strategy):
    """Search the per-state, multi-district file used for older vintages."""

    name = "legacy-bulk"

    def __init__(self, source: ShapeSource, collections: CollectionCache, params: ResolverParams):
        self.source = source
        self.collections = collections
        self.params = params

    def load(self, state: str, vintage: int) -> Optional[Dict[str, Any]]:
        key = (state, vintage)
        coll = self.collections.get(key)
        if coll is not None:
            return coll
        path = self.source.bulk_path(state, vintage, self.params.legacy_vintage_max)
        if path is None:
            return None
        coll = self.source.fetch_json(path)
        if coll is not None and not isinstance(coll, dict):
            logger.debug(f"Ignoring {path}: expected a FeatureCollection, got {type(coll).__name__}")
            coll = None
        if coll is None:
            # Remember the absence so other districts of the state skip the request
            coll = EMPTY_COLLECTION
        return self.collections.put(key, coll)

    def fetch(self, candidates, vintage):
        if vintage > self.params.legacy_vintage_max:
            return None
        state = candidates[0].state
        coll = self.load(state, vintage)
        if not coll:
            return None

        features = coll.get("features")
        if not isinstance(features, list):
            return None
        for feat in features:
            if not isinstance(feat, dict):
                continue
            props = feat.get("properties")
            if not isinstance(props, dict):
                continue
            try:
                code = DistrictCode.of(state, props.get("district"))
            except (ValueError, OverflowError):
                continue
            if code not in candidates:
                continue
            geom = to_shape(feat.get("geometry"))
            if geom is not None:
                return ResolvedShape(vintage, code, geom)
        return None

class DistrictRecord(Strategy):
    """Individually addressed (vintage, district) records."""

    name = "district-record"

    def __init__(self, source: ShapeSource):
        self.source = source

    def fetch_at(self, candidates: Sequence[DistrictCode], vintage: int) -> Optional[ResolvedShape]:
        failures = []
        for code in candidates:
            path = self.source.district_path(vintage, code)
            try:
                payload = self.source.fetch_json(path)
            except ShapeSourceError as e:
                failures.append(e)
                continue
            geom = normalize_payload(payload)
            if geom is not None:
                return ResolvedShape(vintage, code, geom)
            if payload is not None:
                logger.debug(f"No usable geometry in {path}")
        if failures and len(failures) == len(candidates):
            raise failures[-1]
        return None

    def fetch(self, candidates, vintage):
        return self.fetch_at(candidates, vintage)

class OlderVintageRecord(DistrictRecord):
    """Per-district records from other known vintages, newest first."""

    name = "older-vintage"

    def __init__(self, source: ShapeSource, params: ResolverParams):
        super().__init__(source)
        self.params = params

    def fetch(self, candidates, vintage):
        for fallback in self.params.fallback_vintages:
            if fallback == vintage:
                continue
            try:
                hit = self.fetch_at(candidates, fallback)
            except ShapeSourceError as e:
                logger.debug(f"{self.name} {fallback} failed: {e}")
                continue
            if hit is not None:
                return hit
        return None

class WholeStateBoundary(Strategy):
    """For at-large seats the district is the state."""

    name = "whole-state"

    def __init__(self, source: ShapeSource):
        self.source = source

    def applies(self, candidates: Sequence[DistrictCode]) -> bool:
        return bool(candidates) and candidates[0].is_at_large

    def fetch(self, candidates, vintage):
        if not self.applies(candidates):
            return None
        payload = self.source.fetch_json(self.source.state_path(candidates[0].state))
        geom = normalize_payload(payload)
        if geom is None:
            return None
        return ResolvedShape(vintage, candidates[0].respelled("0"), geom)

def default_strategies(
    source: ShapeSource,
    cache: ShapeCache,
    collections: CollectionCache,
    params: ResolverParams,
) -> List[Strategy]:
    return [
        CacheLookup(cache),
        LegacyBulkCollection(source, collections, params),
        DistrictRecord(source),
        OlderVintageRecord(source, params),
        WholeStateBoundary(source),
    ]

class ShapeFetcher:
    def __init__(
        self,
        source: ShapeSource,
        cache: Optional[ShapeCache] = None,
        params: Optional[ResolverParams] = None,
        strategies: Optional[List[Strategy]] = None,
    ):
        self.source = source
        self.cache = cache if cache is not None else ShapeCache()
        self.collections = CollectionCache()
        self.params = params or ResolverParams()
        self.strategies = strategies or default_strategies(source, self.cache, self.collections, self.params)

    def resolve(self, candidates: Sequence[DistrictCode], vintage: int) -> Optional[ResolvedShape]:
        if not candidates:
            return None

        tried = set()
        for strategy in self.strategies:
            tried.add(strategy.name)
            hit = self._attempt(strategy, candidates, vintage)
            if hit is None:
                continue
            if strategy.from_cache:
                return hit
            if not self._plausible(hit, strategy):
                return self._after_implausible(candidates, vintage, tried)
            return self._remember(hit, vintage)

        logger.warning(f"No shape found for {' or '.join(self._spellings(candidates))} in {vintage}")
        return None

    def close(self) -> None:
        self.source.close()

    def _attempt(self, strategy: Strategy, candidates, vintage: int) -> Optional[ResolvedShape]:
        try:
            return strategy.fetch(candidates, vintage)
        except ShapeSourceError as e:
            logger.debug(f"{strategy.name} failed for {candidates[0]} ({vintage}): {e}")
            return None

    def _plausible(self, hit: ResolvedShape, strategy: Strategy) -> bool:
        limit = self.params.max_extent_for(hit.code.state)
        if is_plausible_district(hit.geometry, limit):
            return True
        dx, dy = extent(hit.geometry)
        logger.warning(
            f"Discarding implausible shape for {hit.code} from {strategy.name} "
            f"({hit.vintage}): extent {dx:.1f}x{dy:.1f} degrees, limit {limit:.0f}"
        )
        return False

    def _after_implausible(self, candidates, vintage: int, tried: set) -> Optional[ResolvedShape]:
        for strategy in self.strategies:
            if not isinstance(strategy, WholeStateBoundary) or strategy.name in tried:
                continue
            if not strategy.applies(candidates):
                continue
            tried.add(strategy.name)
            hit = self._attempt(strategy, candidates, vintage)
            if hit is not None and self._plausible(hit, strategy):
                return self._remember(hit, vintage)
        logger.warning(f"No plausible shape for {candidates[0]} in {vintage}")
        return None

    def _remember(self, hit: ResolvedShape, requested_vintage: int) -> ResolvedShape:
        shape = self.cache.store(hit.vintage, hit.code, hit)
        if hit.vintage != requested_vintage:
            self.cache.store(requested_vintage, hit.code, shape)
        return shape

    @staticmethod
    def _spellings(candidates: Sequence[DistrictCode]) -> List[str]:
        return [f"{c.state}-{c.spelling}" for c in candidates]
