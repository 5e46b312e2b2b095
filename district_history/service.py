from __future__ import annotations

from typing import Optional

from loguru import logger

from district_history import config
from district_history.resolver.batch import BatchResolver
from district_history.resolver.cache import ShapeCache
from district_history.resolver.config import ResolverParams
from district_history.resolver.fetcher import ShapeFetcher
from district_history.resolver.io import ShapeSource, open_shape_source

def default_params() -> ResolverParams:
    return ResolverParams(concurrency=config.DISTRICT_FETCH_CONCURRENCY)

def build_resolver(
    source: Optional[ShapeSource] = None,
    params: Optional[ResolverParams] = None,
    cache: Optional[ShapeCache] = None,
) -> BatchResolver:
    """
    Resolver over the configured shape source, each with its own cache unless one is given.

    Close it (or use it in a ``with`` block) to close its shape source.
    """
    params = params or default_params()
    if source is None:
        logger.info(f"District shapes source: {config.DISTRICT_SHAPES_SOURCE}")
        source = open_shape_source(config.DISTRICT_SHAPES_SOURCE, timeout=config.DISTRICT_SHAPES_TIMEOUT)
    fetcher = ShapeFetcher(source, cache=cache, params=params)
    return BatchResolver(fetcher, params=params)
