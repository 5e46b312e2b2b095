from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .aggregate import AnnotatedFeature, annotate, merge_features, to_feature_collection
from .config import ResolverParams
from .eras import vintage_for_year
from .fetcher import ShapeFetcher
from .keys import DistrictCode, candidates_for, district_code_for
from .terms import OfficeholderTerm

RosterLookup = Callable[[int], Sequence[OfficeholderTerm]]
Publisher = Callable[[Dict[str, Any]], None]

class RequestGenerations:
    """Monotonic counter; only the most recently issued token is current."""

    def __init__(self) -> None:
        self._latest = 0
        self._lock = threading.Lock()
        # Separate from _lock so a publish callback may issue or publish again
        self._publish_lock = threading.RLock()

    @property
    def latest(self) -> int:
        with self._lock:
            return self._latest

    def issue(self) -> "RequestToken":
        with self._lock:
            self._latest += 1
            return RequestToken(self, self._latest)

    def run_if_current(self, token: "RequestToken", fn: Callable[[], None]) -> bool:
        # Publishes are serialized; a newer one waits for this one to finish
        with self._publish_lock:
            if token.value != self.latest:
                return False
            fn()
            return True

class RequestToken:
    def __init__(self, generations: RequestGenerations, value: int):
        self._generations = generations
        self.value = value

    def is_current(self) -> bool:
        return self._generations.latest == self.value

    def __repr__(self) -> str:
        return f"RequestToken({self.value})"

def unique_districts(terms: Sequence[OfficeholderTerm]) -> List[Tuple[DistrictCode, OfficeholderTerm]]:
    """Lower-chamber terms, one per district; the first term seen wins."""
    by_district: Dict[DistrictCode, OfficeholderTerm] = {}
    for t in terms:
        code = district_code_for(t)
        if code is None or code in by_district:
            continue
        by_district[code] = t
    return list(by_district.items())

class BatchResolver:
    def __init__(
        self,
        fetcher: ShapeFetcher,
        params: Optional[ResolverParams] = None,
        generations: Optional[RequestGenerations] = None,
    ):
        self.fetcher = fetcher
        self.params = params or fetcher.params
        self.generations = generations or RequestGenerations()

    def close(self) -> None:
        self.fetcher.close()

    def __enter__(self) -> "BatchResolver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _resolve_one(self, term: OfficeholderTerm, vintage: int) -> Optional[AnnotatedFeature]:
        shape = self.fetcher.resolve(candidates_for(term), vintage)
        if shape is None:
            return None
        return annotate(shape, term, vintage)

    def resolve_all(
        self,
        terms: Sequence[OfficeholderTerm],
        year: int,
        token: Optional[RequestToken] = None,
    ) -> Optional[List[AnnotatedFeature]]:
        """
        Resolve and annotate one shape per lower-chamber district.

        Districts run in batches of ``params.concurrency``; a batch starts only
        once the previous one has finished. Districts with no resolvable shape
        are left out. Returns None if ``token`` is superseded before the work
        completes.
        """
        logger.info(f"Fetching district shapes for {len(terms)} members...")
        districts = unique_districts(terms)
        logger.info(f"Unique districts to load: {len(districts)}")

        vintage = vintage_for_year(year)
        size = max(1, self.params.concurrency)
        results: List[AnnotatedFeature] = []

        with ThreadPoolExecutor(max_workers=size, thread_name_prefix="district-shapes") as pool:
            for i in range(0, len(districts), size):
                if token is not None and not token.is_current():
                    logger.info(f"Abandoning {year} shapes: superseded by a newer request")
                    return None
                batch = districts[i:i + size]
                futures = [(code, pool.submit(self._resolve_one, term, vintage)) for code, term in batch]
                for code, future in futures:
                    try:
                        feat = future.result()
                    except Exception as e:
                        logger.exception(f"Unhandled error resolving {code} ({vintage}): {e}")
                        feat = None
                    if feat is not None:
                        results.append(feat)

        if token is not None and not token.is_current():
            logger.info(f"Abandoning {year} shapes: superseded by a newer request")
            return None

        logger.info(f"Found {len(results)} unique district shapes.")
        return merge_features(results)

    def resolve_year(self, year: int, roster: RosterLookup, publish: Publisher) -> Optional[Dict[str, Any]]:
        """
        Look up the roster for ``year``, resolve its shapes and publish them.

        Starting a newer request supersedes this one: it then returns None and
        never calls ``publish``.
        """
        token = self.generations.issue()

        terms = roster(year)
        if not token.is_current():
            return None

        features = self.resolve_all(terms, year, token)
        if features is None or not token.is_current():
            return None

        collection = to_feature_collection(features)
        if not self.generations.run_if_current(token, lambda: publish(collection)):
            return None
        return collection
