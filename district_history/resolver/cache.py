from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from shapely.geometry.base import BaseGeometry

from .keys import DistrictCode

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

@dataclass(frozen=True)
class ResolvedShape:
    vintage: int
    code: DistrictCode
    geometry: BaseGeometry

class LockedStore(Generic[K, V]):
    """Append-only dict safe for concurrent readers and writers."""

    def __init__(self) -> None:
        self._items: Dict[K, V] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            return self._items.get(key)

    def put(self, key: K, value: V) -> V:
        # First write wins; a racing duplicate fetch carries the same value
        with self._lock:
            return self._items.setdefault(key, value)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

class ShapeCache(LockedStore[Tuple[int, DistrictCode], ResolvedShape]):
    """Resolved geometries keyed by (vintage, district code)."""

    def lookup(self, vintage: int, code: DistrictCode) -> Optional[ResolvedShape]:
        return self.get((vintage, code))

    def store(self, vintage: int, code: DistrictCode, shape: ResolvedShape) -> ResolvedShape:
        return self.put((vintage, code), shape)

class CollectionCache(LockedStore[Tuple[str, int], Dict[str, Any]]):
    """Whole-state bulk collections keyed by (state, vintage)."""
