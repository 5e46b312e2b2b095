from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from .config import STATE_FILE_NAMES, SourceLayout
from .eras import congress_range_for_vintage
from .keys import DistrictCode

class ShapeSourceError(RuntimeError):
    """A shape request failed for reasons other than the record being absent."""

class ShapeSource:
    """
    Read-only access to district shape files by relative path.

    ``fetch_json`` returns None when the record does not exist and raises
    ShapeSourceError for transport or decoding problems.
    """

    layout = SourceLayout()

    def fetch_json(self, path: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def bulk_path(self, state: str, vintage: int, legacy_vintage_max: int = 2002) -> Optional[str]:
        state_name = STATE_FILE_NAMES.get(state.upper())
        span = congress_range_for_vintage(vintage, legacy_vintage_max)
        if state_name is None or span is None:
            return None
        start, end = span
        return f"{self.layout.bulk_dir}/{state_name}_{start}_to_{end}.geojson"

    def district_path(self, vintage: int, code: DistrictCode) -> str:
        return f"{self.layout.district_dir}/{vintage}/{code.state}-{code.spelling}/{self.layout.shape_file}"

    def state_path(self, state: str) -> str:
        return f"{self.layout.state_dir}/{state.upper()}/{self.layout.shape_file}"

class HttpShapeSource(ShapeSource):
    def __init__(self, base_url: str, client: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._owns_client = client is None

    def fetch_json(self, path: str) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as e:
            raise ShapeSourceError(f"GET {url} failed: {e}") from e
        if resp.status_code == 404:
            return None
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ShapeSourceError(f"GET {url} returned {resp.status_code}") from e
        try:
            return resp.json()
        except ValueError as e:
            raise ShapeSourceError(f"GET {url} returned invalid JSON") from e

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

class DirectoryShapeSource(ShapeSource):
    def __init__(self, root: Path | str):
        self.root = Path(root)
        if not self.root.is_dir():
            logger.warning(f"District shape directory does not exist: {self.root}")

    def fetch_json(self, path: str) -> Optional[Dict[str, Any]]:
        fp = self.root / path
        if not fp.is_file():
            return None
        try:
            with fp.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise ShapeSourceError(f"Could not read {fp}: {e}") from e

def open_shape_source(location: str, timeout: float = 30.0) -> ShapeSource:
    if location.startswith(("http://", "https://")):
        return HttpShapeSource(location, timeout=timeout)
    return DirectoryShapeSource(location)
