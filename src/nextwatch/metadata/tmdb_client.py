"""
Metadata Source Client

Async client for the TMDb v3 API. Exposes the three capabilities the core
relies on:

- search(title)   -> [ItemStub]
- paginate(page)  -> [ItemStub]   (popular items, one page)
- details(id)     -> ItemDetail   (with trailer resolved in the same call)
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from ..catalog.models import ItemDetail, ItemStub
from ..config import settings

logger = logging.getLogger("nextwatch.metadata")


class MetadataSourceError(RuntimeError):
    """Raised when the metadata source fails or returns an unusable payload."""


class TMDbClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.tmdb_api_key.get_secret_value()
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.timeout = timeout or settings.tmdb_timeout
        self._transport = transport

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}{path}", params=params, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise MetadataSourceError(
                f"Metadata request {path} failed: {type(exc).__name__}"
            ) from exc

        data = resp.json()
        if not isinstance(data, dict):
            raise MetadataSourceError(f"Unexpected payload for {path}")
        return data

    async def search(self, title: str) -> List[ItemStub]:
        logger.info("Searching metadata source for: %s", title)
        data = await self._request(
            "/search/movie",
            {"query": title, "include_adult": "false"},
        )
        return self._parse_stubs(data)

    async def paginate(self, page: int) -> List[ItemStub]:
        logger.debug("Fetching popular items, page %d", page)
        data = await self._request(
            "/movie/popular",
            {"page": page, "sort_by": "popularity.desc"},
        )
        return self._parse_stubs(data)

    async def details(self, external_id: int) -> ItemDetail:
        data = await self._request(
            f"/movie/{external_id}",
            {"append_to_response": "videos"},
        )
        return self._parse_detail(data)

    # ------------------------------------------------------------------
    # Payload parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_stubs(data: Dict[str, Any]) -> List[ItemStub]:
        stubs: List[ItemStub] = []
        for raw in data.get("results") or []:
            if not isinstance(raw, dict) or raw.get("id") is None:
                continue
            stubs.append(
                ItemStub(
                    external_id=raw["id"],
                    title=raw.get("title") or "",
                    rating_hint=raw.get("vote_average"),
                )
            )
        return stubs

    @classmethod
    def _parse_detail(cls, data: Dict[str, Any]) -> ItemDetail:
        if data.get("id") is None or not data.get("title"):
            raise MetadataSourceError("Detail payload missing 'id' or 'title'.")

        genres = [
            g["name"]
            for g in data.get("genres") or []
            if isinstance(g, dict) and g.get("name")
        ]

        return ItemDetail(
            external_id=data["id"],
            title=data["title"],
            overview=data.get("overview") or None,
            release_date=cls._parse_date(data.get("release_date")),
            genres=genres,
            rating=data.get("vote_average"),
            popularity=data.get("popularity"),
            poster_path=data.get("poster_path"),
            trailer_key=cls._pick_trailer((data.get("videos") or {}).get("results")),
        )

    @staticmethod
    def _pick_trailer(videos: Optional[List[Dict[str, Any]]]) -> Optional[str]:
        for video in videos or []:
            if video.get("site") == "YouTube" and video.get("type") == "Trailer":
                return video.get("key")
        return None

    @staticmethod
    def _parse_date(value: Optional[str]) -> Optional[date]:
        if not value:
            return None
        try:
            return date.fromisoformat(value)
        except ValueError:
            logger.warning("Failed to parse release date: %s", value)
            return None
