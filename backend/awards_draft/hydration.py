"""Best-effort TMDB metadata hydration.

Lookups run before the core transaction opens. Any failure becomes a warning
string on the caller's result; hydration never blocks a write.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx

from awards_draft.config import settings
from awards_draft.metrics import HYDRATION_FAILURES_TOTAL

logger = logging.getLogger(__name__)

PROFILE_IMAGE_SIZE = "w185"


class HydrationError(Exception):
    """A single metadata lookup could not be completed."""


@dataclass(slots=True)
class PersonProfile:
    tmdb_id: int
    name: str | None = None
    profile_path: str | None = None
    profile_url: str | None = None
    external_ids: dict[str, Any] | None = None


@dataclass(slots=True)
class HydrationOutcome:
    profiles: dict[int, PersonProfile] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def build_image_url(profile_path: str | None, size: str = PROFILE_IMAGE_SIZE) -> str | None:
    if not profile_path:
        return None
    return f"{settings.TMDB_IMAGE_BASE_URL.rstrip('/')}/{size}{profile_path}"


class TmdbClient:
    """Thin async TMDB v3 client authenticated with a read-access bearer token."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.TMDB_API_KEY
        self._base_url = (base_url or settings.TMDB_BASE_URL).rstrip("/")
        self._timeout_s = timeout_s or settings.TMDB_TIMEOUT_S
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.configured:
            raise HydrationError("TMDB is not configured (TMDB_API_KEY missing)")
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_s,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                },
                transport=self._transport,
            ) as client:
                resp = await client.get(path, params=params)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            raise HydrationError(f"TMDB returned {exc.response.status_code} for {path}") from exc
        except httpx.HTTPError as exc:
            raise HydrationError(f"TMDB request failed for {path}: {exc}") from exc
        except ValueError as exc:
            raise HydrationError(f"TMDB returned invalid JSON for {path}") from exc

    async def fetch_person(self, tmdb_id: int) -> PersonProfile:
        data = await self._get_json(
            f"/person/{tmdb_id}",
            params={"language": "en-US", "append_to_response": "external_ids"},
        )
        profile_path = data.get("profile_path") or None
        return PersonProfile(
            tmdb_id=int(tmdb_id),
            name=data.get("name") or None,
            profile_path=profile_path,
            profile_url=build_image_url(profile_path),
            external_ids=data.get("external_ids") or None,
        )


class MetadataHydrator:
    """Phase one of every hydrating write: collect profiles, record warnings."""

    def __init__(self, client: TmdbClient | None = None) -> None:
        self._client = client or TmdbClient()

    async def lookup_person(self, tmdb_id: int) -> tuple[PersonProfile | None, list[str]]:
        outcome = await self.lookup_people([tmdb_id])
        return outcome.profiles.get(int(tmdb_id)), outcome.warnings

    async def lookup_people(self, tmdb_ids: Iterable[int]) -> HydrationOutcome:
        outcome = HydrationOutcome()
        for tmdb_id in dict.fromkeys(int(t) for t in tmdb_ids):
            try:
                outcome.profiles[tmdb_id] = await self._client.fetch_person(tmdb_id)
            except HydrationError as exc:
                HYDRATION_FAILURES_TOTAL.labels(kind="person").inc()
                logger.warning("Person hydration failed for tmdb_id=%s: %s", tmdb_id, exc)
                outcome.warnings.append(f"Could not load TMDB profile for person {tmdb_id}: {exc}")
        return outcome
