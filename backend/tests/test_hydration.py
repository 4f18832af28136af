from __future__ import annotations

import httpx

from awards_draft.hydration import MetadataHydrator, TmdbClient, build_image_url


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def test_build_image_url() -> None:
    assert build_image_url(None) is None
    assert build_image_url("/abc.jpg").endswith("/w185/abc.jpg")
    assert build_image_url("/abc.jpg", size="original").endswith("/original/abc.jpg")


async def test_fetch_person_sends_bearer_and_maps_profile() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": 500,
                "name": "Emma Stone",
                "profile_path": "/emma.jpg",
                "external_ids": {"imdb_id": "nm1297015"},
            },
        )

    client = TmdbClient(api_key="token", base_url="https://tmdb.test/3", transport=_transport(handler))
    profile = await client.fetch_person(500)

    assert seen[0].url.path == "/3/person/500"
    assert seen[0].headers["Authorization"] == "Bearer token"
    assert seen[0].url.params["append_to_response"] == "external_ids"
    assert profile.name == "Emma Stone"
    assert profile.profile_url.endswith("/w185/emma.jpg")
    assert profile.external_ids == {"imdb_id": "nm1297015"}


async def test_hydrator_turns_failures_into_warnings() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/404"):
            return httpx.Response(404, json={"status_message": "not found"})
        return httpx.Response(200, json={"id": 1, "name": "Someone", "profile_path": None})

    hydrator = MetadataHydrator(
        TmdbClient(api_key="token", base_url="https://tmdb.test/3", transport=_transport(handler))
    )
    outcome = await hydrator.lookup_people([1, 404, 1])

    assert list(outcome.profiles) == [1]
    assert outcome.profiles[1].profile_url is None
    assert len(outcome.warnings) == 1
    assert "404" in outcome.warnings[0]


async def test_unconfigured_client_warns_without_calling_out() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    hydrator = MetadataHydrator(TmdbClient(api_key="", transport=_transport(handler)))
    profile, warnings = await hydrator.lookup_person(500)

    assert profile is None
    assert calls == []
    assert "TMDB_API_KEY" in warnings[0]


async def test_transport_error_becomes_warning() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    hydrator = MetadataHydrator(
        TmdbClient(api_key="token", base_url="https://tmdb.test/3", transport=_transport(handler))
    )
    profile, warnings = await hydrator.lookup_person(7)
    assert profile is None
    assert warnings and "request failed" in warnings[0]
