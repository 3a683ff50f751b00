from datetime import date

import httpx
import pytest

from nextwatch.metadata.tmdb_client import MetadataSourceError, TMDbClient

DETAIL_PAYLOAD = {
    "id": 27205,
    "title": "Inception",
    "overview": "A thief who steals corporate secrets through dream-sharing.",
    "release_date": "2010-07-15",
    "genres": [{"id": 878, "name": "Science Fiction"}, {"id": 53, "name": "Thriller"}],
    "vote_average": 8.4,
    "popularity": 83.9,
    "poster_path": "/oYuLEt3zVCKq57qu2F8dT7NIa6f.jpg",
    "videos": {
        "results": [
            {"site": "YouTube", "type": "Teaser", "key": "teaser1"},
            {"site": "Vimeo", "type": "Trailer", "key": "vimeo1"},
            {"site": "YouTube", "type": "Trailer", "key": "YoHD9XEInc0"},
        ]
    },
}


def client_for(handler):
    return TMDbClient(
        api_key="test-token",
        base_url="https://tmdb.test/3",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_details_parsed_with_trailer():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json=DETAIL_PAYLOAD)

    detail = await client_for(handler).details(27205)

    assert seen["path"] == "/3/movie/27205"
    assert seen["params"]["append_to_response"] == "videos"
    assert seen["auth"] == "Bearer test-token"
    assert detail.genres == ("Science Fiction", "Thriller")
    assert detail.release_date == date(2010, 7, 15)
    assert detail.trailer_key == "YoHD9XEInc0"
    assert detail.rating == 8.4


@pytest.mark.asyncio
async def test_paginate_and_search_return_stubs():
    def handler(request):
        return httpx.Response(200, json={"results": [
            {"id": 1, "title": "A", "vote_average": 7.1},
            {"title": "missing id"},
            {"id": 2, "title": "B"},
        ]})

    client = client_for(handler)

    stubs = await client.paginate(3)
    assert [s.external_id for s in stubs] == [1, 2]
    assert stubs[0].rating_hint == 7.1

    assert [s.title for s in await client.search("A")] == ["A", "B"]


@pytest.mark.asyncio
async def test_empty_results():
    client = client_for(lambda request: httpx.Response(200, json={"results": []}))
    assert await client.search("nothing") == []


@pytest.mark.asyncio
async def test_http_error_wrapped():
    client = client_for(lambda request: httpx.Response(503, json={}))
    with pytest.raises(MetadataSourceError):
        await client.paginate(1)


def test_detail_without_title_rejected():
    with pytest.raises(MetadataSourceError):
        TMDbClient._parse_detail({"id": 5, "title": ""})


def test_bad_release_date_becomes_none():
    assert TMDbClient._parse_date("2010-13-45") is None
    assert TMDbClient._parse_date(None) is None
    assert TMDbClient._pick_trailer(None) is None
