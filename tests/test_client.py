"""Test the Spotify web-player client with a mocked transport"""

import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import pytest

from spot_radio.core.config import SpotifyConfig
from spot_radio.core.exceptions import ErrorKind
from spot_radio.spotify.client import GQL_URL, RawResponse, SpotifyWebClient


def ok(payload) -> RawResponse:
    return RawResponse(status=200, text=json.dumps(payload))


def make_client(*responses, **config) -> tuple[SpotifyWebClient, AsyncMock, AsyncMock]:
    """Client whose _send returns `responses` in order, with a mocked sleep"""
    sleep = AsyncMock()
    client = SpotifyWebClient(SpotifyConfig(**config), sleep=sleep)
    client.set_access_token("token")
    send = AsyncMock(side_effect=list(responses))
    client._send = send
    return client, send, sleep


def library_payload(*tracks, total=None) -> dict:
    return {"data": {"me": {"library": {"tracks": {
        "totalCount": total if total is not None else len(tracks),
        "items": [
            {"track": {"_uri": t["uri"], "data": t}} for t in tracks
        ] + [{"track": {"_uri": "spotify:track:broken"}}],
    }}}}}


class TestRequestClassification:
    """Test status handling and retries"""

    @pytest.mark.asyncio
    async def test_unauthenticated_without_token(self):
        client = SpotifyWebClient(SpotifyConfig())
        client._send = AsyncMock()

        result = await client.track("abc")

        assert result.error.kind is ErrorKind.UNAUTHENTICATED
        client._send.assert_not_called()

    @pytest.mark.asyncio
    async def test_401_is_not_retried(self):
        client, send, _ = make_client(RawResponse(status=401))

        result = await client.track("abc")

        assert result.error.is_auth_error
        assert result.error.status == 401
        assert send.call_count == 1

    @pytest.mark.asyncio
    async def test_429_waits_retry_after_then_succeeds(self, sample_rest_track):
        client, send, sleep = make_client(
            RawResponse(status=429, headers={"Retry-After": "3"}),
            ok(sample_rest_track),
        )

        result = await client.track("test_track_123")

        assert result.ok
        assert result.value.id == "test_track_123"
        sleep.assert_awaited_once_with(3.0)
        assert send.call_count == 2

    @pytest.mark.asyncio
    async def test_long_retry_after_fails_fast(self):
        client, send, sleep = make_client(
            RawResponse(status=429, headers={"retry-after": "120"}),
            max_retry_after=10.0,
        )

        result = await client.top_tracks("short_term")

        assert result.error.kind is ErrorKind.RATE_LIMITED
        assert result.error.retry_after == 120.0
        assert result.error.triggers_cooldown
        sleep.assert_not_called()
        assert send.call_count == 1

    @pytest.mark.asyncio
    async def test_429_without_retry(self):
        client, send, sleep = make_client(RawResponse(status=429, headers={"Retry-After": "1"}))

        result = await client.top_tracks("short_term", retry=False)

        assert result.error.kind is ErrorKind.RATE_LIMITED
        assert send.call_count == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_server_error_backs_off(self, sample_rest_track):
        client, send, sleep = make_client(
            RawResponse(status=503),
            RawResponse(status=502),
            ok(sample_rest_track),
        )

        result = await client.track("test_track_123")

        assert result.ok
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_server_error_on_last_attempt(self):
        client, send, _ = make_client(
            RawResponse(status=500), RawResponse(status=500), RawResponse(status=500)
        )

        result = await client.track("abc")

        assert result.error.kind is ErrorKind.HTTP
        assert result.error.status == 500
        assert send.call_count == 3

    @pytest.mark.asyncio
    async def test_connection_error_is_unreachable(self):
        client, _, _ = make_client(aiohttp.ClientConnectionError("reset"), max_retries=1)

        result = await client.track("abc")

        assert result.error.kind is ErrorKind.UNREACHABLE

    @pytest.mark.asyncio
    async def test_timeout_is_classified(self):
        client, _, _ = make_client(asyncio.TimeoutError(), max_retries=1)

        result = await client.track("abc")

        assert result.error.kind is ErrorKind.TIMEOUT
        assert result.error.triggers_cooldown

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self):
        client, _, _ = make_client(RawResponse(status=200, text="<html>"))

        result = await client.track("abc")

        assert result.error.kind is ErrorKind.MALFORMED

    @pytest.mark.asyncio
    async def test_404_is_http_error(self):
        client, _, _ = make_client(RawResponse(status=404, text="not found"))

        result = await client.track("abc")

        assert result.error.kind is ErrorKind.HTTP
        assert result.error.status == 404


class TestGraphQL:
    """Test GQL operations"""

    @pytest.mark.asyncio
    async def test_liked_songs_page(self, sample_gql_track):
        client, send, _ = make_client(ok(library_payload(sample_gql_track, total=120)))

        result = await client.liked_songs(limit=50, offset=50)

        page = result.value
        assert [t.id for t in page.items] == ["gql_track_1"]
        assert page.total == 120
        assert page.offset == 50
        assert page.has_more is True

        method, url = send.call_args.args
        body = send.call_args.kwargs["json_body"]
        assert (method, url) == ("POST", GQL_URL)
        assert body["operationName"] == "fetchLibraryTracks"
        assert body["variables"] == {"offset": 50, "limit": 50}
        assert send.call_args.kwargs["headers"]["Authorization"] == "Bearer token"

    @pytest.mark.asyncio
    async def test_graphql_errors_are_malformed(self):
        client, _, _ = make_client(ok({"errors": [{"message": "PersistedQueryNotFound"}]}))

        result = await client.liked_songs()

        assert result.error.kind is ErrorKind.MALFORMED
        assert "PersistedQueryNotFound" in result.error.message

    @pytest.mark.asyncio
    async def test_graphql_error_object_is_malformed(self):
        client, _, _ = make_client(
            ok({"errors": {"message": "boom"}}),
            ok({"errors": ["boom"]}),
            ok({"errors": "boom"}),
        )

        first = await client.artist_top_tracks("x")
        second = await client.album_tracks("a1")
        third = await client.liked_songs()

        assert first.error.kind is ErrorKind.MALFORMED
        assert "boom" in first.error.message
        assert second.error.kind is ErrorKind.MALFORMED
        assert "Unknown GraphQL error" in second.error.message
        assert third.error.kind is ErrorKind.MALFORMED

    @pytest.mark.asyncio
    async def test_missing_root_is_malformed(self):
        client, _, _ = make_client(ok({"data": {"me": None}}))

        result = await client.liked_songs()

        assert result.error.kind is ErrorKind.MALFORMED

    @pytest.mark.asyncio
    async def test_followed_artists_filters_non_artists(self):
        client, _, _ = make_client(ok({"data": {"me": {"libraryV3": {"items": [
            {"item": {
                "__typename": "ArtistResponseWrapper",
                "_uri": "spotify:artist:f1",
                "data": {"__typename": "Artist", "profile": {"name": "Followed"}},
            }},
            {"item": {"__typename": "PlaylistResponseWrapper", "data": {"__typename": "Playlist"}}},
        ]}}}}))

        result = await client.followed_artists()

        assert [(a.id, a.name) for a in result.value] == [("f1", "Followed")]

    @pytest.mark.asyncio
    async def test_album_tracks_carry_album(self, sample_gql_track):
        track = dict(sample_gql_track)
        del track["albumOfTrack"]
        client, _, _ = make_client(ok({"data": {"albumUnion": {
            "name": "The Album",
            "coverArt": {"sources": [{"url": "cover", "width": 300, "height": 300}]},
            "tracksV2": {"items": [{"track": track}]},
        }}}))

        result = await client.album_tracks("alb1")

        assert result.value[0].album.id == "alb1"
        assert result.value[0].album.name == "The Album"
        assert result.value[0].album.image_url == "cover"

    @pytest.mark.asyncio
    async def test_related_artists_from_overview(self):
        client, _, _ = make_client(ok({"data": {"artistUnion": {
            "profile": {"name": "Main"},
            "relatedContent": {"relatedArtists": {"items": [
                {"uri": "spotify:artist:r1", "profile": {"name": "Rel"}},
            ]}},
        }}}))

        result = await client.related_artists("main")

        assert [a.name for a in result.value] == ["Rel"]


class TestRestAndToken:
    """Test REST endpoints and token exchange"""

    @pytest.mark.asyncio
    async def test_top_artists_params(self):
        client, send, _ = make_client(ok({"items": [
            {"id": "a1", "name": "One", "genres": ["pop"]},
        ]}))

        result = await client.top_artists("long_term", limit=20)

        assert result.value[0].genres == ("pop",)
        assert send.call_args.kwargs["params"] == {"time_range": "long_term", "limit": 20, "offset": 0}

    @pytest.mark.asyncio
    async def test_fetch_access_token(self):
        client, send, _ = make_client(ok({
            "accessToken": "fresh",
            "accessTokenExpirationTimestampMs": 99,
            "isAnonymous": False,
        }))
        client.set_access_token(None)

        result = await client.fetch_access_token("dc", "key")

        assert result.value.access_token == "fresh"
        assert send.call_args.kwargs["cookies"] == {"sp_dc": "dc", "sp_key": "key"}
        assert "Authorization" not in send.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    async def test_anonymous_token_means_dead_cookie(self):
        client, _, _ = make_client(ok({"accessToken": "anon", "isAnonymous": True}))

        result = await client.fetch_access_token("dc")

        assert result.error.kind is ErrorKind.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_me(self):
        client, _, _ = make_client(ok({"data": {"me": {"profile": {
            "uri": "spotify:user:u1", "name": "Listener",
        }}}}))

        result = await client.me()

        assert result.value.name == "Listener"
        assert result.value.id == "u1"
