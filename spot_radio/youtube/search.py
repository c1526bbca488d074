"""
YouTube Music search adapter.

ytmusicapi is synchronous; searches run in a worker thread via
asyncio.to_thread so the event loop keeps serving other resolutions.
The search is unfiltered, so official videos (OMV) and user uploads (UGC)
compete with studio audio (ATV) and the matcher can tell them apart by
content type. Albums, artists, playlists and the like are dropped.
"""

import asyncio

from ytmusicapi import YTMusic

from spot_radio.core.exceptions import YouTubeError
from spot_radio.core.logger import get_logger
from spot_radio.youtube.models import YouTubeResult


logger = get_logger(__name__)


PLAYABLE_RESULT_TYPES = ("song", "video")


class YouTubeMusicSearch:
    """
    Song and video search on YouTube Music.

    Args:
        ytmusic: Client to use; an anonymous YTMusic is created on the
                 first search when None.
        language: Result language for a created client.
        limit: Results requested per search.
    """

    def __init__(self, ytmusic: YTMusic | None = None, language: str = "en", limit: int = 20) -> None:
        self._ytmusic = ytmusic
        self._language = language
        self._limit = limit

    def _client(self) -> YTMusic:
        if self._ytmusic is None:
            self._ytmusic = YTMusic(language=self._language)
        return self._ytmusic

    async def search(self, query: str) -> list[YouTubeResult]:
        """
        Search songs and videos.

        Returns:
            Parsed results with a video id, in YouTube's order, without
            duplicates (the top result usually repeats in its category).

        Raises:
            YouTubeError: If the search request fails.
        """
        try:
            raw_results = await asyncio.to_thread(self._search_sync, query)
        except Exception as e:
            raise YouTubeError(f"YouTube Music search failed: {e}", {"query": query}) from e

        results = []
        seen: set[str] = set()
        for raw in raw_results or []:
            if not isinstance(raw, dict) or not raw.get("videoId"):
                continue
            if raw.get("resultType", "song") not in PLAYABLE_RESULT_TYPES:
                continue
            if raw["videoId"] in seen:
                continue
            seen.add(raw["videoId"])
            results.append(YouTubeResult.from_ytmusic_result(raw))

        results = results[:self._limit]
        videos = sum(1 for r in results if r.result_type == "video")
        logger.debug(f"Search '{query}' returned {len(results)} results ({videos} videos)")
        return results

    def _search_sync(self, query: str) -> list:
        # Unfiltered, like the web client's search summary: songs plus videos
        return self._client().search(query, limit=self._limit)
