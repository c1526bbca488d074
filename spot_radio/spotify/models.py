"""
Data models for Spotify entities.

This module defines immutable dataclasses representing Spotify objects
(tracks, artists, albums, images, access tokens) plus the mapping
functions that build them from the two response families the client
talks to:

    - GraphQL (pathfinder) payloads: nested, `uri` strings instead of ids,
      names under `profile.name`, images under `...sources[]`
    - REST (api.spotify.com/v1) payloads: flat, with `id`, `genres`,
      `popularity`

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - Every mapping tolerates missing fields: a missing value becomes a
      sensible default ("" / 0 / None / empty tuple), never an exception
    - to_dict()/from_dict() give a stable JSON form for the profile cache
      snapshots and the play history

Usage:
    from spot_radio.spotify.models import Track, Artist

    track = Track.from_gql(item["track"]["data"], uri_override=item["track"]["_uri"])
    artist = Artist.from_rest(rest_payload)
"""

from dataclasses import dataclass
from typing import Any


SPOTIFY_OPEN_URL = "https://open.spotify.com"


def _id_from_uri(uri: str | None) -> str:
    """
    Extract the id from a Spotify URI.

    Examples:
        "spotify:track:4cOdK2wGLETKBW3PvgPWqT" -> "4cOdK2wGLETKBW3PvgPWqT"
        "" -> ""
    """
    if not uri:
        return ""
    return uri.rsplit(":", 1)[-1]


def _obj(data: Any, key: str) -> dict[str, Any]:
    """Return data[key] if it is a dict, {} otherwise."""
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, dict):
            return value
    return {}


def _arr(data: Any, key: str) -> list[Any]:
    """Return data[key] if it is a list, [] otherwise."""
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, list):
            return value
    return []


def _str(data: Any, key: str, default: str = "") -> str:
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, str):
            return value
    return default


def _int(data: Any, key: str) -> int | None:
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return None


@dataclass(frozen=True)
class Image:
    """
    Cover art or avatar image.

    Attributes:
        url: Image URL.
        width: Width in pixels, None if unknown.
        height: Height in pixels, None if unknown.
    """
    url: str
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Image | None":
        """Build from a REST or GQL image object; None if it has no url."""
        url = _str(data, "url")
        if not url:
            return None
        return cls(url=url, width=_int(data, "width"), height=_int(data, "height"))

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}


def _images(sources: list[Any]) -> tuple[Image, ...]:
    images = (Image.from_dict(s) for s in sources if isinstance(s, dict))
    return tuple(i for i in images if i is not None)


def _largest(images: tuple[Image, ...]) -> str | None:
    if not images:
        return None
    return max(images, key=lambda i: (i.width or 0) * (i.height or 0)).url


@dataclass(frozen=True)
class SimpleArtist:
    """
    Artist reference embedded in a track.

    Attributes:
        id: Spotify artist id.
        name: Display name.
        uri: Spotify URI ("spotify:artist:{id}").
    """
    id: str
    name: str
    uri: str = ""

    @classmethod
    def from_gql(cls, data: dict[str, Any]) -> "SimpleArtist | None":
        """Build from a GQL `artists.items[]` entry; None without a uri."""
        uri = _str(data, "uri")
        if not uri:
            return None
        return cls(id=_id_from_uri(uri), name=_str(_obj(data, "profile"), "name"), uri=uri)

    @classmethod
    def from_rest(cls, data: dict[str, Any]) -> "SimpleArtist | None":
        """Build from a REST artist object; None without an id."""
        artist_id = _str(data, "id") or _id_from_uri(_str(data, "uri"))
        if not artist_id:
            return None
        return cls(
            id=artist_id,
            name=_str(data, "name"),
            uri=_str(data, "uri", f"spotify:artist:{artist_id}"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "uri": self.uri}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimpleArtist":
        return cls(id=_str(data, "id"), name=_str(data, "name"), uri=_str(data, "uri"))


@dataclass(frozen=True)
class SimpleAlbum:
    """
    Album reference embedded in a track.

    Attributes:
        id: Spotify album id ("" when unknown).
        name: Album title.
        uri: Spotify URI.
        images: Cover art in the sizes Spotify provides.
    """
    id: str
    name: str
    uri: str = ""
    images: tuple[Image, ...] = ()

    @property
    def image_url(self) -> str | None:
        """URL of the largest cover image."""
        return _largest(self.images)

    @classmethod
    def from_gql(cls, data: dict[str, Any]) -> "SimpleAlbum":
        """Build from a GQL `albumOfTrack` object."""
        uri = _str(data, "uri")
        return cls(
            id=_id_from_uri(uri),
            name=_str(data, "name"),
            uri=uri,
            images=_images(_arr(_obj(data, "coverArt"), "sources")),
        )

    @classmethod
    def from_rest(cls, data: dict[str, Any]) -> "SimpleAlbum":
        """Build from a REST album object."""
        return cls(
            id=_str(data, "id") or _id_from_uri(_str(data, "uri")),
            name=_str(data, "name"),
            uri=_str(data, "uri"),
            images=_images(_arr(data, "images")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "uri": self.uri,
            "images": [i.to_dict() for i in self.images],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimpleAlbum":
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            uri=_str(data, "uri"),
            images=_images(_arr(data, "images")),
        )


@dataclass(frozen=True)
class Track:
    """
    Immutable representation of a Spotify track.

    Attributes:
        id: Spotify track id (22-character base62 string).
            Example: "4cOdK2wGLETKBW3PvgPWqT"

        name: Track title as it appears on Spotify.

        artists: Credited artists, primary artist first.

        album: Album the track belongs to, None if the payload had none.

        duration_ms: Track duration in milliseconds, 0 if unknown.

        popularity: Spotify popularity 0-100. Only REST payloads carry it;
                    None for tracks parsed from GQL.

        explicit: Whether Spotify marks the track as explicit.

        uri: Spotify URI ("spotify:track:{id}").

    Class Methods:
        from_gql: Create from a GQL track object.
        from_rest: Create from a REST track object.
        from_dict: Restore from to_dict() output.
    """

    id: str
    name: str
    artists: tuple[SimpleArtist, ...] = ()
    album: SimpleAlbum | None = None
    duration_ms: int = 0
    popularity: int | None = None
    explicit: bool = False
    uri: str = ""

    @property
    def primary_artist(self) -> SimpleArtist | None:
        """First credited artist, None for tracks without artists."""
        return self.artists[0] if self.artists else None

    @property
    def artist_names(self) -> str:
        """Comma-separated artist names for display."""
        return ", ".join(a.name for a in self.artists if a.name)

    @property
    def artist_ids(self) -> tuple[str, ...]:
        return tuple(a.id for a in self.artists if a.id)

    @property
    def spotify_url(self) -> str:
        return f"{SPOTIFY_OPEN_URL}/track/{self.id}"

    @property
    def duration_seconds(self) -> int:
        """Get duration in seconds (rounded down)."""
        return self.duration_ms // 1000

    @property
    def image_url(self) -> str | None:
        """URL of the largest album cover, None if unknown."""
        return self.album.image_url if self.album else None

    @property
    def search_query(self) -> str:
        """
        Build the YouTube Music search query for this track.

        Returns:
            "{primary artist} {title}", stripped.
        """
        artist = self.primary_artist.name if self.primary_artist else ""
        return f"{artist} {self.name}".strip()

    @classmethod
    def from_gql(
        cls,
        data: dict[str, Any],
        uri_override: str | None = None,
        album_override: SimpleAlbum | None = None
    ) -> "Track":
        """
        Create a Track from the track object shared by several GQL operations
        (fetchLibraryTracks, getAlbum, queryArtistOverview, searchDesktop).

        Args:
            data: The track object.
            uri_override: URI found on a wrapper object (e.g. `track._uri`),
                          used when the track data itself has none.
            album_override: Album to attach instead of `albumOfTrack`
                            (album responses omit it on each track).

        Returns:
            Track populated with whatever fields were present.
        """
        uri = uri_override or _str(data, "uri") or _str(data, "_uri")

        artists = tuple(
            a for a in (SimpleArtist.from_gql(item) for item in _arr(_obj(data, "artists"), "items")
                        if isinstance(item, dict))
            if a is not None
        )

        album = album_override
        if album is None and "albumOfTrack" in data:
            album = SimpleAlbum.from_gql(_obj(data, "albumOfTrack"))

        content_rating = _str(_obj(data, "contentRating"), "label")

        return cls(
            id=_id_from_uri(uri),
            name=_str(data, "name"),
            artists=artists,
            album=album,
            duration_ms=_int(_obj(data, "duration"), "totalMilliseconds") or 0,
            popularity=None,
            explicit=content_rating == "EXPLICIT",
            uri=uri,
        )

    @classmethod
    def from_rest(cls, data: dict[str, Any]) -> "Track":
        """Create a Track from a REST track object (e.g. me/top/tracks items)."""
        track_id = _str(data, "id") or _id_from_uri(_str(data, "uri"))
        artists = tuple(
            a for a in (SimpleArtist.from_rest(item) for item in _arr(data, "artists")
                        if isinstance(item, dict))
            if a is not None
        )
        album_data = data.get("album")
        return cls(
            id=track_id,
            name=_str(data, "name"),
            artists=artists,
            album=SimpleAlbum.from_rest(album_data) if isinstance(album_data, dict) else None,
            duration_ms=_int(data, "duration_ms") or 0,
            popularity=_int(data, "popularity"),
            explicit=bool(data.get("explicit", False)),
            uri=_str(data, "uri", f"spotify:track:{track_id}" if track_id else ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "artists": [a.to_dict() for a in self.artists],
            "album": self.album.to_dict() if self.album else None,
            "duration_ms": self.duration_ms,
            "popularity": self.popularity,
            "explicit": self.explicit,
            "uri": self.uri,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Track":
        album = data.get("album")
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            artists=tuple(SimpleArtist.from_dict(a) for a in _arr(data, "artists") if isinstance(a, dict)),
            album=SimpleAlbum.from_dict(album) if isinstance(album, dict) else None,
            duration_ms=_int(data, "duration_ms") or 0,
            popularity=_int(data, "popularity"),
            explicit=bool(data.get("explicit", False)),
            uri=_str(data, "uri"),
        )


@dataclass(frozen=True)
class Artist:
    """
    Full artist object.

    Attributes:
        id: Spotify artist id.
        name: Display name.
        uri: Spotify URI.
        genres: Genre strings (REST only; GQL responses have none).
        images: Avatar images.
        popularity: Spotify popularity 0-100, None if unknown.
    """
    id: str
    name: str
    uri: str = ""
    genres: tuple[str, ...] = ()
    images: tuple[Image, ...] = ()
    popularity: int | None = None

    @property
    def image_url(self) -> str | None:
        return _largest(self.images)

    @classmethod
    def from_simple(cls, artist: SimpleArtist) -> "Artist":
        """Promote a track's artist reference to an Artist without extra data."""
        return cls(id=artist.id, name=artist.name, uri=artist.uri)

    @classmethod
    def from_rest(cls, data: dict[str, Any]) -> "Artist":
        """Create from a REST artist object (me/top/artists items)."""
        artist_id = _str(data, "id") or _id_from_uri(_str(data, "uri"))
        return cls(
            id=artist_id,
            name=_str(data, "name"),
            uri=_str(data, "uri", f"spotify:artist:{artist_id}" if artist_id else ""),
            genres=tuple(g for g in _arr(data, "genres") if isinstance(g, str)),
            images=_images(_arr(data, "images")),
            popularity=_int(data, "popularity"),
        )

    @classmethod
    def from_gql(cls, data: dict[str, Any], uri: str | None = None) -> "Artist":
        """
        Create from a GQL artist object (artistUnion, library item data,
        related-artist entries).

        Args:
            data: Object with `profile.name` and `visuals.avatarImage.sources`.
            uri: URI from a wrapper object when `data` has none.
        """
        artist_uri = uri or _str(data, "uri") or _str(data, "_uri")
        return cls(
            id=_id_from_uri(artist_uri) or _str(data, "id"),
            name=_str(_obj(data, "profile"), "name"),
            uri=artist_uri,
            images=_images(_arr(_obj(_obj(data, "visuals"), "avatarImage"), "sources")),
        )

    def with_images(self, images: tuple[Image, ...]) -> "Artist":
        return Artist(
            id=self.id, name=self.name, uri=self.uri, genres=self.genres,
            images=images, popularity=self.popularity,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "uri": self.uri,
            "genres": list(self.genres),
            "images": [i.to_dict() for i in self.images],
            "popularity": self.popularity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Artist":
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            uri=_str(data, "uri"),
            genres=tuple(g for g in _arr(data, "genres") if isinstance(g, str)),
            images=_images(_arr(data, "images")),
            popularity=_int(data, "popularity"),
        )


@dataclass(frozen=True)
class ArtistOverview:
    """
    Everything the artist page query returns that we use.

    Attributes:
        artist: The artist itself (name, avatar).
        top_tracks: The artist's most played tracks.
        related: Artists listed under "Fans also like".
    """
    artist: Artist
    top_tracks: tuple[Track, ...] = ()
    related: tuple[Artist, ...] = ()

    @classmethod
    def from_gql(cls, artist_union: dict[str, Any], artist_id: str) -> "ArtistOverview":
        """Create from `data.artistUnion` of queryArtistOverview."""
        uri = f"spotify:artist:{artist_id}"
        artist = Artist.from_gql(artist_union, uri=uri)

        top_items = _arr(_obj(_obj(artist_union, "discography"), "topTracks"), "items")
        top_tracks = tuple(
            Track.from_gql(_obj(item, "track"))
            for item in top_items
            if _obj(item, "track")
        )

        related_items = _arr(_obj(_obj(artist_union, "relatedContent"), "relatedArtists"), "items")
        related = tuple(
            Artist.from_gql(item)
            for item in related_items
            if isinstance(item, dict) and (_str(item, "uri") or _str(item, "id"))
        )

        return cls(artist=artist, top_tracks=top_tracks, related=related)


@dataclass(frozen=True)
class Page:
    """
    One page of a paged library listing.

    Attributes:
        items: Items on this page.
        total: Total number of items in the listing (0 if unknown).
        offset: Offset of the first item.
        limit: Requested page size.
    """
    items: tuple[Any, ...]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        """True if another page follows this one."""
        if not self.items:
            return False
        if self.total:
            return self.offset + len(self.items) < self.total
        return len(self.items) >= self.limit


@dataclass(frozen=True)
class AccessToken:
    """
    Web-player access token.

    Attributes:
        access_token: Bearer token string.
        expires_at_ms: Expiry as Unix epoch milliseconds.
        is_anonymous: True when Spotify ignored the session cookie and issued
                      an anonymous token. That means the cookie is dead.
        client_id: Web-player client id reported with the token.
    """
    access_token: str
    expires_at_ms: int
    is_anonymous: bool = False
    client_id: str = ""

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "AccessToken":
        """Create from the get_access_token JSON payload."""
        return cls(
            access_token=_str(data, "accessToken"),
            expires_at_ms=_int(data, "accessTokenExpirationTimestampMs") or 0,
            is_anonymous=bool(data.get("isAnonymous", False)),
            client_id=_str(data, "clientId"),
        )


@dataclass(frozen=True)
class UserProfile:
    """Logged-in user, from the profileAttributes query."""
    id: str
    name: str
    image_url: str | None = None

    @classmethod
    def from_gql(cls, profile: dict[str, Any]) -> "UserProfile":
        return cls(
            id=_id_from_uri(_str(profile, "uri")),
            name=_str(profile, "name"),
            image_url=_largest(_images(_arr(_obj(profile, "avatar"), "sources"))),
        )
