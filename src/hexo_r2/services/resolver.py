"""Storage key and public URL resolution for image references."""

import posixpath
from dataclasses import dataclass
from urllib.parse import urlsplit

# Used when a URL ends in "/" and has no usable last segment
DEFAULT_EXTENSION = ".png"
DEFAULT_FILENAME = f"image{DEFAULT_EXTENSION}"


class MalformedUrlError(ValueError):
    """Raised when a candidate URL cannot be parsed."""


@dataclass(frozen=True)
class Location:
    """Where an image lives in the object store."""

    key: str
    public_url: str


def derive_filename(source: str) -> str:
    """
    Derive the storage file name from a URL or bare asset name.

    The query string and fragment are dropped and the final path segment is
    kept. An empty segment falls back to DEFAULT_FILENAME.

    Raises:
        MalformedUrlError: If the URL cannot be parsed
    """
    try:
        parts = urlsplit(source)
        # Reading .port validates it (raises ValueError when non-numeric)
        port = parts.port
    except ValueError as exc:
        raise MalformedUrlError(f"Cannot parse URL {source!r}: {exc}") from exc

    if parts.scheme in ("http", "https") and (not parts.hostname or port == 0):
        raise MalformedUrlError(f"URL has no usable host: {source!r}")

    return posixpath.basename(parts.path) or DEFAULT_FILENAME


def external_tag_alt(raw: str | None, filename: str) -> str:
    """Alt text for {% img %} captions: every quote character is removed."""
    if not raw:
        return filename
    return raw.replace('"', "").replace("'", "").strip()


def local_asset_alt(raw: str | None, filename: str) -> str:
    """Alt text for {% asset_img %} captions: only surrounding whitespace is removed."""
    if not raw:
        return filename
    return raw.strip()


class LocationResolver:
    """Maps (post identifier, file name) to a storage key and public URL."""

    def __init__(self, key_prefix: str, public_base_url: str) -> None:
        self.key_prefix = key_prefix
        self.public_base_url = public_base_url.rstrip("/")

    def key_for(self, document_id: str, filename: str) -> str:
        return f"{self.key_prefix}{document_id}/{filename}"

    def public_url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def resolve(self, document_id: str, filename: str) -> Location:
        """Resolve a post's image to its storage location."""
        key = self.key_for(document_id, filename)
        return Location(key=key, public_url=self.public_url_for(key))
