"""HMAC signing of image URLs in rendered HTML."""

import hashlib
import hmac
from html import escape
from html.parser import HTMLParser
from urllib.parse import urlsplit

DEFAULT_PORTS = {"http": 80, "https": 443}


class ImageSrcCollector(HTMLParser):
    """Collects src attribute values from img tags in HTML."""

    def __init__(self) -> None:
        super().__init__()
        self.sources: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "img":
            for name, value in attrs:
                if name == "src" and value:
                    self.sources.append(value)


def compute_signature(path: str, secret: str) -> str:
    """HMAC-SHA256 of a URL path, hex encoded."""
    return hmac.new(secret.encode(), path.encode(), hashlib.sha256).hexdigest()


def sign_url(url: str, secret: str, domain: str) -> str:
    """
    Sign an image URL served from the given domain.

    The path (with its leading slash) is signed and the signature replaces
    any existing query string as ?sig=<hex>. URLs on other hosts, and URLs
    that cannot be parsed, are returned unchanged.

    Args:
        url: Absolute image URL
        secret: Shared signing secret
        domain: Hostname whose URLs get signed

    Returns:
        Signed URL, or the original URL
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return url

    if not hostname or hostname != domain.lower():
        return url

    path = parts.path or "/"
    origin = f"{parts.scheme}://{hostname}"
    if port and port != DEFAULT_PORTS.get(parts.scheme):
        origin += f":{port}"
    return f"{origin}{path}?sig={compute_signature(path, secret)}"


def sign_image_urls(html: str, secret: str, domain: str) -> str:
    """
    Sign the absolute src URLs of img tags in rendered HTML.

    Args:
        html: Rendered HTML content
        secret: Shared signing secret
        domain: Hostname whose URLs get signed

    Returns:
        HTML with signed image URLs
    """
    collector = ImageSrcCollector()
    collector.feed(html)

    if not collector.sources:
        return html  # Fast path: no images

    replacements: dict[str, str] = {}
    for src in collector.sources:
        if not src.startswith(("http://", "https://")):
            continue
        signed = sign_url(src, secret, domain)
        if signed != src:
            replacements[src] = signed

    # Apply replacements (both quote styles); the markup may hold the src entity-escaped
    for old, new in replacements.items():
        for raw in dict.fromkeys((old, escape(old, quote=False))):
            html = html.replace(f'src="{raw}"', f'src="{new}"')
            html = html.replace(f"src='{raw}'", f"src='{new}'")

    return html
