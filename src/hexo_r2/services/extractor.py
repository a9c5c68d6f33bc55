"""Discovery of image references in Hexo Markdown posts."""

import logging
import re
from collections.abc import Iterator

from hexo_r2.models.references import ImageReference, ReferenceKind
from hexo_r2.services.resolver import MalformedUrlError, derive_filename

logger = logging.getLogger("hexo_r2.extractor")

# {% img <url> ['<caption>'] %}
EXTERNAL_TAG_PATTERN = re.compile(r"\{%\s*img\s+(https?://[^\s'\"]+)(?:\s+'([^']*)')?\s*%\}")

# {% asset_img <filename> [caption] %}
LOCAL_ASSET_PATTERN = re.compile(r"\{%\s*asset_img\s+([^\s%]+)(?:\s+([^%]*?))?\s*%\}")

# ![alt](<http(s) url> "title")
MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\((https?://[^\s)]+?)(?:\s+\"([^\"]*)\")?\)")


def _build(
    kind: ReferenceKind,
    span: str,
    source: str,
    alt: str | None,
    title: str | None = None,
) -> ImageReference | None:
    try:
        filename = derive_filename(source)
    except MalformedUrlError as exc:
        # Left untouched; may be intentional non-image content
        logger.debug("Ignoring %s reference %r: %s", kind.value, span, exc)
        return None
    return ImageReference(kind=kind, span=span, source=source, filename=filename, alt=alt, title=title)


def find_external_tags(text: str) -> Iterator[ImageReference]:
    """Yield {% img %} tags pointing at absolute URLs, in document order."""
    for match in EXTERNAL_TAG_PATTERN.finditer(text):
        reference = _build(ReferenceKind.EXTERNAL_TAG, match.group(0), match.group(1), match.group(2))
        if reference is not None:
            yield reference


def find_local_assets(text: str) -> Iterator[ImageReference]:
    """Yield {% asset_img %} tags naming files in the post's asset folder."""
    for match in LOCAL_ASSET_PATTERN.finditer(text):
        reference = _build(ReferenceKind.LOCAL_ASSET, match.group(0), match.group(1), match.group(2) or None)
        if reference is not None:
            yield reference


def find_markdown_images(text: str, public_base_url: str = "") -> Iterator[ImageReference]:
    """
    Yield standard Markdown images with http(s) URLs.

    Images already served from public_base_url have been migrated and are
    not yielded.
    """
    for match in MARKDOWN_IMAGE_PATTERN.finditer(text):
        alt, url, title = match.group(1), match.group(2), match.group(3)
        if public_base_url and url.startswith(public_base_url):
            continue
        reference = _build(ReferenceKind.MARKDOWN_IMAGE, match.group(0), url, alt, title)
        if reference is not None:
            yield reference


def extract_references(text: str, public_base_url: str = "") -> Iterator[ImageReference]:
    """
    Yield every image reference in a post.

    Kinds are scanned in order: {% img %}, {% asset_img %}, then Markdown
    images. A span already yielded is never yielded again, so the first
    occurrence wins when the same text appears several times.
    """
    seen: set[str] = set()
    scanners = (
        find_external_tags(text),
        find_local_assets(text),
        find_markdown_images(text, public_base_url),
    )
    for scanner in scanners:
        for reference in scanner:
            if reference.span in seen:
                continue
            seen.add(reference.span)
            yield reference
