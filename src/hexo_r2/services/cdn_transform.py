"""Routing of bucket image URLs through the CDN image transformation path."""

import logging
import re

from hexo_r2.config import Settings

logger = logging.getLogger("hexo_r2.cdn_transform")

TRANSFORM_ROOT = "/cdn-cgi/image"
LAZY_ATTRIBUTES = ("src", "data-src", "data-original", "data-lazy-src")


def rewrite_cdn_urls(html: str, base_url: str, options: str) -> str:
    """
    Prefix bucket URLs with /cdn-cgi/image/<options>/.

    Covers src-like attributes (including common lazy-loading ones), every
    entry of srcset, and inline CSS url(...) values.

    Args:
        html: Rendered HTML content
        base_url: Public base URL of the bucket
        options: Transformation options, e.g. "format=auto,quality=85"

    Returns:
        HTML with rewritten image URLs
    """
    base = base_url.rstrip("/")
    if not base:
        return html

    prefix = f"{TRANSFORM_ROOT}/{options.strip('/')}/"
    escaped = re.escape(base)

    attr_names = "|".join(re.escape(name) for name in LAZY_ATTRIBUTES)
    attr_pattern = re.compile(rf"((?:{attr_names})=[\"'])({escaped}/[^\"' >\n]+)([\"'])", re.IGNORECASE)
    html = attr_pattern.sub(lambda m: f"{m.group(1)}{prefix}{m.group(2)}{m.group(3)}", html)

    # Skip URLs already behind the prefix (preceded by "/")
    srcset_pattern = re.compile(r"(srcset=[\"'])([^\"']+)([\"'])", re.IGNORECASE)
    url_in_srcset = re.compile(rf"(?<!/){escaped}/[^\s,]+", re.IGNORECASE)
    html = srcset_pattern.sub(
        lambda m: m.group(1) + url_in_srcset.sub(lambda u: prefix + u.group(0), m.group(2)) + m.group(3),
        html,
    )

    style_pattern = re.compile(rf"(url\([\"']?)({escaped}/[^\"')\s]+)([\"']?\))", re.IGNORECASE)
    html = style_pattern.sub(lambda m: f"{m.group(1)}{prefix}{m.group(2)}{m.group(3)}", html)

    return html


def apply_cdn_transform(html: str, settings: Settings, serving: bool = False) -> str:
    """Rewrite bucket URLs unless disabled or running on the dev server."""
    if serving and not settings.cdn_transform_in_dev:
        return html
    if not settings.cdn_transform_enabled:
        return html
    if not settings.r2_public_base_url:
        logger.warning("R2_PUBLIC_BASE_URL is not set; skipping CDN transformation")
        return html
    return rewrite_cdn_urls(html, settings.r2_public_base_url, settings.cdn_transform_options)
