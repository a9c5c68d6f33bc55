"""Filters applied to the rendered site after Hexo generates it."""

import logging
from pathlib import Path

from hexo_r2.config import Settings
from hexo_r2.services.cdn_transform import apply_cdn_transform
from hexo_r2.services.signing import sign_image_urls

logger = logging.getLogger("hexo_r2.postprocess")


def postprocess_html(html: str, settings: Settings, serving: bool = False) -> str:
    """Sign image URLs, then route bucket URLs through the CDN transform path."""
    secret = settings.image_sign_secret
    if secret and settings.image_sign_domain:
        html = sign_image_urls(html, secret, settings.image_sign_domain)
    return apply_cdn_transform(html, settings, serving=serving)


def postprocess_directory(
    public_dir: Path,
    settings: Settings,
    serving: bool = False,
    dry_run: bool = False,
) -> int:
    """
    Apply the HTML filters to every .html file under public_dir.

    Returns:
        Number of files whose content changed
    """
    if not settings.signing_enabled:
        logger.warning("IMAGE_SIGN_SECRET or IMAGE_SIGN_DOMAIN not set; image signing is disabled")

    changed = 0
    for path in sorted(public_dir.rglob("*.html")):
        html = path.read_text(encoding="utf-8")
        result = postprocess_html(html, settings, serving=serving)
        if result == html:
            continue

        changed += 1
        if dry_run:
            logger.info("[dry-run] Would update %s", path)
        else:
            path.write_text(result, encoding="utf-8")
            logger.debug("Updated %s", path)

    return changed
