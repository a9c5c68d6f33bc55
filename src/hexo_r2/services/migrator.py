"""Migration of post images to the object store."""

import logging
from collections.abc import Iterable

from hexo_r2.config import Settings
from hexo_r2.models.references import Document, ImageReference, ReferenceKind, RunStatistics
from hexo_r2.services.extractor import extract_references
from hexo_r2.services.fetcher import AssetFetcher, AssetNotFoundError, FetchError
from hexo_r2.services.resolver import LocationResolver, external_tag_alt, local_asset_alt
from hexo_r2.services.rewriter import apply_replacements, read_document, write_document
from hexo_r2.services.storage import ObjectStore, StorageError, content_type_for

logger = logging.getLogger("hexo_r2.migrator")


def render_replacement(reference: ImageReference, public_url: str) -> str:
    """Build the Markdown image that replaces a migrated reference."""
    if reference.kind is ReferenceKind.EXTERNAL_TAG:
        return f"![{external_tag_alt(reference.alt, reference.filename)}]({public_url})"
    if reference.kind is ReferenceKind.LOCAL_ASSET:
        return f"![{local_asset_alt(reference.alt, reference.filename)}]({public_url})"

    title = f' "{reference.title}"' if reference.title else ""
    return f"![{reference.alt}]({public_url}{title})"


class ImageMigrator:
    """Uploads every image a post references and points the post at the copies."""

    def __init__(
        self,
        settings: Settings,
        store: ObjectStore,
        fetcher: AssetFetcher,
        dry_run: bool = False,
    ) -> None:
        self.settings = settings
        self.store = store
        self.fetcher = fetcher
        self.dry_run = dry_run
        self.resolver = LocationResolver(settings.r2_key_prefix, settings.r2_public_base_url)

    async def migrate_reference(
        self,
        document: Document,
        reference: ImageReference,
        stats: RunStatistics,
    ) -> str | None:
        """
        Make sure one image is in the bucket.

        Returns:
            The replacement text, or None if the image could not be migrated
        """
        location = self.resolver.resolve(document.identifier, reference.filename)

        try:
            # A missing local file fails even when its key is already in the bucket
            if reference.is_local:
                local_path = document.asset_dir / reference.source
                if not local_path.is_file():
                    raise AssetNotFoundError(local_path)

            if await self.store.exists(location.key):
                logger.info("Already in bucket, skipping upload: %s", location.key)
                stats.skipped += 1
            else:
                if reference.is_local:
                    logger.info("Uploading local asset: %s", reference.source)
                else:
                    logger.info("Downloading %s image: %s", reference.kind.value, reference.source)
                data = await self.fetcher.fetch(reference, document)
                public_url = await self.store.upload(location.key, data, content_type_for(reference.filename))
                logger.info("Uploaded: %s", public_url)
                stats.uploaded += 1
        except AssetNotFoundError as exc:
            logger.warning("%s: asset missing, leaving %r unchanged: %s", document.display_name, reference.span, exc)
            stats.failed += 1
            return None
        except (FetchError, StorageError) as exc:
            logger.error(
                "%s: failed to migrate %s reference %s: %s",
                document.display_name,
                reference.kind.value,
                reference.source,
                exc,
            )
            stats.failed += 1
            return None

        return render_replacement(reference, location.public_url)

    async def process_document(self, document: Document, stats: RunStatistics) -> bool:
        """
        Migrate every image in a post and rewrite the post.

        The file is only written when at least one reference changed, and
        never in dry run.

        Returns:
            True if the post's text changed
        """
        logger.info("Processing %s", document.display_name)
        content = await read_document(document.path)

        replacements: dict[str, str] = {}
        for reference in extract_references(content, self.settings.r2_public_base_url):
            replacement = await self.migrate_reference(document, reference, stats)
            if replacement is not None:
                replacements[reference.span] = replacement

        new_content, changed = apply_replacements(content, replacements)
        if not changed:
            logger.info("No images to migrate in %s", document.display_name)
            return False

        if self.dry_run:
            logger.info("[dry-run] Would update %s", document.display_name)
        else:
            await write_document(document.path, new_content)
            logger.info("Updated %s", document.display_name)
        return True

    async def run(self, documents: Iterable[Document], stats: RunStatistics | None = None) -> RunStatistics:
        """Process posts one after another and return the accumulated counters."""
        stats = stats if stats is not None else RunStatistics()
        for document in documents:
            await self.process_document(document, stats)
        return stats
