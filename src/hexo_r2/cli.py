"""Command-line entry points."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from hexo_r2.config import ConfigMissingError, Settings, get_settings
from hexo_r2.models.references import Document, RunStatistics
from hexo_r2.services.documents import discover_documents
from hexo_r2.services.fetcher import AssetFetcher
from hexo_r2.services.migrator import ImageMigrator
from hexo_r2.services.postprocess import postprocess_directory
from hexo_r2.services.storage import ObjectStore

logger = logging.getLogger("hexo_r2")

RULE = "=" * 50


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )


def build_migrate_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hexo-r2-migrate",
        description="Upload images referenced by Hexo posts to R2 and rewrite the references.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scan and download only; do not upload or modify any post.",
    )
    parser.add_argument(
        "--posts-dir",
        type=Path,
        default=None,
        help="Posts directory (default: $POSTS_DIR or ./source/_posts).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def build_postprocess_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hexo-r2-postprocess",
        description="Sign image URLs and apply CDN transformation paths in rendered HTML.",
    )
    parser.add_argument(
        "--public-dir",
        type=Path,
        default=Path("public"),
        help="Rendered site directory (default: ./public).",
    )
    parser.add_argument(
        "--serving",
        action="store_true",
        help="Treat the output as dev-server output (CDN transform off unless enabled for dev).",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing files.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _print_banner(dry_run: bool) -> None:
    print(RULE)
    print("  Hexo image migration to Cloudflare R2")
    print(RULE)
    if dry_run:
        print("DRY RUN: nothing will be uploaded and no post will be modified\n")


def _print_summary(stats: RunStatistics) -> None:
    print()
    print(RULE)
    print("  Migration finished")
    print(RULE)
    print(f"  Uploaded:                {stats.uploaded}")
    print(f"  Skipped (already in R2): {stats.skipped}")
    print(f"  Failed:                  {stats.failed}")


async def _migrate(settings: Settings, documents: list[Document], dry_run: bool) -> RunStatistics:
    fetcher = AssetFetcher(settings)
    store = ObjectStore(settings, dry_run=dry_run)
    migrator = ImageMigrator(settings, store, fetcher, dry_run=dry_run)
    try:
        return await migrator.run(documents)
    finally:
        await fetcher.close()


def run_migrate(argv: Sequence[str] | None = None, settings: Settings | None = None) -> int:
    """Run the migration and return the process exit code."""
    args = build_migrate_parser().parse_args(argv)

    settings = settings or get_settings()
    if args.posts_dir is not None:
        settings = settings.model_copy(update={"posts_dir": str(args.posts_dir.resolve())})

    _configure_logging(args.verbose or settings.debug)
    _print_banner(args.dry_run)

    try:
        settings.require_migration_settings()
    except ConfigMissingError as exc:
        print("Missing required configuration, set these environment variables:", file=sys.stderr)
        for name in exc.missing:
            print(f"  {name}", file=sys.stderr)
        return 1

    posts_dir = settings.resolved_posts_dir
    print(f"Posts directory: {posts_dir}")
    print(f"R2 bucket:       {settings.r2_bucket}")
    print(f"Key prefix:      {settings.r2_key_prefix}")
    print(f"Public URL:      {settings.r2_public_base_url}")
    print(f"Download proxy:  {settings.proxy or '(none, direct)'}\n")

    documents = discover_documents(posts_dir)
    if not documents:
        print("No .md files found, check --posts-dir.")
        return 0

    print(f"Found {len(documents)} posts, processing...\n")

    try:
        stats = asyncio.run(_migrate(settings, documents, args.dry_run))
    except Exception:
        logger.exception("Unexpected error during migration")
        return 1

    _print_summary(stats)
    return 1 if stats.has_failures else 0


def run_postprocess(argv: Sequence[str] | None = None, settings: Settings | None = None) -> int:
    """Run the rendered-HTML filters and return the process exit code."""
    args = build_postprocess_parser().parse_args(argv)

    settings = settings or get_settings()
    _configure_logging(args.verbose or settings.debug)

    if not args.public_dir.is_dir():
        print(f"Rendered site directory not found: {args.public_dir}", file=sys.stderr)
        return 1

    changed = postprocess_directory(args.public_dir, settings, serving=args.serving, dry_run=args.dry_run)
    print(f"{changed} HTML files {'would be ' if args.dry_run else ''}updated")
    return 0


def main() -> None:
    sys.exit(run_migrate())


def postprocess_main() -> None:
    sys.exit(run_postprocess())


if __name__ == "__main__":
    main()
