"""Tests for the image migration pipeline."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from hexo_r2.config import Settings
from hexo_r2.models.references import Document, ImageReference, ReferenceKind, RunStatistics
from hexo_r2.services.fetcher import AssetFetcher
from hexo_r2.services.migrator import ImageMigrator, render_replacement
from hexo_r2.services.storage import ObjectStore

BASE_URL = "https://cdn.example.com"

POST = """\
# Hello

{% img https://host/a.png 'Caption' %}

{% asset_img diagram.png A diagram %}

![logo](https://other.example.org/img/logo.svg "Logo")

![done](https://cdn.example.com/blog/my-post/old.png)
"""

MIGRATED_POST = """\
# Hello

![Caption](https://cdn.example.com/blog/my-post/a.png)

![A diagram](https://cdn.example.com/blog/my-post/diagram.png)

![logo](https://cdn.example.com/blog/my-post/logo.svg "Logo")

![done](https://cdn.example.com/blog/my-post/old.png)
"""


def _not_found(*args, **kwargs):
    raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")


def _image_server(request: httpx.Request) -> httpx.Response:
    if request.url.host == "broken.example.org":
        return httpx.Response(500)
    return httpx.Response(200, content=f"bytes:{request.url.path}".encode())


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        r2_access_key_id="key",
        r2_secret_access_key="secret",
        r2_account_id="account",
        r2_bucket="bucket",
        r2_public_base_url=BASE_URL,
        r2_key_prefix="blog/",
        posts_dir=str(tmp_path),
        _env_file=None,
    )


@pytest.fixture
def s3_client() -> MagicMock:
    """S3 client double with an empty bucket."""
    client = MagicMock()
    client.head_object.side_effect = _not_found
    return client


def _make_migrator(settings: Settings, s3_client: MagicMock, dry_run: bool = False) -> ImageMigrator:
    store = ObjectStore(settings, dry_run=dry_run, client=s3_client)
    fetcher = AssetFetcher(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(_image_server)))
    return ImageMigrator(settings, store, fetcher, dry_run=dry_run)


def _write_post(root: Path, name: str, content: str, assets: dict[str, bytes] | None = None) -> Document:
    path = root / name
    path.write_text(content, encoding="utf-8")
    if assets:
        asset_dir = root / path.stem
        asset_dir.mkdir()
        for filename, data in assets.items():
            (asset_dir / filename).write_bytes(data)
    return Document(path=path, root=root)


def _uploaded_keys(s3_client: MagicMock) -> list[str]:
    return [c.kwargs["Key"] for c in s3_client.put_object.call_args_list]


class TestRenderReplacement:
    """Tests for the Markdown written in place of a reference."""

    def test_external_tag(self):
        """Quotes are stripped from the caption of an img tag."""
        ref = ImageReference(ReferenceKind.EXTERNAL_TAG, "{% img u %}", "u", "a.png", alt="'Cap'")
        assert render_replacement(ref, "https://cdn/a.png") == "![Cap](https://cdn/a.png)"

    def test_external_tag_without_caption_uses_filename(self):
        """An img tag without a caption falls back to the file name."""
        ref = ImageReference(ReferenceKind.EXTERNAL_TAG, "{% img u %}", "u", "a.png")
        assert render_replacement(ref, "https://cdn/a.png") == "![a.png](https://cdn/a.png)"

    def test_local_asset(self):
        """The asset_img caption is trimmed and becomes the alt text."""
        ref = ImageReference(ReferenceKind.LOCAL_ASSET, "{% asset_img d.png %}", "d.png", "d.png", alt=" Diagram ")
        assert render_replacement(ref, "https://cdn/d.png") == "![Diagram](https://cdn/d.png)"

    def test_markdown_keeps_alt_and_title(self):
        """A Markdown image keeps its alt text and title."""
        ref = ImageReference(ReferenceKind.MARKDOWN_IMAGE, "![x](u)", "u", "x.png", alt="x", title="T")
        assert render_replacement(ref, "https://cdn/x.png") == '![x](https://cdn/x.png "T")'

    def test_markdown_without_title(self):
        """No title part is written when the image had none."""
        ref = ImageReference(ReferenceKind.MARKDOWN_IMAGE, "![x](u)", "u", "x.png", alt="x")
        assert render_replacement(ref, "https://cdn/x.png") == "![x](https://cdn/x.png)"


class TestProcessDocument:
    """Tests for migrating a single post."""

    @pytest.mark.asyncio
    async def test_migrates_all_kinds(self, settings, s3_client, tmp_path):
        """All three reference kinds are uploaded and rewritten."""
        document = _write_post(tmp_path, "my-post.md", POST, {"diagram.png": b"diagram"})
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        changed = await migrator.process_document(document, stats)

        assert changed is True
        assert document.path.read_text(encoding="utf-8") == MIGRATED_POST
        assert stats == RunStatistics(uploaded=3, skipped=0, failed=0)
        assert _uploaded_keys(s3_client) == [
            "blog/my-post/a.png",
            "blog/my-post/diagram.png",
            "blog/my-post/logo.svg",
        ]
        svg_call = s3_client.put_object.call_args_list[2]
        assert svg_call.kwargs["ContentType"] == "image/svg+xml"
        assert svg_call.kwargs["Body"] == b"bytes:/img/logo.svg"
        assert s3_client.put_object.call_args_list[1].kwargs["Body"] == b"diagram"

    @pytest.mark.asyncio
    async def test_no_references_no_write(self, settings, s3_client, tmp_path):
        """A post without images is never written."""
        document = _write_post(tmp_path, "plain.md", "# Plain\n\nNo images here.\n")
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        with patch("hexo_r2.services.migrator.write_document", new_callable=AsyncMock) as write:
            changed = await migrator.process_document(document, stats)

        assert changed is False
        write.assert_not_called()
        assert stats.total == 0
        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, settings, s3_client, tmp_path):
        """Once uploaded, a rerun over the same post only records cache hits."""
        document = _write_post(tmp_path, "my-post.md", POST, {"diagram.png": b"diagram"})
        migrator = _make_migrator(settings, s3_client)
        await migrator.process_document(document, RunStatistics())
        first_output = document.path.read_text(encoding="utf-8")

        # The bucket now has every object
        s3_client.head_object.side_effect = None
        s3_client.put_object.reset_mock()
        document.path.write_text(POST, encoding="utf-8")

        stats = RunStatistics()
        await migrator.process_document(document, stats)

        assert document.path.read_text(encoding="utf-8") == first_output
        assert stats == RunStatistics(uploaded=0, skipped=3, failed=0)
        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_migrated_post_left_alone(self, settings, s3_client, tmp_path):
        """References already on the public URL are not picked up again."""
        document = _write_post(tmp_path, "my-post.md", MIGRATED_POST)
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        with patch("hexo_r2.services.migrator.write_document", new_callable=AsyncMock) as write:
            changed = await migrator.process_document(document, stats)

        assert changed is False
        write.assert_not_called()
        assert stats.total == 0

    @pytest.mark.asyncio
    async def test_missing_local_asset(self, settings, s3_client, tmp_path):
        """A missing asset is counted as failed and its tag is left as is."""
        content = "Intro\n\n{% asset_img diagram.png %}\n"
        document = _write_post(tmp_path, "my-post.md", content)
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        changed = await migrator.process_document(document, stats)

        assert changed is False
        assert document.path.read_text(encoding="utf-8") == content
        assert stats == RunStatistics(uploaded=0, skipped=0, failed=1)

    @pytest.mark.asyncio
    async def test_missing_local_asset_with_existing_key(self, settings, s3_client, tmp_path):
        """A missing asset fails even when its key is already in the bucket."""
        s3_client.head_object.side_effect = None
        content = "{% asset_img diagram.png Diagram %}\n"
        document = _write_post(tmp_path, "my-post.md", content)
        document.asset_dir.mkdir()
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        changed = await migrator.process_document(document, stats)

        assert changed is False
        assert document.path.read_text(encoding="utf-8") == content
        assert stats == RunStatistics(uploaded=0, skipped=0, failed=1)
        s3_client.head_object.assert_not_called()
        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self, settings, s3_client, tmp_path):
        """A failed download leaves the other references in the post migrating."""
        content = "![bad](https://broken.example.org/x.png)\n![good](https://host/y.png)\n"
        document = _write_post(tmp_path, "post.md", content)
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        changed = await migrator.process_document(document, stats)

        assert changed is True
        assert document.path.read_text(encoding="utf-8") == (
            "![bad](https://broken.example.org/x.png)\n![good](https://cdn.example.com/blog/post/y.png)\n"
        )
        assert stats == RunStatistics(uploaded=1, skipped=0, failed=1)

    @pytest.mark.asyncio
    async def test_upload_failure_counted(self, settings, s3_client, tmp_path):
        """A rejected upload is counted as failed and the post is unchanged."""
        s3_client.put_object.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "PutObject")
        content = "![a](https://host/a.png)\n"
        document = _write_post(tmp_path, "post.md", content)
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        await migrator.process_document(document, stats)

        assert stats.failed == 1
        assert document.path.read_text(encoding="utf-8") == content

    @pytest.mark.asyncio
    async def test_repeated_reference_uploaded_once(self, settings, s3_client, tmp_path):
        """The same reference twice in a post is uploaded once and rewritten everywhere."""
        content = "![a](https://host/a.png)\n\n![a](https://host/a.png)\n"
        document = _write_post(tmp_path, "post.md", content)
        migrator = _make_migrator(settings, s3_client)
        stats = RunStatistics()

        await migrator.process_document(document, stats)

        assert stats.uploaded == 1
        assert document.path.read_text(encoding="utf-8") == (
            "![a](https://cdn.example.com/blog/post/a.png)\n\n![a](https://cdn.example.com/blog/post/a.png)\n"
        )

    @pytest.mark.asyncio
    async def test_dry_run(self, settings, s3_client, tmp_path):
        """Dry run downloads but never uploads, checks existence or writes."""
        document = _write_post(tmp_path, "my-post.md", POST, {"diagram.png": b"diagram"})
        migrator = _make_migrator(settings, s3_client, dry_run=True)
        stats = RunStatistics()

        changed = await migrator.process_document(document, stats)

        assert changed is True
        assert document.path.read_text(encoding="utf-8") == POST
        assert stats == RunStatistics(uploaded=3, skipped=0, failed=0)
        s3_client.put_object.assert_not_called()
        s3_client.head_object.assert_not_called()


class TestRun:
    """Tests for running over several posts."""

    @pytest.mark.asyncio
    async def test_statistics_accumulate_across_posts(self, settings, s3_client, tmp_path):
        """Counters add up over every post of a run."""
        first = _write_post(tmp_path, "first.md", "![a](https://host/a.png)\n")
        second = _write_post(tmp_path, "second.md", "{% asset_img gone.png %}\n")
        migrator = _make_migrator(settings, s3_client)

        stats = await migrator.run([first, second])

        assert stats == RunStatistics(uploaded=1, skipped=0, failed=1)
        assert stats.has_failures is True
        assert _uploaded_keys(s3_client) == ["blog/first/a.png"]
