"""Data model for posts, image references and run statistics."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ReferenceKind(str, Enum):
    """The image-embedding syntaxes recognized in a post."""

    EXTERNAL_TAG = "img"  # {% img https://... 'caption' %}
    LOCAL_ASSET = "asset_img"  # {% asset_img name.png caption %}
    MARKDOWN_IMAGE = "markdown"  # ![alt](https://... "title")


@dataclass(frozen=True)
class ImageReference:
    """A single image reference found in a post."""

    kind: ReferenceKind
    span: str  # Exact matched text, replaced verbatim
    source: str  # URL, or bare file name for local assets
    filename: str  # Final path segment used in the storage key
    alt: str | None = None
    title: str | None = None

    @property
    def is_local(self) -> bool:
        """Check if the bytes come from the post's asset folder."""
        return self.kind is ReferenceKind.LOCAL_ASSET


@dataclass(frozen=True)
class Document:
    """A Markdown post and its Hexo asset folder."""

    path: Path
    root: Path

    @property
    def identifier(self) -> str:
        """Post name without extension (e.g., "my-post" for my-post.md)."""
        return self.path.stem

    @property
    def asset_dir(self) -> Path:
        """Folder next to the post holding its local assets."""
        return self.path.parent / self.identifier

    @property
    def display_name(self) -> str:
        """Path relative to the posts root, for log output."""
        try:
            return str(self.path.relative_to(self.root))
        except ValueError:
            return str(self.path)


@dataclass
class RunStatistics:
    """Counters accumulated across every post in one run."""

    uploaded: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def total(self) -> int:
        return self.uploaded + self.skipped + self.failed
