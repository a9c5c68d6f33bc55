"""Post discovery under the posts directory."""

from pathlib import Path

from hexo_r2.models.references import Document

POST_EXTENSION = ".md"


def discover_documents(root: Path) -> list[Document]:
    """Recursively find Markdown posts under root, sorted by path."""
    if not root.exists() or not root.is_dir():
        return []

    paths = sorted(p for p in root.rglob(f"*{POST_EXTENSION}") if p.is_file())
    return [Document(path=p, root=root) for p in paths]
