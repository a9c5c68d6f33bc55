"""In-place rewriting of post text."""

import asyncio
from collections.abc import Mapping
from pathlib import Path


def apply_replacements(text: str, replacements: Mapping[str, str]) -> tuple[str, bool]:
    """
    Replace every occurrence of each key with its value.

    Keys are matched as literal text, never as patterns.

    Returns:
        Tuple of (new text, whether anything was replaced)
    """
    changed = False
    for original, replacement in replacements.items():
        if original not in text:
            continue
        text = text.replace(original, replacement)
        changed = True
    return text, changed


async def read_document(path: Path) -> str:
    """Read a post as UTF-8 text."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, lambda: path.read_text(encoding="utf-8"))


async def write_document(path: Path, text: str) -> None:
    """Write a post back as UTF-8 text."""
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(None, lambda: path.write_text(text, encoding="utf-8"))
