"""Turn files and directory trees into text blocks for prompts."""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from pathlib import Path

from pydantic import BaseModel

from .config import CONTEXT_CHAR_LIMIT
from .errors import ContextError

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```(?:[a-zA-Z0-9_+-]*\n)?([\s\S]*?)```")


class Entry(BaseModel):
    name: str
    path: Path
    is_dir: bool
    size: int = 0


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def list_directory(path: str | Path) -> list[Entry]:
    """Visible entries of ``path``, directories first, then by name."""
    root = Path(path)
    try:
        children = list(root.iterdir())
    except OSError as e:
        raise ContextError(f"Cannot list directory {root}: {e}") from e

    entries = []
    for child in children:
        if _is_hidden(child.name):
            continue
        try:
            is_dir = child.is_dir()
            size = 0 if is_dir else child.stat().st_size
        except OSError:
            logger.debug("Cannot stat %s, skipping", child)
            continue
        entries.append(Entry(name=child.name, path=child, is_dir=is_dir, size=size))

    entries.sort(key=lambda e: (not e.is_dir, e.name.lower()))
    return entries


def read_file(path: str | Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ContextError(f"Cannot read file {path}: {e}") from e


def build_context(
    root: str | Path, include: str | None = None, limit: int = CONTEXT_CHAR_LIMIT
) -> str:
    """Concatenate the visible files under ``root`` into one context block.

    Each file becomes ``--- File: <relative path> ---`` followed by its
    content. Hidden files and everything below hidden directories are
    skipped, ``include`` is matched against file names, and unreadable files
    are left out. Walking stops as soon as the text grows past ``limit``, so
    later files are omitted entirely rather than truncated.
    """
    root_path = Path(os.getcwd()) if str(root) == "." else Path(root)
    if not root_path.is_dir():
        raise ContextError(f"Context path is not a readable directory: {root}")
    try:
        os.listdir(root_path)
    except OSError as e:
        raise ContextError(f"Cannot read context directory {root}: {e}") from e

    parts: list[str] = []
    size = 0

    def on_error(e: OSError) -> None:
        logger.debug("Skipping unreadable directory: %s", e)

    for dirpath, dirnames, filenames in os.walk(root_path, onerror=on_error):
        dirnames[:] = sorted(d for d in dirnames if not _is_hidden(d))

        for name in sorted(filenames):
            if _is_hidden(name):
                continue
            if include and not fnmatch.fnmatch(name, include):
                continue

            path = Path(dirpath) / name
            try:
                content = path.read_bytes().decode("utf-8", errors="replace")
            except OSError:
                logger.debug("Skipping unreadable file %s", path)
                continue

            block = f"\n--- File: {path.relative_to(root_path)} ---\n{content}\n"
            parts.append(block)
            size += len(block)
            if size > limit:
                logger.info("Context limit of %d characters reached at %s", limit, path)
                return "".join(parts)

    return "".join(parts)


def attach_file(path: str | Path) -> str:
    """Wrap a single file for pasting into the prompt."""
    file_path = Path(path)
    content = read_file(file_path).decode("utf-8", errors="replace")
    return (
        f"\n--- Start of File: {file_path.name} ---\n"
        f"{content}\n"
        "--- End of File ---\n"
    )


def compose_prompt(prompt: str, context: str) -> str:
    if not context:
        return prompt
    return f"{prompt}\n\nContext:\n{context}"


def extract_code_blocks(text: str) -> list[str]:
    """Bodies of the fenced code blocks in a markdown answer."""
    return [match.strip() for match in _CODE_BLOCK_RE.findall(text)]
