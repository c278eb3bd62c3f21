"""
Utilities for deriving local filenames from media URLs and for the directory
operations the cache performs.
"""

import os
import shutil
from pathlib import Path
from urllib.parse import unquote, urlsplit

from pathvalidate import sanitize_filename


def filename_from_url(url: str, position: int = 0) -> str:
    """
    Derives a local filename from the final path segment of a URL.

    Query strings and fragments are ignored and the path is percent-decoded
    first, so a Firebase Storage URL such as
    '.../o/lessons%2Fcat.png?alt=media&token=...' yields 'cat.png'.

    Args:
        url: The remote media URL.
        position: Index of the URL in its descriptor, used for the fallback name.
    """
    path = unquote(urlsplit(url).path)
    segment = path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    name = sanitize_filename(segment, platform="auto").strip()
    if not name or name in (".", ".."):
        return f"media-{position}"
    return name


def unique_filenames(urls: list[str]) -> list[str]:
    """
    Derives one filename per URL, suffixing '-<n>' when two URLs of the same
    content would otherwise write to the same file.
    """
    names: list[str] = []
    taken: set[str] = set()
    for position, url in enumerate(urls):
        name = filename_from_url(url, position)
        if name.lower() in taken:
            stem, ext = os.path.splitext(name)
            name = f"{stem}-{position}{ext}"
        taken.add(name.lower())
        names.append(name)
    return names


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def remove_tree(directory_path: Path) -> bool:
    """
    Deletes a directory and everything under it.

    Returns:
        False if there was nothing to delete.
    """
    try:
        shutil.rmtree(directory_path)
    except FileNotFoundError:
        return False
    return True


def aside_path(destination: Path) -> Path:
    """Where `replace_dir` parks the previous copy of `destination`."""
    return destination.with_name(f".{destination.name}.old")


def replace_dir(source: Path, destination: Path) -> None:
    """
    Moves `source` to `destination`, discarding any previous `destination`.

    The previous copy is renamed aside before the move, so `destination` is
    only ever missing for the instant between the two renames.
    """
    previous = aside_path(destination)
    if destination.exists():
        remove_tree(previous)
        os.replace(destination, previous)
    os.replace(source, destination)
    remove_tree(previous)
