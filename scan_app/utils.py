# scan_app/utils.py

import asyncio
import logging
import os
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Set, Tuple

from .exceptions import DirectoryScanError

log = logging.getLogger(__name__)

DEFAULT_VIDEO_EXTENSIONS = (".mp4", ".mkv", ".avi")


def normalize_extensions(extensions: Optional[Iterable[str]]) -> Set[str]:
    """Lower-cases extensions and makes sure each one starts with a dot."""
    if not extensions:
        extensions = DEFAULT_VIDEO_EXTENSIONS
    normalized = set()
    for ext in extensions:
        ext = str(ext).strip().lower()
        if not ext: continue
        normalized.add(ext if ext.startswith('.') else f".{ext}")
    return normalized


def _is_ignored(item_path: Path, ignore_dirs: Set[str], ignore_patterns: List[str]) -> bool:
    """Checks if a given path should be ignored based on config."""
    if item_path.name in ignore_dirs:
        log.debug(f"  -> Ignoring '{item_path}' (matches ignore_dirs: '{item_path.name}')")
        return True
    for pattern in ignore_patterns:
        try:
            if item_path.match(pattern):
                log.debug(f"  -> Ignoring '{item_path}' (matches ignore pattern: '{pattern}')")
                return True
        except ValueError as e_match:
            log.error(f"  -> Error matching pattern '{pattern}' against '{item_path}': {e_match}")
            return True
    return False


def enumerate_media_files(root_path: str,
                          extensions: Optional[Iterable[str]] = None,
                          ignore_dirs: Optional[Iterable[str]] = None,
                          ignore_patterns: Optional[Iterable[str]] = None,
                          follow_symlinks: bool = False) -> List[str]:
    """
    Recursively lists video files under root_path.

    Only files whose extension (case-insensitive) is in `extensions` are
    returned, as absolute paths in a stable sorted order. Unreadable
    subdirectories are logged and skipped. Directory symlinks are not
    descended unless follow_symlinks is set, in which case each real
    directory (device, inode) is visited at most once so link cycles end.

    Raises:
        DirectoryScanError: root_path does not exist or is not a directory.
    """
    base_path = Path(root_path).expanduser()
    if not base_path.is_dir():
        raise DirectoryScanError(f"Media folder is not a readable directory: {root_path}")

    allowed_ext = normalize_extensions(extensions)
    ignore_dir_set = set(ignore_dirs or [])
    ignore_pattern_list = list(ignore_patterns or [])
    visited: Set[Tuple[int, int]] = set()
    found: List[str] = []

    def _on_walk_error(err: OSError):
        log.warning(f"Cannot read directory '{getattr(err, 'filename', root_path)}': {err}")

    walker = os.walk(base_path, topdown=True, onerror=_on_walk_error, followlinks=follow_symlinks)
    for root, dirs, files in walker:
        current_dir_path = Path(root)
        if follow_symlinks:
            try:
                st = os.stat(current_dir_path)
            except OSError as e:
                log.warning(f"Cannot stat directory '{current_dir_path}': {e}")
                dirs[:] = []
                continue
            key = (st.st_dev, st.st_ino)
            if key in visited:
                log.debug(f"Skipping already visited directory (symlink loop?): {current_dir_path}")
                dirs[:] = []
                continue
            visited.add(key)

        dirs[:] = sorted(d for d in dirs if not _is_ignored(current_dir_path / d, ignore_dir_set, ignore_pattern_list))

        for filename in files:
            item_path = current_dir_path / filename
            if item_path.suffix.lower() not in allowed_ext:
                continue
            if _is_ignored(item_path, ignore_dir_set, ignore_pattern_list):
                continue
            found.append(str(item_path.absolute()))

    found.sort()
    log.debug(f"Found {len(found)} media file(s) under '{base_path}'.")
    return found


def file_exists_on_disk(file_path: str) -> bool:
    """
    True unless the file is confirmed absent.

    Only FileNotFoundError/NotADirectoryError count as "absent". Any other
    OSError (permissions, a hung mount) is logged and reported as present so
    callers never delete a catalog entry on an uncertain answer.
    """
    try:
        os.stat(file_path)
        return True
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as e:
        log.warning(f"Could not verify '{file_path}' ({e}); treating it as present.")
        return True


async def run_sync(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Runs a blocking call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))
