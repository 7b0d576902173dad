# Copyright (c) The prism-utils Authors
#
# Licensed under the MIT License.
"""Lazy directory scanning; a natural ``source`` for |parallel_preprocess|."""
from __future__ import annotations

import logging
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterator, List, Union

logger = logging.getLogger("prism_utils.files")


def find_files(
    directory: Union[str, Path],
    pattern: str = "*",
    recurse: bool = True,
) -> Iterator[Path]:
    """Yield files under ``directory`` whose names match the glob ``pattern``.

    Each directory's files are yielded (in sorted order) before its subdirectories are visited. Symlinked directories
    are not followed. Raises ``FileNotFoundError`` (eagerly) if ``directory`` doesn't exist; subdirectories that can't
    be listed are skipped with a warning.
    """
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Directory not found: {root}")
    return _scan(root, pattern, recurse)


def _scan(directory: Path, pattern: str, recurse: bool) -> Iterator[Path]:
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        logger.warning(f"Skipping directory {directory}: {e}")
        return

    subdirs: List[Path] = []
    for entry in entries:
        if entry.is_dir():
            if recurse and not entry.is_symlink():
                subdirs.append(entry)
        elif entry.is_file() and fnmatch(entry.name, pattern):
            yield entry

    for subdir in subdirs:
        yield from _scan(subdir, pattern, recurse)
