import sys
from pathlib import Path as _Path
from typing import Tuple

from click import Path, argument, option

from . import prism
from .main import err
from ..files import find_files
from ..hash_utils import DEFAULT_HASH_THREADS, HASHCHECK_FILE_SUFFIX, verify_hashcheck_file
from ..parallel_preprocess import parallel_preprocess

OK = "OK"
FAILED = "FAILED"
MISSING = "MISSING"


def check(hashcheck_path: _Path) -> Tuple[_Path, str]:
    """Verify one ``.hashcheck`` file; a missing data file is reported rather than raised."""
    try:
        status = OK if verify_hashcheck_file(hashcheck_path) else FAILED
    except FileNotFoundError:
        status = MISSING
    return hashcheck_path, status


@prism.command
@option('-p', '--pattern', default='*', show_default=True, help="Glob matched against data file names")
@option('-r', '--recurse', is_flag=True, help="Descend into subdirectories")
@option('-t', '--threads', type=int, default=DEFAULT_HASH_THREADS, show_default=True)
@argument('directory', type=Path(exists=True, file_okay=False))
def verify(pattern: str, recurse: bool, threads: int, directory: str):
    """Re-hash the data files described by .hashcheck files in DIRECTORY; exit 1 if any differ or are missing."""
    hashcheck_paths = find_files(directory, f"{pattern}{HASHCHECK_FILE_SUFFIX}", recurse=recurse)
    n_checked = n_bad = 0
    for hashcheck_path, status in parallel_preprocess(hashcheck_paths, check, max_threads=threads):
        data_path = hashcheck_path.with_name(hashcheck_path.name[: -len(HASHCHECK_FILE_SUFFIX)])
        print(f"{status}: {data_path}")
        n_checked += 1
        if status != OK:
            n_bad += 1

    if not n_checked:
        err(f"No {HASHCHECK_FILE_SUFFIX} files found in {directory}")
    if n_bad:
        err(f"{n_bad}/{n_checked} files failed verification")
        sys.exit(1)
