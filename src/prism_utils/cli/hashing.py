import logging
import time

from click import Choice, Path, argument, option

from . import prism
from .main import err
from ..files import find_files
from ..hash_utils import (
    DEFAULT_HASH_THREADS,
    HASHCHECK_FILE_SUFFIX,
    HashType,
    create_hashcheck_file,
    hash_files,
)

logger = logging.getLogger("prism_utils.cli.hashing")

ALGORITHMS = [t.value for t in HashType if t is not HashType.UNDEFINED]


@prism.command("hash")
@option('-a', '--algorithm', type=Choice(ALGORITHMS), default=HashType.SHA1.value, show_default=True)
@option('-c', '--hashcheck', is_flag=True, help="Also write a .hashcheck file beside each data file")
@option('-m', '--max-preprocessed', type=int, default=-1, help="Max files hashed but not yet printed; defaults to --threads")
@option('-p', '--pattern', default='*', show_default=True, help="Glob matched against file names")
@option('-r', '--recurse', is_flag=True, help="Descend into subdirectories")
@option('-t', '--threads', type=int, default=DEFAULT_HASH_THREADS, show_default=True)
@argument('directory', type=Path(exists=True, file_okay=False))
def hash_cmd(
    algorithm: str,
    hashcheck: bool,
    max_preprocessed: int,
    pattern: str,
    recurse: bool,
    threads: int,
    directory: str,
):
    """Print the hash of each file in DIRECTORY, computed on multiple threads."""
    hash_type = HashType(algorithm)
    # Skip existing .hashcheck files, e.g. from a previous `--hashcheck` run
    paths = (
        path
        for path in find_files(directory, pattern, recurse=recurse)
        if not path.name.endswith(HASHCHECK_FILE_SUFFIX)
    )
    st_time = time.perf_counter()
    n_files = 0
    for path, hash_value in hash_files(
        paths,
        hash_type=hash_type,
        max_threads=threads,
        max_preprocessed=max_preprocessed,
    ):
        print(f"{hash_value}  {path}")
        if hashcheck:
            create_hashcheck_file(path, hash_type, hash_value)
        n_files += 1

    tm = time.perf_counter() - st_time
    if not n_files:
        err(f"No files matching {pattern!r} in {directory}")
    logger.info(f"Hashed {n_files} files, took {tm:.2f}sec")
