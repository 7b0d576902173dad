# Copyright (c) The prism-utils Authors
#
# Licensed under the MIT License.
"""General-purpose utilities for laboratory automation tooling: bounded parallel preprocessing, file hashing and
scanning."""

from importlib.metadata import PackageNotFoundError, version

from .files import find_files
from .hash_utils import (
    HashInfo,
    HashType,
    compute_file_hash,
    compute_string_hash,
    create_hashcheck_file,
    hash_files,
    read_hashcheck_file,
    verify_hashcheck_file,
)
from .parallel_preprocess import (
    ParallelPreprocessor,
    PreprocessorState,
    parallel_preprocess,
)

try:
    __version__ = version("prism-utils")
except PackageNotFoundError:
    # package is not installed
    pass


__all__ = [
    "ParallelPreprocessor",
    "PreprocessorState",
    "parallel_preprocess",
    "HashInfo",
    "HashType",
    "compute_file_hash",
    "compute_string_hash",
    "create_hashcheck_file",
    "read_hashcheck_file",
    "verify_hashcheck_file",
    "hash_files",
    "find_files",
]
