# Copyright (c) The prism-utils Authors
#
# Licensed under the MIT License.
"""File and string hashes (CRC32, MD5, SHA-1), and ``.hashcheck`` sidecar files recording them."""
from __future__ import annotations

import base64
import enum
import hashlib
import logging
import zlib
from datetime import datetime, timezone
from functools import partial
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional, Tuple, Union

import attrs

from prism_utils.parallel_preprocess import (
    DEFAULT_CHECK_INTERVAL,
    CancelSignal,
    parallel_preprocess,
)

logger = logging.getLogger("prism_utils.hash_utils")

PathLike = Union[str, Path]

HASHCHECK_FILE_SUFFIX = ".hashcheck"
DATE_TIME_FORMAT = "%Y-%m-%d %I:%M:%S %p"
"""Timestamp format used in ``.hashcheck`` files, e.g. ``2024-03-05 02:15:09 PM``."""
READ_CHUNK_SIZE = 2**20
DEFAULT_HASH_THREADS = 4


class HashType(enum.Enum):
    """Supported hash algorithms; values are the names written to ``.hashcheck`` files."""

    UNDEFINED = "undefined"
    CRC32 = "crc32"
    MD5 = "md5"
    MD5_BASE64 = "md5_base64"
    SHA1 = "sha1"

    @classmethod
    def from_name(cls, name: str) -> "HashType":
        """Case-insensitive lookup; unrecognized names map to ``UNDEFINED``."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            return cls.UNDEFINED


DEFAULT_HASH_TYPE = HashType.SHA1

# Hash length -> type, for .hashcheck files that don't name their hash type
_HASH_TYPES_BY_LENGTH = {
    8: HashType.CRC32,
    24: HashType.MD5_BASE64,
    32: HashType.MD5,
    40: HashType.SHA1,
}


@attrs.define(frozen=True)
class HashInfo:
    """Contents of a ``.hashcheck`` file."""

    file_size: int = 0
    file_date_utc: Optional[datetime] = None
    hash_value: str = ""
    hash_type: HashType = HashType.UNDEFINED


def _chunks(stream: BinaryIO) -> Iterator[bytes]:
    return iter(partial(stream.read, READ_CHUNK_SIZE), b"")


def _hash_stream(stream: BinaryIO, hash_type: HashType) -> str:
    if hash_type is HashType.UNDEFINED:
        hash_type = DEFAULT_HASH_TYPE

    if hash_type is HashType.CRC32:
        crc = 0
        for chunk in _chunks(stream):
            crc = zlib.crc32(chunk, crc)
        return f"{crc:08X}"

    hasher = hashlib.sha1() if hash_type is HashType.SHA1 else hashlib.md5()
    for chunk in _chunks(stream):
        hasher.update(chunk)

    if hash_type is HashType.MD5_BASE64:
        return base64.b64encode(hasher.digest()).decode("ascii")
    return hasher.hexdigest()


def compute_file_hash(path: PathLike, hash_type: HashType = DEFAULT_HASH_TYPE) -> str:
    """Hash the contents of the file at ``path``; ``UNDEFINED`` means SHA-1.

    CRC32 hashes are 8 upper-case hex digits, MD5 and SHA-1 are lower-case hex, and ``MD5_BASE64`` is the Base64
    encoding of the raw MD5 digest.
    """
    with open(path, "rb") as stream:
        return _hash_stream(stream, hash_type)


def compute_string_hash(text: str, hash_type: HashType = DEFAULT_HASH_TYPE) -> str:
    """Hash the UTF-8 encoding of ``text``."""
    return _hash_stream(BytesIO(text.encode("utf-8")), hash_type)


def hashcheck_path(data_path: PathLike) -> Path:
    data_path = Path(data_path)
    return data_path.with_name(data_path.name + HASHCHECK_FILE_SUFFIX)


def create_hashcheck_file(
    data_path: PathLike,
    hash_type: HashType = DEFAULT_HASH_TYPE,
    hash_value: Optional[str] = None,
) -> Path:
    """Write ``<data_path>.hashcheck``, recording the data file's size, modification time, and hash.

    ``hash_value`` is computed if not provided. Returns the path of the ``.hashcheck`` file.
    """
    data_path = Path(data_path)
    if not data_path.is_file():
        raise FileNotFoundError(
            f"Cannot create {HASHCHECK_FILE_SUFFIX} file; source file not found: {data_path}"
        )

    if hash_value is None:
        hash_value = compute_file_hash(data_path, hash_type)

    stat = data_path.stat()
    modified_utc = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    out_path = hashcheck_path(data_path)
    lines = [
        f"# Hashcheck file created {datetime.now().strftime(DATE_TIME_FORMAT)}",
        f"size={stat.st_size}",
        f"modification_date_utc={modified_utc.strftime(DATE_TIME_FORMAT)}",
        f"hash={hash_value.strip()}",
        f"hashtype={hash_type.value}",
    ]
    out_path.write_text("\n".join(lines) + "\n")
    logger.debug(f"Wrote {out_path}")
    return out_path


def _parse_date(value: str) -> Optional[datetime]:
    for parse in (
        lambda v: datetime.strptime(v, DATE_TIME_FORMAT),
        datetime.fromisoformat,
    ):
        try:
            return parse(value).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def read_hashcheck_file(
    path: PathLike,
    assumed_hash_type: HashType = HashType.UNDEFINED,
) -> HashInfo:
    """Parse a ``.hashcheck`` file.

    If the file has no (recognized) ``hashtype``, the type is inferred from the hash length (8: CRC32, 24: MD5 Base64,
    32: MD5, 40: SHA-1), falling back to ``assumed_hash_type``.
    """
    fields = {}
    with open(path, "r") as fd:
        for line in fd:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            fields[key.strip().lower()] = value.strip()

    file_size = 0
    if "size" in fields:
        try:
            file_size = int(fields["size"])
        except ValueError:
            logger.warning(f"{path}: invalid size {fields['size']!r}")

    date_str = fields.get("modification_date_utc", fields.get("date"))
    file_date_utc = _parse_date(date_str) if date_str else None

    hash_value = fields.get("hash", "")
    hash_type = HashType.from_name(fields.get("hashtype", ""))
    if hash_type is HashType.UNDEFINED:
        hash_type = _HASH_TYPES_BY_LENGTH.get(len(hash_value), assumed_hash_type)

    return HashInfo(
        file_size=file_size,
        file_date_utc=file_date_utc,
        hash_value=hash_value,
        hash_type=hash_type,
    )


def hashes_match(expected: str, actual: str, hash_type: HashType) -> bool:
    """Compare hashes; hex digests are case-insensitive, Base64 ones are not."""
    if hash_type is HashType.MD5_BASE64:
        return expected == actual
    return expected.lower() == actual.lower()


def verify_hashcheck_file(path: PathLike) -> bool:
    """Recompute the hash of the data file described by the ``.hashcheck`` file at ``path``, and compare.

    Raises ``FileNotFoundError`` if the data file is missing.
    """
    path = Path(path)
    if not path.name.endswith(HASHCHECK_FILE_SUFFIX):
        raise ValueError(f"Not a {HASHCHECK_FILE_SUFFIX} file: {path}")
    data_path = path.with_name(path.name[: -len(HASHCHECK_FILE_SUFFIX)])
    if not data_path.is_file():
        raise FileNotFoundError(f"Data file not found for {path}: {data_path}")

    info = read_hashcheck_file(path)
    actual = compute_file_hash(data_path, info.hash_type)
    return hashes_match(info.hash_value, actual, info.hash_type)


def _hash_one(path: Path, hash_type: HashType) -> Tuple[Path, str]:
    return path, compute_file_hash(path, hash_type)


def hash_files(
    paths: Iterable[PathLike],
    hash_type: HashType = DEFAULT_HASH_TYPE,
    max_threads: int = DEFAULT_HASH_THREADS,
    max_preprocessed: int = -1,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    cancel_event: Optional[CancelSignal] = None,
) -> Iterator[Tuple[Path, str]]:
    """Hash many files concurrently, yielding ``(path, hash)`` pairs in completion order."""
    return parallel_preprocess(
        (Path(p) for p in paths),
        partial(_hash_one, hash_type=hash_type),
        max_threads=max_threads,
        max_preprocessed=max_preprocessed,
        check_interval=check_interval,
        cancel_event=cancel_event,
    )
