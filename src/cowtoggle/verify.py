from __future__ import annotations

import hashlib
import logging
import mmap
import os
from typing import TYPE_CHECKING, Protocol

import xxhash

from cowtoggle import exceptions
from cowtoggle.config import HashAlgorithm as HashAlgorithm

if TYPE_CHECKING:
    import pathlib

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB chunks for hashing
MMAP_THRESHOLD = 10 * 1024 * 1024  # 10MB - use mmap for files larger than this


class _Hasher(Protocol):
    def update(self, data: bytes | mmap.mmap, /) -> None: ...

    def hexdigest(self) -> str: ...


def _new_hasher(algorithm: HashAlgorithm) -> _Hasher:
    match algorithm:
        case HashAlgorithm.XXH64:
            return xxhash.xxh64()
        case HashAlgorithm.XXH128:
            return xxhash.xxh3_128()
        case HashAlgorithm.SHA256:
            return hashlib.sha256()


def digest(path: pathlib.Path, algorithm: HashAlgorithm = HashAlgorithm.XXH64) -> str:
    """Hash the full content of path.

    Raises FileIOError if the file cannot be read.
    """
    hasher = _new_hasher(algorithm)
    try:
        with open(path, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            if size >= MMAP_THRESHOLD:
                try:
                    with mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ) as mm:
                        hasher.update(mm)
                except (ValueError, OSError):
                    # Fall back to buffered read if mmap fails (network FS, etc.)
                    f.seek(0)
                    hasher = _new_hasher(algorithm)
                    while chunk := f.read(CHUNK_SIZE):
                        hasher.update(chunk)
            else:
                while chunk := f.read(CHUNK_SIZE):
                    hasher.update(chunk)
    except OSError as e:
        raise exceptions.FileIOError(f"Cannot read {path}: {e.strerror or e}") from e
    return hasher.hexdigest()


def matches(
    a: pathlib.Path, b: pathlib.Path, algorithm: HashAlgorithm = HashAlgorithm.XXH64
) -> bool:
    """Compare the content of two files by freshly computed digests."""
    digest_a = digest(a, algorithm)
    digest_b = digest(b, algorithm)
    if digest_a != digest_b:
        logger.debug(f"Digest mismatch: {a}={digest_a} {b}={digest_b}")
    return digest_a == digest_b
