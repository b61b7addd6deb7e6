"""Raw field files: exactly N³ bytes, ``index = y*N*N + z*N + x``.

Writes go through :func:`atomic_output`: a temporary file is created next to
the destination before any work starts, and it only replaces the destination
once everything has been written.  A failed run leaves no partial file.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterator, Tuple, Union

import numpy as np
import numpy.typing as npt

from .errors import IOFailure

logger = logging.getLogger(__name__)

__all__ = ["atomic_output", "atomic_path", "write_field", "read_field", "field_bytes"]


def _reserve(path: Path, suffix: str) -> Tuple[int, str]:
    if path.is_dir():
        raise IOFailure(f"output path is a directory: {path}")
    try:
        return tempfile.mkstemp(prefix=f".{path.stem}.", suffix=suffix, dir=path.parent)
    except OSError as exc:
        raise IOFailure(f"failed to open output file {path}: {exc}") from exc


def _commit(tmp_name: str, path: Path) -> None:
    # mkstemp creates 0600; give the result the mode a plain open() would.
    umask = os.umask(0)
    os.umask(umask)
    os.chmod(tmp_name, 0o666 & ~umask)
    os.replace(tmp_name, path)


def _discard(tmp_name: str) -> None:
    with contextlib.suppress(FileNotFoundError):
        os.unlink(tmp_name)


@contextlib.contextmanager
def atomic_output(path: Union[str, Path]) -> Iterator[BinaryIO]:
    """Open a temporary file beside *path*; move it onto *path* on success.

    Raises :class:`IOFailure` on entry if the destination cannot be written.
    The committed file gets the usual ``0666 & ~umask`` permissions.
    """
    path = Path(path)
    fd, tmp_name = _reserve(path, ".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            yield fh
        _commit(tmp_name, path)
    except BaseException:
        _discard(tmp_name)
        raise


@contextlib.contextmanager
def atomic_path(path: Union[str, Path]) -> Iterator[Path]:
    """Like :func:`atomic_output`, but yield the temporary file's path.

    For writers that insist on a filename (image encoders pick the format
    from it), the temporary file keeps the suffix of *path*.
    """
    path = Path(path)
    fd, tmp_name = _reserve(path, path.suffix)
    os.close(fd)
    try:
        yield Path(tmp_name)
        _commit(tmp_name, path)
    except BaseException:
        _discard(tmp_name)
        raise


def field_bytes(field: npt.ArrayLike) -> bytes:
    """Serialize an ``(N, N, N)`` uint8 field indexed ``[y, z, x]``."""
    field = np.asarray(field)
    if field.ndim != 3 or not (field.shape[0] == field.shape[1] == field.shape[2]):
        raise ValueError(f"field must be an (N, N, N) cube, got shape {field.shape}")
    if field.dtype != np.uint8:
        raise ValueError(f"field must be uint8, got {field.dtype}")
    return np.ascontiguousarray(field).tobytes()


def write_field(path: Union[str, Path], field: npt.ArrayLike) -> None:
    """Write *field* to *path* as raw bytes."""
    payload = field_bytes(field)
    try:
        with atomic_output(path) as fh:
            fh.write(payload)
    except IOFailure:
        raise
    except OSError as exc:
        raise IOFailure(f"failed to write {path}: {exc}") from exc
    logger.info(f"Wrote {len(payload)} bytes to {path}")


def read_field(path: Union[str, Path]) -> np.ndarray:
    """Read a raw field file; N is inferred from the byte count.

    Raises :class:`IOFailure` if the file is unreadable or its size is not
    ``N³`` for some ``N >= 2``.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise IOFailure(f"failed to open {path}: {exc}") from exc

    n = round(len(raw) ** (1.0 / 3.0))
    if n < 2 or n ** 3 != len(raw):
        raise IOFailure(f"{path} holds {len(raw)} bytes, not N^3 for any N >= 2")
    logger.info(f"Read {len(raw)} bytes from {path} ({n}x{n}x{n} field)")
    return np.frombuffer(raw, dtype=np.uint8).reshape(n, n, n).copy()
