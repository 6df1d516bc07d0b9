from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from tubely.services.errors import StorageFaultError, UploadTooLargeError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1 << 20


class StagedFile:
    """A request-scoped local file. Only the owning request may touch it."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __repr__(self) -> str:  # pragma: no cover
        return f"StagedFile({str(self.path)!r})"

    def open(self) -> BinaryIO:
        handle = self.path.open("rb")
        handle.seek(0)
        return handle

    def size(self) -> int:
        return self.path.stat().st_size

    @contextmanager
    def derive(self, suffix: str) -> Iterator[StagedFile]:
        """Reserve ``<path><suffix>`` for a tool's output and remove it on exit.

        Nothing is created up front; whatever a tool leaves there, complete
        or partial, is unlinked when the scope closes.
        """
        derived = StagedFile(self.path.with_name(self.path.name + suffix))
        try:
            yield derived
        finally:
            _discard(derived.path)


class StagingArea:
    def __init__(self, root: Path | None = None) -> None:
        self.root = root
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def acquire(self, suffix: str = "") -> Iterator[StagedFile]:
        """Create a uniquely named empty file and delete it when the scope exits."""
        try:
            fd, name = tempfile.mkstemp(
                prefix="tubely-upload-",
                suffix=suffix,
                dir=str(self.root) if self.root is not None else None,
            )
        except OSError as exc:
            raise StorageFaultError("Could not allocate staging file") from exc
        os.close(fd)

        staged = StagedFile(Path(name))
        try:
            yield staged
        finally:
            _discard(staged.path)


async def stage(source: BinaryIO, staged: StagedFile, max_bytes: int) -> int:
    """Copy ``source`` into ``staged`` chunk by chunk and return the byte count."""

    def _copy() -> int:
        written = 0
        with staged.path.open("wb") as out:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLargeError(f"Upload exceeds {max_bytes} bytes")
                out.write(chunk)
        return written

    try:
        return await asyncio.to_thread(_copy)
    except OSError as exc:
        raise StorageFaultError("Could not write staging file") from exc


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.exception("Failed to remove staged file %s", path)
