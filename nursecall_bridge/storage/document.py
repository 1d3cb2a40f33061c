"""JSON configuration document shared with the host application."""
from __future__ import annotations

import contextlib
import json
import logging
import os
import pathlib
import tempfile
import threading
from typing import IO, Any, Iterator, cast

LOGGER = logging.getLogger(__name__)


class DocumentError(RuntimeError):
    """Raised when the configuration document cannot be read or written."""


class ConfigDocument:
    """Load and persist the host's configuration document.

    The document holds ``masterSettings``, ``masterData`` and
    ``callHistoryStorage``. Its location belongs to the host application;
    the bridge only reads and rewrites it.

    Writers wrap load/modify/save in ``locked()``. That serializes threads of
    this process and, through an advisory lock on a ``.<name>.lock`` file
    beside the document, other bridge processes such as a CLI command run
    while ``monitor`` is connected.
    """

    def __init__(self, path: str | pathlib.Path) -> None:
        self._path = pathlib.Path(path)
        self._lock_path = self._path.with_name(f".{self._path.name}.lock")
        self._thread_lock = threading.Lock()

    @property
    def path(self) -> pathlib.Path:
        return self._path

    @property
    def lock_path(self) -> pathlib.Path:
        return self._lock_path

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        with self._thread_lock:
            try:
                handle = open(self._lock_path, "a+b")
            except OSError as exc:
                raise DocumentError(f"Failed to open lock file {self._lock_path}: {exc}") from exc
            try:
                _ensure_lock_file_header(handle)
                try:
                    _lock_file(handle)
                except OSError as exc:
                    raise DocumentError(f"Failed to lock {self._path}: {exc}") from exc
                try:
                    yield
                finally:
                    _unlock_file(handle)
            finally:
                handle.close()

    def load(self) -> dict[str, Any]:
        if not self._path.exists():
            raise DocumentError(f"Document does not exist: {self._path}")
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DocumentError(f"Failed to read {self._path}: {exc}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DocumentError(f"Invalid JSON in {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise DocumentError(f"Document root must be an object: {self._path}")
        return data

    def save(self, data: dict[str, Any]) -> None:
        text = json.dumps(data, indent=2, ensure_ascii=False)
        parent = self._path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(text)
                os.replace(tmp_name, self._path)
            except BaseException:
                pathlib.Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise DocumentError(f"Failed to write {self._path}: {exc}") from exc
        LOGGER.debug("Saved document %s", self._path)


def _lock_file(file_handle: IO[bytes]) -> None:
    if os.name == "nt":
        import msvcrt

        msvcrt_any = cast(Any, msvcrt)
        file_handle.seek(0)
        msvcrt_any.locking(file_handle.fileno(), msvcrt_any.LK_LOCK, 1)
    else:
        import fcntl

        fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX)


def _unlock_file(file_handle: IO[bytes]) -> None:
    if os.name == "nt":
        import msvcrt

        msvcrt_any = cast(Any, msvcrt)
        file_handle.seek(0)
        msvcrt_any.locking(file_handle.fileno(), msvcrt_any.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)


def _ensure_lock_file_header(file_handle: IO[bytes]) -> None:
    # msvcrt locks a byte range, so the file needs at least one byte.
    file_handle.seek(0, os.SEEK_END)
    if file_handle.tell() == 0:
        file_handle.write(b"0")
        file_handle.flush()
    file_handle.seek(0)
