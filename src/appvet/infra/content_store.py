from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

from ..core.domain.exceptions import StorageFailure


_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*/[0-9a-f]{64}$")


class FilesystemContentStore:
    """Content-addressed blob store on the local filesystem.

    Keys look like ``packages/<sha256>``; blobs are fanned out under a
    two-character prefix directory. The locator returned by ``put`` is the
    key itself.
    """

    def __init__(self, *, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def put(self, key: str, data: bytes) -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageFailure(f"Failed to write blob {key}: {exc}") from exc
        return key

    def get(self, locator: str) -> bytes:
        path = self._path(locator)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageFailure(f"Blob not found: {locator}") from exc
        except OSError as exc:
            raise StorageFailure(f"Failed to read blob {locator}: {exc}") from exc

    def delete(self, locator: str) -> None:
        path = self._path(locator)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageFailure(f"Failed to delete blob {locator}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StorageFailure(f"Invalid blob key: {key!r}")
        namespace, digest = key.split("/", 1)
        return self._root / namespace / digest[:2] / digest
