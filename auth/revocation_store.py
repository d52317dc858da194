from __future__ import annotations

import contextlib
import fcntl
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from anyio import to_thread


class RevocationStore(ABC):
    # Per-subject "revoked at"; credentials issued at or before it are revoked.
    @abstractmethod
    async def get(self, subject: str) -> float | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, subject: str, revoked_at: float) -> None:
        raise NotImplementedError


class MemoryRevocationStore(RevocationStore):
    def __init__(self) -> None:
        self._revoked: dict[str, float] = {}

    async def get(self, subject: str) -> float | None:
        return self._revoked.get(subject)

    async def set(self, subject: str, revoked_at: float) -> None:
        self._revoked[subject] = revoked_at


class FileRevocationStore(RevocationStore):
    def __init__(self, path: str | Path = ".revocations.json") -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(f"{self._path.name}.lock")
        self._cache: tuple[tuple[int, int, int], dict[str, float]] | None = None

    async def get(self, subject: str) -> float | None:
        return await to_thread.run_sync(self._get_sync, subject)

    async def set(self, subject: str, revoked_at: float) -> None:
        await to_thread.run_sync(self._set_sync, subject, revoked_at)

    def _get_sync(self, subject: str) -> float | None:
        return self._read_all().get(subject)

    def _set_sync(self, subject: str, revoked_at: float) -> None:
        # flock spans the whole read-modify-write across worker processes.
        with self._exclusive():
            all_revocations = dict(self._read_all())
            previous = all_revocations.get(subject)
            all_revocations[subject] = max(revoked_at, previous or revoked_at)
            self._write_all(all_revocations)

    @contextlib.contextmanager
    def _exclusive(self) -> Iterator[None]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "a", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _read_all(self) -> dict[str, float]:
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            return {}

        cached = self._cache
        version = (stat.st_ino, stat.st_mtime_ns, stat.st_size)
        if cached is not None and cached[0] == version:
            return cached[1]

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("Revocation store file is invalid; expected top-level JSON object.")
        revocations: dict[str, float] = {}
        for subject, value in raw.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise RuntimeError(f"Revocation store file is invalid; bad entry for {subject!r}.")
            revocations[subject] = float(value)

        self._cache = (version, revocations)
        return revocations

    def _write_all(self, payload: dict[str, float]) -> None:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        self._cache = None
