from __future__ import annotations

import hashlib
import logging
import os
import random
import tempfile
import threading
import time
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from ..core.errors import StoreError
from ..core.model import GroupingTuple, PolicyTuple
from ..core.ports import PolicyStore
from .memory import MemoryPolicyStore
from .rows import format_rows, parse_rows

if TYPE_CHECKING:  # pragma: no cover
    from ..core.engine import Enforcer

logger = logging.getLogger("orgacl.storage")


def atomic_write(path: str, data: str, *, encoding: str = "utf-8") -> None:
    """Write data atomically to *path*.

    Uses a temporary file in the same directory followed by os.replace().
    """
    directory = os.path.dirname(path) or "."
    fd, tmp = tempfile.mkstemp(prefix=".orgacl.tmp.", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(data)
        os.replace(tmp, path)
    finally:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass


class FilePolicyStore:
    """
    Policy store backed by a local CSV file of ``p``/``g`` rows.

    ETag semantics:
      - ETag = SHA-256 of file content.
      - If include_mtime_in_etag=True, the ETag also includes mtime (ns),
        so a simple "touch" will trigger a reload.

    The last SHA is cached by (size, mtime_ns) to avoid rehashing unchanged files.
    Rows are parsed once per content change; ``load_policies``/``load_groupings``
    share the parsed result.
    """

    def __init__(
        self,
        path: str,
        *,
        include_mtime_in_etag: bool = False,
        chunk_size: int = 512 * 1024,
    ) -> None:
        self.path = path
        self.include_mtime_in_etag = include_mtime_in_etag
        self._chunk_size = int(chunk_size)
        self._lock = threading.RLock()

        self._cached_stat_sig: Optional[Tuple[int, int]] = None  # (size, mtime_ns)
        self._cached_sha: Optional[str] = None
        self._parsed_sha: Optional[str] = None
        self._parsed: Optional[Tuple[List[PolicyTuple], List[GroupingTuple]]] = None

    # --- helpers -------------------------------------------------------------

    def _stat_sig(self) -> Tuple[int, int]:
        st = os.stat(self.path)
        mtime_ns = getattr(st, "st_mtime_ns", int(st.st_mtime * 1_000_000_000))
        return (st.st_size, mtime_ns)

    def _hash_file(self) -> str:
        h = hashlib.sha256()
        with open(self.path, "rb") as f:
            for chunk in iter(lambda: f.read(self._chunk_size), b""):
                h.update(chunk)
        return h.hexdigest()

    def _ensure_content_sha(self) -> Tuple[Optional[str], Optional[Tuple[int, int]]]:
        try:
            sig = self._stat_sig()
        except FileNotFoundError:
            self._cached_stat_sig = None
            self._cached_sha = None
            return None, None

        if self._cached_stat_sig != sig or self._cached_sha is None:
            sha = self._hash_file()
            self._cached_stat_sig = sig
            self._cached_sha = sha
        else:
            sha = self._cached_sha
        return sha, sig

    def _rows(self) -> Tuple[List[PolicyTuple], List[GroupingTuple]]:
        with self._lock:
            try:
                sha, _ = self._ensure_content_sha()
                if sha is None:
                    raise FileNotFoundError(self.path)
                if self._parsed is None or self._parsed_sha != sha:
                    with open(self.path, "r", encoding="utf-8") as f:
                        text = f.read()
                    self._parsed = parse_rows(text, source=self.path)
                    self._parsed_sha = sha
            except OSError as e:
                raise StoreError(f"cannot read policy file {self.path}: {e}") from e
            return self._parsed

    # --- PolicyStore interface ----------------------------------------------

    def etag(self) -> Optional[str]:
        with self._lock:
            sha, sig = self._ensure_content_sha()
        if sha is None:
            return None
        if self.include_mtime_in_etag and sig is not None:
            return f"{sha}:{sig[1]}"
        return sha

    def load_policies(self) -> List[PolicyTuple]:
        return list(self._rows()[0])

    def load_groupings(self) -> List[GroupingTuple]:
        return list(self._rows()[1])

    def has_grouping(self, role: str, permission: str) -> bool:
        return GroupingTuple(role, permission) in self._rows()[1]

    def add_grouping(self, role: str, permission: str) -> bool:
        """Append a ``g`` row unless it is already present."""
        with self._lock:
            policies, groupings = self._rows()
            edge = GroupingTuple(role, permission)
            if edge in groupings:
                return False
            self.save(policies, groupings + [edge])
            return True

    def save(self, policies: Iterable[PolicyTuple], groupings: Iterable[GroupingTuple]) -> None:
        with self._lock:
            try:
                atomic_write(self.path, format_rows(policies, groupings))
            except OSError as e:
                raise StoreError(f"cannot write policy file {self.path}: {e}") from e
            logger.debug("ORGACL: policy file saved to %s", self.path)


class HotReloader:
    """
    Polls a store and reloads the enforcer when its change token moves.

    A check compares ``store.etag()`` with the token seen at the last successful
    load; stores without an etag (or returning None) reload on every check.
    Failed reloads leave the enforcer on its previous snapshot and open a
    suppression window that doubles up to ``backoff_max`` (with jitter), so a
    broken file is not re-read on every poll. A missing source is logged as a
    warning, any other failure as an error.
    """

    def __init__(
        self,
        enforcer: "Enforcer",
        store: PolicyStore | None = None,
        *,
        poll_interval: float | None = 5.0,
        backoff_min: float = 2.0,
        backoff_max: float = 30.0,
        jitter_ratio: float = 0.15,
        thread_daemon: bool = True,
    ) -> None:
        self.enforcer = enforcer
        self.store = store if store is not None else enforcer.store
        self.poll_interval = poll_interval
        self.backoff_min = float(backoff_min)
        self.backoff_max = float(backoff_max)
        self.jitter_ratio = float(jitter_ratio)
        self.thread_daemon = bool(thread_daemon)

        # The enforcer has just loaded the store; start from its current etag.
        try:
            self._last_etag: Optional[str] = self._etag()
        except Exception:
            self._last_etag = None
        self._suppress_until = 0.0
        self._backoff = self.backoff_min
        self._last_error: Exception | None = None

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def check_and_reload(self, *, force: bool = False) -> bool:
        """Run one check. Returns True when a new snapshot was applied."""
        now = time.time()
        with self._lock:
            if not force and now < self._suppress_until:
                return False
            try:
                etag = self._etag()
                if not force and etag is not None and etag == self._last_etag:
                    return False
                self.enforcer.reload()
            except Exception as e:
                self._on_failure(now, e)
                return False

            self._last_etag = etag
            self._last_error = None
            self._backoff = self.backoff_min
            self._suppress_until = 0.0
            return True

    def start(self, interval: float | None = None) -> None:
        """Start polling in a background thread; a running poller is left alone."""
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            poll_iv = float(interval if interval is not None else (self.poll_interval or 5.0))
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop, args=(poll_iv,), daemon=self.thread_daemon
            )
            self._thread.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        with self._lock:
            if not self._thread:
                return
            self._stop_event.set()
            self._thread.join(timeout=timeout)
            if not self._thread.is_alive():
                self._thread = None

    @property
    def last_etag(self) -> Optional[str]:
        with self._lock:
            return self._last_etag

    @property
    def last_error(self) -> Exception | None:
        with self._lock:
            return self._last_error

    @property
    def suppressed_until(self) -> float:
        with self._lock:
            return self._suppress_until

    def _etag(self) -> Optional[str]:
        etag = getattr(self.store, "etag", None)
        return etag() if callable(etag) else None

    def _source(self) -> str:
        for attr in ("path", "url"):
            value = getattr(self.store, attr, None)
            if isinstance(value, str):
                return value
        return type(self.store).__name__

    def _on_failure(self, now: float, err: Exception) -> None:
        self._last_error = err
        if _missing_source(err):
            logger.warning("ORGACL: policy not found: %s", self._source())
        else:
            logger.error("ORGACL: policy reload error from %s", self._source(), exc_info=err)

        self._backoff = min(self.backoff_max, max(self.backoff_min, self._backoff * 2.0))
        jitter = self._backoff * self.jitter_ratio * random.uniform(-1.0, 1.0)
        self._suppress_until = now + max(0.2, self._backoff + jitter)

    def _run_loop(self, base_interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                self.check_and_reload()
            except Exception:  # pragma: no cover
                logger.exception("ORGACL: reloader loop error")

            sleep_for = base_interval
            with self._lock:
                pending = self._suppress_until - time.time()
            if pending > 0:
                sleep_for = min(sleep_for, max(0.2, pending))
            jitter = base_interval * self.jitter_ratio * random.uniform(-1.0, 1.0)
            # Event.wait returns early when stop() is called.
            self._stop_event.wait(timeout=max(0.2, sleep_for + jitter))


def _missing_source(err: BaseException) -> bool:
    """True if ``err`` was caused, at any depth, by a missing file."""
    seen: BaseException | None = err
    while seen is not None:
        if isinstance(seen, FileNotFoundError):
            return True
        seen = seen.__cause__
    return False


__all__ = [
    "atomic_write",
    "FilePolicyStore",
    "HotReloader",
    "MemoryPolicyStore",
    "parse_rows",
    "format_rows",
]
