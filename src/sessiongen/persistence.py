from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .auth.keys import KeyDelta, fold_key_deltas
from .auth.state import Credentials
from .exceptions import StoreUnavailable
from .store.base import CredentialStore
from .util import json as bufferjson
from .util.asyncio import ensure_task

logger = logging.getLogger(__name__)

# Called after every write with the failure, or `None` once a write succeeds.
WriteObserver = Callable[[StoreUnavailable | None], None]


@dataclass(slots=True)
class _Write:
    creds: Credentials | None
    keys: dict[str, dict[str, Any | None]] | None
    done: asyncio.Future[bool]


class PersistenceQueue:
    """
    Per-session sequential writer.

    Every credential save and key merge goes through one FIFO queue served by
    a single worker, so at most one store write is in flight and writes land
    in the order their source events were emitted.

    Submissions never raise: a failed write is logged, reported to the
    observer and kept for retry with the next submission (the newest
    credential snapshot supersedes an older one; failed key deltas are folded
    in front of the next delta). Each submission returns a future resolving to
    whether it reached the store.
    """

    def __init__(self, store: CredentialStore, *, observer: WriteObserver | None = None) -> None:
        self._store = store
        self._observer = observer
        self._queue: asyncio.Queue[_Write | None] = asyncio.Queue()
        self._retry_creds: Credentials | None = None
        self._retry_keys: dict[str, dict[str, Any | None]] = {}
        self._closed = False
        self.last_error: StoreUnavailable | None = None
        self._worker = ensure_task(self._run(), name="sessiongen.persistence")

    @property
    def has_unpersisted(self) -> bool:
        return self._retry_creds is not None or bool(self._retry_keys)

    def save_credentials(self, creds: Credentials) -> asyncio.Future[bool]:
        return self._submit(creds=creds, keys=None)

    def merge_keys(self, delta: KeyDelta) -> asyncio.Future[bool]:
        return self._submit(creds=None, keys=fold_key_deltas([delta]))

    def _submit(
        self, *, creds: Credentials | None, keys: dict[str, dict[str, Any | None]] | None
    ) -> asyncio.Future[bool]:
        done: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        if self._closed:
            logger.warning("Dropping write submitted after the session store was released")
            done.set_result(False)
            return done
        try:
            # Detach from the caller's objects: later in-place edits must not leak in.
            creds = bufferjson.snapshot(creds) if creds is not None else None
            keys = bufferjson.snapshot(keys) if keys is not None else None
        except (TypeError, ValueError):
            logger.exception("Session change is not serializable and cannot be persisted")
            done.set_result(False)
            return done
        self._queue.put_nowait(_Write(creds=creds, keys=keys, done=done))
        return done

    async def drain(self) -> None:
        """Wait until every write submitted so far has been attempted."""

        await self._queue.join()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        await self._worker
        if self.has_unpersisted:
            logger.error(
                "Session store released with unpersisted changes (last error: %s)",
                self.last_error,
            )

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                try:
                    ok = await self._write(item)
                except Exception:
                    logger.exception("Unexpected failure while persisting session changes")
                    ok = False
                if not item.done.done():
                    item.done.set_result(ok)
            finally:
                self._queue.task_done()

    async def _write(self, item: _Write) -> bool:
        creds = item.creds if item.creds is not None else self._retry_creds
        keys = fold_key_deltas([self._retry_keys, item.keys or {}])
        self._retry_creds = None
        self._retry_keys = {}

        try:
            if creds is not None:
                await self._store.save_credentials(creds)
                creds = None
            if keys:
                await self._store.merge_keys(keys)
                keys = {}
        except StoreUnavailable as e:
            # Whatever did not reach the store rides along with the next write.
            self._retry_creds = creds
            self._retry_keys = keys
            logger.warning("Persisting session changes failed (retried with next change): %s", e)
            self.last_error = e
            self._notify(e)
            return False

        if self.last_error is not None:
            logger.info("Session store writes recovered")
            self.last_error = None
            self._notify(None)
        return True

    def _notify(self, error: StoreUnavailable | None) -> None:
        if self._observer is None:
            return
        try:
            self._observer(error)
        except Exception:
            logger.exception("Write observer failed")
