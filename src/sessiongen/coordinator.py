from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, cast

from .auth.cache import KeyCache
from .auth.state import AuthenticationState, Credentials
from .constants import CONNECTION_UPDATE, CREDS_UPDATE, KEYS_UPDATE
from .exceptions import (
    ConflictingAttempt,
    ProtocolEventError,
    ProtocolSetupFailed,
    SessionGenError,
    StoreUnavailable,
    UnsupportedMethod,
)
from .pairing import PairingRequestHandler, normalize_phone_number
from .persistence import PersistenceQueue
from .protocol import (
    ClientFactory,
    ClientOptions,
    ConnectionUpdate,
    PairingMethod,
    ProtocolClient,
    is_logged_out,
    parse_connection_update,
    parse_credentials_changed,
    parse_keys_changed,
)
from .status import ConnectionState, StatusQueryService, StatusSnapshot
from .store import StoreFactory
from .store.base import CredentialStore
from .util.asyncio import cancel_suppress, ensure_task

logger = logging.getLogger(__name__)

METHODS: tuple[PairingMethod, ...] = ("qr", "pairing")

_attempt_ids = itertools.count(1)


@dataclass(slots=True)
class _SetupCompleted:
    pairing_code: str | None = None


@dataclass(slots=True)
class _SetupFailed:
    error: Exception


@dataclass(slots=True)
class _Shutdown:
    pass


_AttemptEvent = ConnectionUpdate | _SetupCompleted | _SetupFailed | _Shutdown


class ConnectionAttempt:
    """
    One pass through the pairing handshake.

    Owns the store handle, the write queue and the protocol client for its
    lifetime; all three are released when the attempt closes or fails.
    """

    def __init__(self, method: PairingMethod, phone_number: str | None) -> None:
        self.id = next(_attempt_ids)
        self.method = method
        self.phone_number = phone_number
        self.inbox: asyncio.Queue[_AttemptEvent] = asyncio.Queue()
        self.store: CredentialStore | None = None
        self.writer: PersistenceQueue | None = None
        self.auth: AuthenticationState | None = None
        self.client: ProtocolClient | None = None
        self.setup_done = asyncio.Event()
        self.finished = asyncio.Event()
        self.setup_task: asyncio.Task[None] | None = None
        self.consumer_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"<ConnectionAttempt #{self.id} method={self.method}>"


class ConnectionCoordinator:
    """
    Drives a protocol client through pairing and keeps its auth state durable.

    At most one attempt is active at a time. Events from the client are fed
    through a per-attempt queue to a single consumer, which is the only code
    that changes the published state. Credential and key writes bypass that
    queue and go straight to the attempt's `PersistenceQueue` at emission
    time, so they keep emission order; the consumer drains that queue before
    it reports a connection as open.
    """

    def __init__(
        self,
        *,
        store_factory: StoreFactory,
        client_factory: ClientFactory | None = None,
        status: StatusQueryService | None = None,
        options: ClientOptions | None = None,
    ) -> None:
        self._store_factory = store_factory
        self._client_factory = client_factory
        self._options = options or ClientOptions()
        self.status = status or StatusQueryService()
        self._attempt: ConnectionAttempt | None = None

    @property
    def state(self) -> ConnectionState:
        return self.status.current_status().state

    @property
    def attempt(self) -> ConnectionAttempt | None:
        return self._attempt

    def _publish(self, snapshot: StatusSnapshot) -> None:
        previous = self.status.current_status().state
        self.status.publish(snapshot)
        if snapshot.state is not previous:
            logger.debug("state %s -> %s", previous.value, snapshot.state.value)

    def _update(self, **changes: Any) -> None:
        self._publish(self.status.current_status().evolve(**changes))

    # -- starting ---------------------------------------------------------

    def begin(self, method: str, phone_number: str | None = None) -> ConnectionAttempt:
        """
        Validate the request and kick off a new attempt.

        Returns as soon as the attempt is `connecting`; setup continues in the
        background. Raises `ConflictingAttempt`, `UnsupportedMethod` or
        `InvalidPhoneNumber` without changing any state.
        """

        current = self.state
        if current.is_active:
            logger.warning("Start request rejected: an attempt is already %s", current.value)
            raise ConflictingAttempt(current.value)
        if method not in METHODS:
            raise UnsupportedMethod(f"unsupported pairing method: {method!r}")
        phone = normalize_phone_number(phone_number) if method == "pairing" else None

        if current.is_terminal:
            self._publish(StatusSnapshot())

        attempt = ConnectionAttempt(cast(PairingMethod, method), phone)
        self._attempt = attempt
        self._publish(StatusSnapshot(state=ConnectionState.CONNECTING, method=method))
        logger.info(
            "Starting connection attempt #%d via %s",
            attempt.id,
            "pairing code" if method == "pairing" else "QR code",
        )

        attempt.consumer_task = ensure_task(
            self._consume(attempt), name=f"sessiongen.attempt{attempt.id}.events"
        )
        attempt.setup_task = ensure_task(
            self._setup(attempt), name=f"sessiongen.attempt{attempt.id}.setup"
        )
        return attempt

    async def start(self, method: str, phone_number: str | None = None) -> ConnectionAttempt:
        """`begin`, then wait until setup has succeeded or the attempt has ended."""

        attempt = self.begin(method, phone_number)
        await attempt.setup_done.wait()
        return attempt

    async def join(self) -> None:
        """Wait until every event queued for the current attempt has been handled."""

        attempt = self._attempt
        if attempt is not None:
            await attempt.inbox.join()

    async def shutdown(self) -> None:
        """Close the active attempt, if any, disconnecting its client."""

        attempt = self._attempt
        if attempt is None or attempt.finished.is_set():
            return
        attempt.inbox.put_nowait(_Shutdown())
        if attempt.consumer_task is not None:
            await attempt.consumer_task

    # -- setup --------------------------------------------------------------

    async def _setup(self, attempt: ConnectionAttempt) -> None:
        try:
            store = self._store_factory()
            attempt.store = store
            await store.connect()
            creds, keys = await store.load()
            logger.info(
                "Loaded session state (%s, %d key types)",
                "registered" if creds.get("registered") else "unregistered",
                len(keys),
            )

            writer = PersistenceQueue(
                store, observer=lambda err: self._on_write_result(attempt, err)
            )
            attempt.writer = writer
            auth = AuthenticationState(creds=creds, keys=KeyCache(store, writer, seed=keys))
            attempt.auth = auth

            client = self._build_client(attempt, auth)
            attempt.client = client
            self._subscribe(attempt, client)

            try:
                await client.connect()
            except SessionGenError:
                raise
            except Exception as e:
                raise ProtocolSetupFailed(f"protocol client failed to connect: {e}") from e

            code = None
            if attempt.method == "pairing" and not creds.get("registered"):
                if attempt.phone_number is None:
                    raise ProtocolSetupFailed("pairing attempt has no phone number")
                code = await PairingRequestHandler(client).issue(attempt.phone_number)
            attempt.inbox.put_nowait(_SetupCompleted(pairing_code=code))
        except Exception as e:
            attempt.inbox.put_nowait(_SetupFailed(e))

    def _build_client(
        self, attempt: ConnectionAttempt, auth: AuthenticationState
    ) -> ProtocolClient:
        if self._client_factory is None:
            raise ProtocolSetupFailed("no protocol client factory is configured")
        options = replace(self._options, print_qr_in_terminal=attempt.method == "qr")
        try:
            return self._client_factory(auth, options)
        except SessionGenError:
            raise
        except Exception as e:
            raise ProtocolSetupFailed(f"could not construct protocol client: {e}") from e

    def _subscribe(self, attempt: ConnectionAttempt, client: ProtocolClient) -> None:
        def on_connection_update(payload: Any = None) -> None:
            if attempt.finished.is_set():
                return
            try:
                update = parse_connection_update(payload)
            except ProtocolEventError as e:
                logger.warning("Ignoring malformed %s event: %s", CONNECTION_UPDATE, e)
                return
            attempt.inbox.put_nowait(update)

        def on_creds_update(payload: Any = None) -> None:
            if attempt.auth is None or attempt.writer is None:
                return
            try:
                changed = parse_credentials_changed(payload)
            except ProtocolEventError as e:
                logger.error("Cannot persist malformed %s event: %s", CREDS_UPDATE, e)
                return
            creds = attempt.auth.creds
            creds.update(changed.update)
            attempt.writer.save_credentials(creds)

        async def on_keys_update(payload: Any = None) -> None:
            if attempt.auth is None:
                return
            try:
                changed = parse_keys_changed(payload)
            except ProtocolEventError as e:
                logger.error("Cannot persist malformed %s event: %s", KEYS_UPDATE, e)
                return
            await attempt.auth.keys.set(changed.delta)

        client.on(CONNECTION_UPDATE, on_connection_update)
        client.on(CREDS_UPDATE, on_creds_update)
        client.on(KEYS_UPDATE, on_keys_update)

    # -- event consumer -----------------------------------------------------

    async def _consume(self, attempt: ConnectionAttempt) -> None:
        try:
            while not attempt.finished.is_set():
                event = await attempt.inbox.get()
                try:
                    await self._handle(attempt, event)
                except Exception as e:
                    logger.exception("Unhandled failure in connection attempt #%d", attempt.id)
                    await self._finish(
                        attempt, ConnectionState.ERROR, error=_describe(e), disconnect=True
                    )
                finally:
                    attempt.inbox.task_done()
        finally:
            # Nothing reads the inbox past this point.
            while not attempt.inbox.empty():
                attempt.inbox.get_nowait()
                attempt.inbox.task_done()

    async def _handle(self, attempt: ConnectionAttempt, event: _AttemptEvent) -> None:
        if isinstance(event, ConnectionUpdate):
            await self._on_connection_update(attempt, event)
        elif isinstance(event, _SetupCompleted):
            if event.pairing_code is not None:
                self._on_pairing_code(event.pairing_code)
            attempt.setup_done.set()
        elif isinstance(event, _SetupFailed):
            err = event.error
            if isinstance(err, SessionGenError):
                logger.error("Connection attempt #%d failed: %s", attempt.id, err)
            else:
                logger.error("Connection attempt #%d failed", attempt.id, exc_info=err)
            await self._finish(
                attempt, ConnectionState.ERROR, error=_describe(err), disconnect=True
            )
        elif isinstance(event, _Shutdown):
            logger.info("Shutting down connection attempt #%d", attempt.id)
            await self._finish(attempt, ConnectionState.CLOSED, disconnect=True)

    def _on_pairing_code(self, code: str) -> None:
        if self.state not in (ConnectionState.CONNECTING, ConnectionState.QR_PENDING):
            logger.info("Discarding pairing code issued while %s", self.state.value)
            return
        self._update(
            state=ConnectionState.PAIRING_PENDING, pending_pairing_code=code, pending_qr=None
        )
        logger.info("Pairing code ready")

    async def _on_connection_update(
        self, attempt: ConnectionAttempt, update: ConnectionUpdate
    ) -> None:
        if update.connection == "close":
            if is_logged_out(update):
                logger.warning("Session was logged out; it must be paired again")
            else:
                logger.info("Connection closed (status=%s)", update.status_code)
            await self._finish(attempt, ConnectionState.CLOSED, logged_out=is_logged_out(update))
            return

        if update.connection == "open":
            if attempt.writer is not None:
                await attempt.writer.drain()
            account = _account_id(attempt.auth.creds) if attempt.auth else None
            self._update(
                state=ConnectionState.OPEN,
                pending_qr=None,
                pending_pairing_code=None,
                account=account,
            )
            logger.info("Connection open; session credentials are stored")
            # The QR of an update that also opened the connection is stale.
            return

        if update.qr and self.state in (
            ConnectionState.CONNECTING,
            ConnectionState.QR_PENDING,
            ConnectionState.PAIRING_PENDING,
        ):
            self._update(
                state=ConnectionState.QR_PENDING, pending_qr=update.qr, pending_pairing_code=None
            )
            logger.info("QR code available")

    def _on_write_result(self, attempt: ConnectionAttempt, error: StoreUnavailable | None) -> None:
        if self._attempt is not attempt or attempt.finished.is_set():
            return
        self._update(persist_error=str(error) if error is not None else None)

    # -- teardown ---------------------------------------------------------

    async def _finish(
        self,
        attempt: ConnectionAttempt,
        state: ConnectionState,
        *,
        error: str | None = None,
        logged_out: bool | None = None,
        disconnect: bool = False,
    ) -> None:
        if attempt.finished.is_set():
            return
        attempt.finished.set()
        await cancel_suppress(attempt.setup_task)

        writer = attempt.writer
        try:
            await self._release(attempt, disconnect=disconnect)
        finally:
            persist_error = None
            if writer is not None and writer.has_unpersisted:
                persist_error = str(writer.last_error)
            if self._attempt is attempt:
                self._publish(
                    StatusSnapshot(
                        state=state,
                        method=attempt.method,
                        error=error,
                        persist_error=persist_error,
                        logged_out=logged_out,
                    )
                )
            attempt.setup_done.set()
            logger.info("Connection attempt #%d ended: %s", attempt.id, state.value)

    async def _release(self, attempt: ConnectionAttempt, *, disconnect: bool) -> None:
        client, attempt.client = attempt.client, None
        store, attempt.store = attempt.store, None
        try:
            if client is not None and disconnect:
                try:
                    await client.disconnect()
                except Exception:
                    logger.warning("Protocol client did not disconnect cleanly", exc_info=True)
            if attempt.writer is not None:
                await attempt.writer.aclose()
        finally:
            if store is not None:
                try:
                    await store.close()
                except Exception:
                    logger.exception("Closing the session store failed")
                else:
                    logger.info("Session store connection released")


def _describe(err: BaseException) -> str:
    return f"{type(err).__name__}: {err}" if str(err) else type(err).__name__


def _account_id(creds: Credentials) -> str | None:
    me = creds.get("me")
    if isinstance(me, Mapping) and isinstance(me.get("id"), str):
        return me["id"]
    return None
