"""Popup linking flow, one attempt per coordinator.

The opener asks the server for an authorization URL (which also sets the state
cookie), opens a popup on it and waits on its message bus for the callback
page's result. The attempt settles exactly once: Succeeded after the tokens are
written and read back, or Failed on provider error, popup close, timeout or a
write that did not land.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import anyio
import anyio.to_thread
import httpx

from linkpost.linking.messages import OAuthResult, parse_message
from linkpost.linking.sink import landed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 90.0
DEFAULT_GRACE_PERIOD = 0.5
DEFAULT_POLL_INTERVAL = 0.25


class LinkState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    AWAITING_CALLBACK = "awaiting_callback"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL = (LinkState.SUCCEEDED, LinkState.FAILED)


class Popup(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class AccountSink(Protocol):
    def persist(self, user_id: str, provider: str, result: OAuthResult) -> None: ...

    def read_connection(self, user_id: str, provider: str) -> Dict[str, Any]: ...


Listener = Callable[[Any, str], None]


class MessageBus:
    """The opener window's `message` events."""

    def __init__(self, origin: str):
        self.origin = origin
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def post(self, data: Any, origin: Optional[str] = None) -> None:
        for listener in list(self._listeners):
            listener(data, origin or self.origin)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class LinkingFailed(Exception):
    def __init__(self, code: str, reason: str):
        super().__init__(reason)
        self.code = code
        self.reason = reason


@dataclass
class LinkingSession:
    """Everything owned by one linking attempt."""
    user_id: str
    provider: str = "linkedin"
    state: LinkState = LinkState.IDLE
    auth_url: Optional[str] = None
    popup: Optional[Popup] = None
    result: Optional[OAuthResult] = None
    failure: Optional[LinkingFailed] = None
    history: List[LinkState] = field(default_factory=lambda: [LinkState.IDLE])


def start_url_fetcher(client: httpx.AsyncClient, path: str = "/api/auth/linkedin") -> Callable[[], Awaitable[str]]:
    """Fetch the authorization URL from the server; `client` keeps the state cookie."""

    async def fetch() -> str:
        r = await client.get(path, params={"action": "start"})
        data = r.json()
        if r.status_code != 200 or not data.get("url"):
            raise RuntimeError(data.get("error") or "Failed to start OAuth")
        return data["url"]

    return fetch


class LinkingCoordinator:
    def __init__(
        self,
        session: LinkingSession,
        bus: MessageBus,
        open_popup: Callable[[str], Optional[Popup]],
        fetch_auth_url: Callable[[], Awaitable[str]],
        sink: AccountSink,
        timeout: float = DEFAULT_TIMEOUT,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.session = session
        self.bus = bus
        self.open_popup = open_popup
        self.fetch_auth_url = fetch_auth_url
        self.sink = sink
        self.timeout = timeout
        self.grace_period = grace_period
        self.poll_interval = poll_interval

    @property
    def state(self) -> LinkState:
        return self.session.state

    def _transition(self, state: LinkState) -> None:
        if self.session.state in TERMINAL:
            raise RuntimeError(f"linking attempt already {self.session.state.value}")
        logger.debug("[linking] %s -> %s", self.session.state.value, state.value)
        self.session.state = state
        self.session.history.append(state)

    def _fail(self, code: str, reason: str) -> LinkingFailed:
        failure = LinkingFailed(code, reason)
        self.session.failure = failure
        if self.session.state not in TERMINAL:
            self._transition(LinkState.FAILED)
        logger.warning("[linking] %s attempt for %s failed: %s", self.session.provider, self.session.user_id, reason)
        return failure

    async def start(self) -> OAuthResult:
        if self.session.state is not LinkState.IDLE:
            raise RuntimeError("linking attempt already used; start a new session")
        self._transition(LinkState.AWAITING_AUTHORIZATION)

        send, receive = anyio.create_memory_object_stream(max_buffer_size=16)

        def on_message(data: Any, origin: str) -> None:
            if origin != self.bus.origin:
                return
            result = parse_message(data)
            if result is None:
                return
            try:
                send.send_nowait(result)
            except (anyio.WouldBlock, anyio.BrokenResourceError, anyio.ClosedResourceError):
                pass

        unsubscribe = self.bus.subscribe(on_message)
        try:
            try:
                self.session.auth_url = await self.fetch_auth_url()
            except Exception as e:
                raise self._fail("start_failed", f"Failed to start OAuth: {e}") from e

            popup = self.open_popup(self.session.auth_url)
            if popup is None:
                raise self._fail("popup_blocked", "Popup blocked")
            self.session.popup = popup
            self._transition(LinkState.AWAITING_CALLBACK)

            result = await self._await_result(receive, popup)
            self.session.result = result
            if result.error:
                raise self._fail("provider_error", f"LinkedIn OAuth error: {result.reason()}")
            if not result.access_token:
                raise self._fail("provider_error", "LinkedIn OAuth returned no access token")

            self._transition(LinkState.PERSISTING)
            await self._persist(result)
            self._transition(LinkState.SUCCEEDED)
            logger.info("[linking] %s connected for %s", self.session.provider, self.session.user_id)
            return result
        finally:
            unsubscribe()
            send.close()
            receive.close()

    async def _await_result(self, receive, popup: Popup) -> OAuthResult:
        try:
            with anyio.fail_after(self.timeout):
                while True:
                    with anyio.move_on_after(self.poll_interval):
                        return await receive.receive()
                    if popup.closed:
                        # a message sent just before close may still be in flight
                        with anyio.move_on_after(self.grace_period):
                            return await receive.receive()
                        raise self._fail("cancelled", "LinkedIn authorization cancelled: popup closed")
        except TimeoutError:
            if not popup.closed:
                popup.close()
            raise self._fail("timeout", f"LinkedIn authorization timeout after {self.timeout:g}s")

    async def _persist(self, result: OAuthResult) -> None:
        user_id, provider = self.session.user_id, self.session.provider
        try:
            await anyio.to_thread.run_sync(self.sink.persist, user_id, provider, result)
            stored = await anyio.to_thread.run_sync(self.sink.read_connection, user_id, provider)
        except Exception as e:
            raise self._fail("persist_failed", f"failed to persist {provider} connection: {e}") from e
        if not landed(stored, result):
            raise self._fail("persist_failed", f"failed to persist {provider} connection")
