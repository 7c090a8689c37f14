"""Discord Gateway client.

One websocket per process. The client identifies (or resumes a previous
session), keeps the connection alive with heartbeats, and fans channel message
events out to subscribers. Closed connections are classified by close code and
either resumed, re-identified, or abandoned.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import json
import random
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from loguru import logger
from pydantic import ValidationError

from simon_bot.discord.errors import GatewayClosedError, GatewayError
from simon_bot.discord.schemas import DiscordMessage, GatewayPayload, HelloData, MessageEventData, ReadyData

GATEWAY_URL = "wss://gateway.discord.gg/?v=10&encoding=json"
GATEWAY_QUERY = "/?v=10&encoding=json"
GUILD_MESSAGES_INTENT = 1 << 9

LOCAL_CLOSE_CODE = 4000
ABNORMAL_CLOSE_CODE = 1006

FATAL_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})
RE_IDENTIFY_CLOSE_CODES = frozenset({4003, 4007, 4009})

BASE_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 30_000


class Opcode(enum.IntEnum):
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    RESUME = 6
    RECONNECT = 7
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


class GatewayState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"
    IDENTIFYING = "identifying"
    RESUMING = "resuming"
    LIVE = "live"


class CloseAction(enum.Enum):
    HALT = "halt"
    REIDENTIFY = "reidentify"
    RESUME = "resume"


ChangeSubscriber = Callable[[], Any]
MessageSubscriber = Callable[[DiscordMessage], Any]
Connector = Callable[[str], Awaitable[Any]]


def classify_close_code(code: int) -> CloseAction:
    if code in FATAL_CLOSE_CODES:
        return CloseAction.HALT
    if code in RE_IDENTIFY_CLOSE_CODES:
        return CloseAction.REIDENTIFY
    return CloseAction.RESUME


def reconnect_delay_ms(attempt: int) -> int:
    return min(BASE_BACKOFF_MS * 2**attempt, MAX_BACKOFF_MS)


async def _websocket_connect(url: str) -> Any:
    # Liveness is tracked with gateway heartbeats, not websocket pings.
    return await websockets.connect(url, ping_interval=None, max_size=None)


class DiscordGateway:
    def __init__(
        self,
        token: str,
        channel_id: str,
        *,
        intents: int = GUILD_MESSAGES_INTENT,
        gateway_url: str = GATEWAY_URL,
        client_name: str = "simon-bot",
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self._token = token
        self._channel_id = channel_id
        self._intents = intents
        self._gateway_url = gateway_url
        self._client_name = client_name
        self._connector = connector or _websocket_connect
        self._sleep = sleep
        self._rng = rng

        self._ws: Any = None
        self._state = GatewayState.DISCONNECTED
        self._subscribers: set[ChangeSubscriber] = set()
        self._message_subscribers: set[MessageSubscriber] = set()

        self._session_id: str | None = None
        self._resume_url: str | None = None
        self._sequence: int | None = None
        self._should_resume = True

        self._heartbeat_interval_ms: int | None = None
        self._awaiting_ack = False
        self._reconnect_attempts = 0

        self._ready: asyncio.Future[None] | None = None
        self._reader_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._callback_tasks: set[asyncio.Task] = set()
        self._halted = False
        self._closed = False

    @property
    def state(self) -> GatewayState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is GatewayState.LIVE

    @property
    def halted(self) -> bool:
        return self._halted

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def resume_url(self) -> str | None:
        return self._resume_url

    @property
    def sequence(self) -> int | None:
        return self._sequence

    @property
    def should_resume(self) -> bool:
        return self._should_resume

    @property
    def awaiting_ack(self) -> bool:
        return self._awaiting_ack

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # -- subscribers --

    def add_subscriber(self, callback: ChangeSubscriber) -> None:
        self._subscribers.add(callback)

    def remove_subscriber(self, callback: ChangeSubscriber) -> None:
        self._subscribers.discard(callback)

    def add_message_subscriber(self, callback: MessageSubscriber) -> None:
        self._message_subscribers.add(callback)

    def remove_message_subscriber(self, callback: MessageSubscriber) -> None:
        self._message_subscribers.discard(callback)

    async def subscribe(self, callback: ChangeSubscriber) -> Callable[[], None]:
        self.add_subscriber(callback)
        if not self.connected:
            await self.connect()
        return lambda: self.remove_subscriber(callback)

    async def subscribe_to_messages(self, callback: MessageSubscriber) -> Callable[[], None]:
        self.add_message_subscriber(callback)
        if not self.connected:
            await self.connect()
        return lambda: self.remove_message_subscriber(callback)

    def _notify(self, callbacks: set, *args: Any) -> None:
        for callback in list(callbacks):
            # Unsubscribed by an earlier callback in this same pass.
            if callback not in callbacks:
                continue
            try:
                result = callback(*args)
            except Exception:
                logger.exception("Gateway subscriber callback failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Gateway subscriber callback failed")

    # -- connection lifecycle --

    async def connect(self) -> None:
        """Open the socket if needed and wait until READY or RESUMED is seen."""
        if self.connected:
            return
        if self._closed:
            raise GatewayError("Gateway client has been closed")

        if self._ready is None or self._ready.done():
            self._ready = asyncio.get_running_loop().create_future()
        ready = self._ready

        if self._state is GatewayState.DISCONNECTED and self._reconnect_task is None:
            self._halted = False
            await self._open()

        await asyncio.shield(ready)

    async def close(self) -> None:
        self._closed = True
        for task in (self._reconnect_task, self._heartbeat_task):
            if task is not None:
                task.cancel()
        self._reconnect_task = None
        self._heartbeat_task = None

        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close(1000, "Client shutdown")
        if self._reader_task is not None:
            self._reader_task.cancel()
            self._reader_task = None
        for task in list(self._callback_tasks):
            task.cancel()

        self._state = GatewayState.DISCONNECTED
        self._fail_pending(GatewayError("Gateway client has been closed"))

    def _connect_url(self) -> str:
        if self._should_resume and self._resume_url:
            return f"{self._resume_url.rstrip('/')}{GATEWAY_QUERY}"
        return self._gateway_url

    async def _open(self) -> None:
        url = self._connect_url()
        self._state = GatewayState.CONNECTING
        logger.info(f"Connecting to Discord gateway (url={url}, resume={self._should_resume})")

        try:
            ws = await self._connector(url)
        except (OSError, websockets.WebSocketException) as ex:
            logger.error(f"Discord gateway connection failed: {ex}")
            self._fail_pending(GatewayError(f"Could not connect to Discord gateway: {ex}"))
            self._handle_close(ABNORMAL_CLOSE_CODE, str(ex))
            return

        self._ws = ws
        self._state = GatewayState.AWAITING_HELLO
        self._reader_task = asyncio.create_task(self._read_loop(ws))

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                await self._handle_frame(raw)
        except websockets.ConnectionClosed:
            pass

        if ws is not self._ws:
            return
        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSE_CODE
        self._handle_close(code, ws.close_reason or "")

    def _handle_close(self, code: int, reason: str) -> None:
        logger.info(f"Discord gateway connection closed (code={code}, reason={reason!r})")

        self._stop_heartbeat()
        self._awaiting_ack = False
        self._ws = None
        self._state = GatewayState.DISCONNECTED

        if self._closed:
            return

        action = classify_close_code(code)
        if action is CloseAction.HALT:
            logger.error(f"Fatal Discord gateway close code {code}, not reconnecting")
            self._halted = True
            self._fail_pending(GatewayClosedError(code, reason))
            return

        if action is CloseAction.REIDENTIFY:
            self._forget_session()

        self._reconnect_attempts += 1
        delay_ms = reconnect_delay_ms(self._reconnect_attempts)
        logger.info(f"Reconnecting to Discord gateway in {delay_ms}ms (attempt {self._reconnect_attempts})")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms))

    async def _reconnect_after(self, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000)
        self._reconnect_task = None
        try:
            await self._open()
        except Exception:
            logger.exception("Discord gateway reconnection failed")

    def _forget_session(self) -> None:
        self._should_resume = False
        self._session_id = None
        self._resume_url = None
        self._sequence = None

    def _signal_ready(self) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)

    def _fail_pending(self, exc: Exception) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(exc)

    # -- outbound frames --

    async def _send(self, op: Opcode, d: Any) -> None:
        if self._ws is not None:
            await self._send_to(self._ws, op, d)

    async def _send_to(self, ws: Any, op: Opcode, d: Any) -> None:
        try:
            await ws.send(json.dumps({"op": int(op), "d": d}))
        except websockets.ConnectionClosed as ex:
            logger.debug(f"Dropped gateway op={int(op)} on closed socket: {ex}")

    async def _identify(self) -> None:
        logger.debug("Sending IDENTIFY")
        await self._send(
            Opcode.IDENTIFY,
            {
                "token": self._token,
                "intents": self._intents,
                "properties": {"os": sys.platform, "browser": self._client_name, "device": self._client_name},
            },
        )

    async def _resume(self) -> None:
        logger.debug(f"Sending RESUME (session={self._session_id}, seq={self._sequence})")
        await self._send(
            Opcode.RESUME,
            {"token": self._token, "session_id": self._session_id, "seq": self._sequence},
        )

    # -- heartbeat --

    def _start_heartbeat(self, interval_ms: int) -> None:
        self._stop_heartbeat()
        self._heartbeat_interval_ms = interval_ms
        self._awaiting_ack = False
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(self._ws, interval_ms / 1000))

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat_loop(self, ws: Any, interval: float) -> None:
        jitter = interval * self._rng()
        logger.debug(f"Starting heartbeat (interval={interval:.2f}s, jitter={jitter:.2f}s)")
        await self._sleep(jitter)

        while True:
            if self._awaiting_ack:
                logger.warning("No heartbeat ACK received, closing gateway connection")
                await ws.close(LOCAL_CLOSE_CODE, "Heartbeat timeout")
                return
            logger.debug(f"Sending HEARTBEAT (seq={self._sequence})")
            await self._send_to(ws, Opcode.HEARTBEAT, self._sequence)
            self._awaiting_ack = True
            await self._sleep(interval)

    # -- inbound frames --

    async def _handle_frame(self, raw: str | bytes) -> None:
        try:
            payload = GatewayPayload.model_validate_json(raw)
            await self._handle_payload(payload)
        except (ValidationError, ValueError) as ex:
            preview = raw[:200] if isinstance(raw, str) else raw[:200].decode("utf-8", "replace")
            logger.error(f"Failed to parse gateway frame: {ex} (data={preview!r})")
            self._fail_pending(GatewayError(f"Malformed gateway frame: {ex}"))

    async def _handle_payload(self, payload: GatewayPayload) -> None:
        op = payload.op

        if op == Opcode.DISPATCH:
            await self._handle_dispatch(payload.s, payload.t, payload.d)
        elif op == Opcode.HEARTBEAT:
            await self._send(Opcode.HEARTBEAT, self._sequence)
        elif op == Opcode.RECONNECT:
            logger.info("Received RECONNECT, closing gateway connection")
            self._should_resume = True
            await self._close_socket("Reconnect requested")
        elif op == Opcode.INVALID_SESSION:
            resumable = payload.d is True
            logger.info(f"Received INVALID_SESSION (resumable={resumable})")
            if resumable:
                self._should_resume = True
            else:
                self._forget_session()
            await self._close_socket("Invalid session")
        elif op == Opcode.HELLO:
            hello = HelloData.model_validate(payload.d)
            self._start_heartbeat(hello.heartbeat_interval)
            if self._should_resume and self._session_id:
                self._state = GatewayState.RESUMING
                await self._resume()
            else:
                self._state = GatewayState.IDENTIFYING
                await self._identify()
        elif op == Opcode.HEARTBEAT_ACK:
            self._awaiting_ack = False
        else:
            logger.debug(f"Ignoring gateway op={op}")

    async def _close_socket(self, reason: str) -> None:
        if self._ws is not None:
            await self._ws.close(LOCAL_CLOSE_CODE, reason)

    async def _handle_dispatch(self, seq: int | None, event_name: str | None, data: Any) -> None:
        if seq is not None and (self._sequence is None or seq > self._sequence):
            self._sequence = seq

        if event_name == "READY":
            ready = ReadyData.model_validate(data)
            self._session_id = ready.session_id
            self._resume_url = ready.resume_gateway_url
            self._should_resume = True
            self._reconnect_attempts = 0
            self._state = GatewayState.LIVE
            logger.info(f"Discord gateway READY (session={self._session_id})")
            self._signal_ready()
        elif event_name == "RESUMED":
            self._reconnect_attempts = 0
            self._state = GatewayState.LIVE
            logger.info("Discord gateway RESUMED")
            self._signal_ready()
        elif event_name == "MESSAGE_CREATE":
            try:
                message = DiscordMessage.model_validate(data)
            except ValidationError as ex:
                logger.debug(f"Ignoring unparseable MESSAGE_CREATE: {ex}")
                return
            if message.channel_id == self._channel_id:
                logger.debug(f"MESSAGE_CREATE {message.id} in watched channel")
                self._notify(self._subscribers)
                self._notify(self._message_subscribers, message)
        elif event_name in ("MESSAGE_UPDATE", "MESSAGE_DELETE"):
            try:
                event = MessageEventData.model_validate(data)
            except ValidationError:
                return
            if event.channel_id == self._channel_id:
                logger.debug(f"{event_name} in watched channel")
                self._notify(self._subscribers)


class GatewayHandle:
    """Owns the process's single gateway client, built on first use."""

    def __init__(self, factory: Callable[[], DiscordGateway]):
        self._factory = factory
        self._gateway: DiscordGateway | None = None

    @property
    def instance(self) -> DiscordGateway | None:
        return self._gateway

    def get(self) -> DiscordGateway:
        if self._gateway is None:
            self._gateway = self._factory()
        return self._gateway

    async def subscribe(self, callback: ChangeSubscriber) -> Callable[[], None]:
        return await self.get().subscribe(callback)

    async def subscribe_to_messages(self, callback: MessageSubscriber) -> Callable[[], None]:
        return await self.get().subscribe_to_messages(callback)

    async def close(self) -> None:
        if self._gateway is not None:
            await self._gateway.close()
