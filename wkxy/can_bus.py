"""Asynchronous CAN bus access over SocketCAN with periodic and one-shot sending."""

from __future__ import annotations

import asyncio
import logging
import socket
import struct
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

CAN_MTU = 16
CANFD_MTU = 72
CAN_MAX_DLEN = 8
CANFD_MAX_DLEN = 64
CANFD_BRS = 0x01
CAN_SFF_MASK = 0x7FF
CAN_EFF_MASK = 0x1FFFFFFF
CAN_EFF_FLAG = 0x80000000

_CLASSIC = struct.Struct(f"=IB3x{CAN_MAX_DLEN}s")
_FD = struct.Struct(f"=IBB2x{CANFD_MAX_DLEN}s")

_SEND_TICK = 0.001
_RECEIVE_TICK = 0.01
_QUEUE_SIZE = 100


@dataclass
class CanMessage:
    """A CAN message; ``period_ms`` of -1 means it is sent once."""

    id: int
    data: bytes
    period_ms: int = -1
    is_fd: bool = False
    next_send_time: Optional[float] = None


def pack_frame(msg: CanMessage) -> bytes:
    """Encode a message as a SocketCAN ``can_frame`` or ``canfd_frame`` (with BRS)."""
    if not 0 <= msg.id <= CAN_SFF_MASK:
        raise ValueError(f"Invalid CAN ID 0x{msg.id:X}")
    data = bytes(msg.data)
    if msg.is_fd:
        if len(data) > CANFD_MAX_DLEN:
            raise ValueError(f"CAN FD payload of {len(data)} bytes is too long")
        return _FD.pack(msg.id, len(data), CANFD_BRS, data)
    if len(data) > CAN_MAX_DLEN:
        raise ValueError(f"CAN payload of {len(data)} bytes is too long")
    return _CLASSIC.pack(msg.id, len(data), data)


def unpack_frame(raw: bytes) -> CanMessage:
    """Decode a SocketCAN frame read from a raw socket."""
    raw = bytes(raw)
    if len(raw) == CAN_MTU:
        can_id, length, payload = _CLASSIC.unpack(raw)
        is_fd, limit = False, CAN_MAX_DLEN
    elif len(raw) == CANFD_MTU:
        can_id, length, _flags, payload = _FD.unpack(raw)
        is_fd, limit = True, CANFD_MAX_DLEN
    else:
        raise ValueError(f"unexpected CAN frame size {len(raw)}")
    if length > limit:
        raise ValueError(f"invalid CAN frame length {length}")
    mask = CAN_EFF_MASK if can_id & CAN_EFF_FLAG else CAN_SFF_MASK
    return CanMessage(id=can_id & mask, data=payload[:length], is_fd=is_fd)


class CanModule:
    """Runs a send loop and a receive loop over one non-blocking CAN socket.

    Must be created while an event loop is running.
    """

    def __init__(
        self,
        sock: socket.socket,
        *,
        on_receive: Optional[Callable[[CanMessage], None]] = None,
    ) -> None:
        sock.setblocking(False)
        self._sock = sock
        self._on_receive = on_receive
        self._periodic: dict[int, CanMessage] = {}
        self._single_shot: asyncio.Queue[CanMessage] = asyncio.Queue(_QUEUE_SIZE)
        self._stop = asyncio.Event()
        self._closed = False
        self._tasks = [
            asyncio.create_task(self._send_loop()),
            asyncio.create_task(self._receive_loop()),
        ]

    @classmethod
    def open(cls, interface: str) -> "CanModule":
        """Open a CAN FD capable raw socket on ``interface`` (e.g. ``vcan0``)."""
        sock = socket.socket(socket.PF_CAN, socket.SOCK_RAW, socket.CAN_RAW)
        try:
            sock.setsockopt(socket.SOL_CAN_RAW, socket.CAN_RAW_FD_FRAMES, 1)
            sock.bind((interface,))
        except OSError:
            sock.close()
            raise
        return cls(sock)

    async def __aenter__(self) -> "CanModule":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def add_periodic_message(self, msg: CanMessage) -> None:
        """Send ``msg`` every ``period_ms``; a non-positive period sends it once."""
        if msg.period_ms > 0:
            msg.next_send_time = time.monotonic()
            self._periodic[msg.id] = msg
        else:
            await self.send_once(msg)

    async def send_once(self, msg: CanMessage) -> None:
        """Queue ``msg`` for a single transmission."""
        if self._closed:
            raise RuntimeError("Message channel closed")
        await self._single_shot.put(msg)

    async def close(self) -> None:
        """Stop both loops and close the socket."""
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        try:
            await asyncio.gather(*self._tasks)
        finally:
            self._sock.close()

    async def _write(self, msg: CanMessage) -> None:
        frame = pack_frame(msg)
        loop = asyncio.get_running_loop()
        await loop.sock_sendall(self._sock, frame)
        logger.info("Sent: %.6f %s", time.monotonic(), msg)

    async def _send_loop(self) -> None:
        while not self._stop.is_set():
            while True:
                try:
                    msg = self._single_shot.get_nowait()
                except asyncio.QueueEmpty:
                    break
                await self._write(msg)

            now = time.monotonic()
            for msg in list(self._periodic.values()):
                due = msg.next_send_time if msg.next_send_time is not None else now
                if msg.period_ms > 0 and now >= due:
                    await self._write(msg)
                    msg.next_send_time = now + msg.period_ms / 1000
            await asyncio.sleep(_SEND_TICK)

    async def _receive_loop(self) -> None:
        while not self._stop.is_set():
            try:
                raw = self._sock.recv(CANFD_MTU)
            except BlockingIOError:
                pass
            except OSError as exc:
                logger.error("Receive error: %s", exc)
            else:
                try:
                    msg = unpack_frame(raw)
                except ValueError as exc:
                    logger.error("Receive error: %s", exc)
                else:
                    logger.info("Received: %s", msg)
                    if self._on_receive is not None:
                        self._on_receive(msg)
            await asyncio.sleep(_RECEIVE_TICK)