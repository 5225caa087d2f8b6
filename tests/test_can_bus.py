import asyncio
import socket

import pytest

from wkxy.can_bus import (
    CAN_MTU,
    CANFD_BRS,
    CANFD_MTU,
    CanMessage,
    CanModule,
    pack_frame,
    unpack_frame,
)


def test_classic_frame_size_and_round_trip():
    msg = CanMessage(id=0x123, data=b"\x01\x02\x03")
    raw = pack_frame(msg)
    assert len(raw) == CAN_MTU
    back = unpack_frame(raw)
    assert (back.id, back.data, back.is_fd) == (0x123, b"\x01\x02\x03", False)


def test_fd_frame_size_flags_and_round_trip():
    msg = CanMessage(id=0x201, data=b"\xff", is_fd=True)
    raw = pack_frame(msg)
    assert len(raw) == CANFD_MTU
    assert raw[5] == CANFD_BRS
    assert raw[4] == 1
    back = unpack_frame(raw)
    assert (back.id, back.data, back.is_fd) == (0x201, b"\xff", True)


def test_fd_frame_carries_64_bytes():
    data = bytes(range(64))
    assert unpack_frame(pack_frame(CanMessage(id=1, data=data, is_fd=True))).data == data


def test_invalid_id_rejected():
    with pytest.raises(ValueError):
        pack_frame(CanMessage(id=0x800, data=b""))


def test_classic_payload_too_long():
    with pytest.raises(ValueError):
        pack_frame(CanMessage(id=1, data=bytes(9)))


def test_fd_payload_too_long():
    with pytest.raises(ValueError):
        pack_frame(CanMessage(id=1, data=bytes(65), is_fd=True))


def test_unpack_bad_size():
    with pytest.raises(ValueError):
        unpack_frame(b"\x00" * 10)


def _pair():
    a, b = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    b.setblocking(False)
    return a, b


async def _recv(peer):
    loop = asyncio.get_running_loop()
    return await asyncio.wait_for(loop.sock_recv(peer, CANFD_MTU), timeout=2)


@pytest.mark.asyncio
async def test_send_once_writes_frame():
    mine, peer = _pair()
    module = CanModule(mine)
    try:
        await module.send_once(CanMessage(id=0x201, data=b"\xff", is_fd=True))
        msg = unpack_frame(await _recv(peer))
        assert (msg.id, msg.data, msg.is_fd) == (0x201, b"\xff", True)
    finally:
        await module.close()
        peer.close()


@pytest.mark.asyncio
async def test_periodic_message_repeats():
    mine, peer = _pair()
    module = CanModule(mine)
    try:
        await module.add_periodic_message(
            CanMessage(id=0x4D2, data=b"\x80\x00", period_ms=10)
        )
        frames = [unpack_frame(await _recv(peer)) for _ in range(3)]
        assert all(f.id == 0x4D2 and f.data == b"\x80\x00" for f in frames)
    finally:
        await module.close()
        peer.close()


@pytest.mark.asyncio
async def test_non_positive_period_sends_once():
    mine, peer = _pair()
    module = CanModule(mine)
    try:
        await module.add_periodic_message(CanMessage(id=0x10, data=b"\x01", period_ms=-1))
        first = unpack_frame(await _recv(peer))
        assert first.id == 0x10
        with pytest.raises(asyncio.TimeoutError):
            loop = asyncio.get_running_loop()
            await asyncio.wait_for(loop.sock_recv(peer, CANFD_MTU), timeout=0.1)
    finally:
        await module.close()
        peer.close()


@pytest.mark.asyncio
async def test_receive_invokes_callback():
    mine, peer = _pair()
    received = []
    module = CanModule(mine, on_receive=received.append)
    try:
        peer.send(pack_frame(CanMessage(id=0x55, data=b"\x0a\x0b")))
        for _ in range(200):
            if received:
                break
            await asyncio.sleep(0.01)
        assert [(m.id, m.data) for m in received] == [(0x55, b"\x0a\x0b")]
    finally:
        await module.close()
        peer.close()


@pytest.mark.asyncio
async def test_send_after_close_raises():
    mine, peer = _pair()
    module = CanModule(mine)
    await module.close()
    peer.close()
    with pytest.raises(RuntimeError):
        await module.send_once(CanMessage(id=1, data=b""))