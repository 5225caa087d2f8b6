"""Command that loads a matrix and drives a demonstration message schedule on a CAN bus."""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional, Sequence

from wkxy.can_bus import CanMessage, CanModule
from wkxy.matrix import CanMatrix

DEFAULT_MATRIX = "./resource/output.json"
DEFAULT_INTERFACE = "vcan0"
DEFAULT_DURATION = 10.0

CLUSTER = "ADCANFD"
FRAME_ID = 0x4D2
FRAME_SIGNALS = {
    "isHADS_NM_BSMtoRMS": 1.0,
    "isHADS_NM_RSStoRMS": 1.0,
    "isHADS_NM_NOSSta": 1.0,
}
PERIOD_MS = 100


async def run(can_matrix: CanMatrix, interface: str, duration: float) -> None:
    """Send one frame periodically and one single message, then stop after ``duration`` seconds."""
    message = can_matrix.get_message_by_signals(CLUSTER, FRAME_ID, FRAME_SIGNALS)
    print(f"message: {message}")
    async with CanModule.open(interface) as can:
        if message is not None:
            message.period_ms = PERIOD_MS
            await can.add_periodic_message(message)
        await can.send_once(CanMessage(id=0x201, data=b"\xff", period_ms=-1, is_fd=True))
        await asyncio.sleep(duration)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--matrix", default=DEFAULT_MATRIX, help="JSON matrix file")
    parser.add_argument("--interface", default=DEFAULT_INTERFACE, help="CAN interface")
    parser.add_argument(
        "--duration", type=float, default=DEFAULT_DURATION, help="seconds to run"
    )
    args = parser.parse_args(argv)

    can_matrix = CanMatrix()
    can_matrix.load_from_arxml(args.matrix)
    asyncio.run(run(can_matrix, args.interface, args.duration))
    return 0