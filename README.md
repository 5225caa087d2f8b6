# wkxy

wkxy works with CAN and CAN FD signal matrices. It loads a JSON description of clusters, frames, PDUs and signals. With that description it can:

- encode signal values into a frame payload;
- decode a frame payload back into signal values;
- send frames on a Linux SocketCAN interface, once or on a fixed period.

The library has no dependencies beyond the standard library. Sending needs Linux, because it uses `socket.PF_CAN`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Matrix format

The matrix is a JSON object. Each key is a cluster name, and each value is a list of frames:

```json
{
  "ADCANFD": [
    {
      "name": "HADS_NM",
      "id": 1234,
      "length": 8,
      "cycle_time": 100,
      "is_fd": true,
      "is_pdu_container": false,
      "signals": [
        {"name": "isHADS_NM_BSMtoRMS", "start_bit": 0, "size": 1},
        {"name": "isHADS_NM_RSStoRMS", "start_bit": 1, "size": 1}
      ]
    }
  ]
}
```

Frame, PDU and signal objects use the field names of the dataclasses `Frame`, `Pdu` and `Signal` in `wkxy.bean`. Keys the dataclasses do not know are ignored.

Every frame in a cluster must have a `signals` list. If one does not, building the `Cluster` raises `ValueError`.

### Bit layout

- Bit positions count from the most significant bit of the first byte.
- Every signal is read and written as an unsigned big-endian bit field.
- The fields `is_little_endian`, `factor`, `offset`, `is_float` and `is_ascii` are stored but not applied when encoding or decoding.

When encoding:

- Values are truncated to integers.
- Negative values become 0.
- A signal that does not fit in the buffer is skipped, and a warning is logged.

When decoding, values come back as floats.

### PDU containers

A frame with `"is_pdu_container": true` carries PDUs. Each PDU is written as:

1. a 3-byte big-endian PDU id;
2. a 1-byte size;
3. the payload.

Decoding a container behaves as follows:

- It walks these records in order.
- If a record is truncated, it returns an empty mapping.
- If a PDU id is not defined on the frame, it raises `ValueError`.

When encoding a container, only the PDUs that hold at least one of the given signals are emitted.

## Library use

```python
from wkxy.matrix import CanMatrix

matrix = CanMatrix()
matrix.load_from_arxml("resource/output.json")  # a JSON matrix file

message = matrix.get_message_by_signals("ADCANFD", 0x4D2, {"isHADS_NM_BSMtoRMS": 1.0})
values = matrix.get_signals_by_message("ADCANFD", 0x4D2, message.data)
```

### `CanMatrix.get_message_by_signals`

This method returns a `wkxy.can_bus.CanMessage`. The message's payload is padded with zero bytes up to the frame length. Its `period_ms` is taken from the frame's `cycle_time`.

Special cases:

- It returns `None` if the frame has no `is_fd` flag.
- It raises `KeyError` for an unknown cluster or frame id.
- It raises `ValueError` if the frame has no length, no cycle time, or no `is_pdu_container` flag.

### `CanMatrix.get_signals_by_message`

This method returns a dict of signal name to value. It returns `None` when a signal of a plain frame lies beyond the payload.

### Lower-level pieces

`wkxy.bean.Frame` offers these methods directly: `decode`, `encode`, `unpack_pdu`, `encode_pdu_signals` and `pdu_by_id`.

`wkxy.bean.bytes_to_bits` turns bytes into a string of `0`/`1` characters.

### Sending

`wkxy.can_bus.CanModule` runs a send loop and a receive loop over one non-blocking raw socket. It must be created inside a running event loop:

```python
import asyncio
from wkxy.can_bus import CanMessage, CanModule

async def demo():
    async with CanModule.open("vcan0") as can:
        await can.add_periodic_message(CanMessage(id=0x123, data=b"\x01\x02", period_ms=100))
        await can.send_once(CanMessage(id=0x201, data=b"\xff", is_fd=True))
        await asyncio.sleep(1)

asyncio.run(demo())
```

Notes on sending:

- `add_periodic_message` sends a message with a positive `period_ms` every period. If the new message has the same id as a scheduled one, it replaces that one. A message whose period is not positive is sent once.
- `send_once` queues a single frame. Calling it after the module is closed raises `RuntimeError`.
- `close`, which is also called on leaving the `async with` block, stops both loops and closes the socket.
- Only standard 11-bit ids are sent.
- CAN FD frames are sent with bit-rate switching.

### Receiving and frame packing

Received frames are logged with `logging`. To get them as `CanMessage` objects, construct `CanModule(sock, on_receive=callback)` with a socket you opened yourself.

`pack_frame` and `unpack_frame` convert between a `CanMessage` and the SocketCAN `can_frame` / `canfd_frame` byte layout.

## Command line

```
wkxy
```

The command does the following:

1. Loads `./resource/output.json`.
2. Opens `vcan0`.
3. Sends frame `0x4D2` of cluster `ADCANFD` every 100 ms, with the signals `isHADS_NM_BSMtoRMS`, `isHADS_NM_RSStoRMS` and `isHADS_NM_NOSSta` set to 1.
4. Sends one single-shot CAN FD frame with id `0x201` and payload `ff`.
5. Stops after ten seconds.

Options:

- `--matrix PATH`: the JSON matrix file.
- `--interface NAME`: the CAN interface.
- `--duration SECONDS`: how long to run.

## What it does not do

- wkxy does not read ARXML files. `CanMatrix.load_from_arxml` expects the JSON matrix described above.
- `wkxy.matrix.parse_arxml` only runs an external `arxmlparse -l -a` program, which is not part of this package. It prints that program's exit status and output and returns the completed process. It does not pass it the file or load its result.
- There is no scaling of raw values to physical units.
- There is no multiplexing support.
- There is no processing of received frames beyond logging them or passing them to the `on_receive` callback.