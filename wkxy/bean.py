"""Data model of a CAN communication matrix and bit-level frame coding.

Bit positions count from the most significant bit of the first byte, and
every signal is read and written as an unsigned big-endian bit field.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from typing import Any, Iterable, Mapping, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

_T = TypeVar("_T")
_U64_MAX = 2**64 - 1
_I32_MAX = 2**31 - 1


def bytes_to_bits(data: bytes) -> str:
    """Return ``data`` as a string of '0'/'1' characters, eight per byte."""
    return "".join(f"{byte:08b}" for byte in data)


def _require(value: Optional[_T], what: str) -> _T:
    if value is None:
        raise ValueError(f"missing {what}")
    return value


def _known_fields(cls: type, data: Mapping[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


def _to_unsigned(value: float) -> int:
    """Convert a float to an unsigned 64-bit integer, truncating and saturating."""
    if math.isnan(value) or value <= 0:
        return 0
    if value >= _U64_MAX:
        return _U64_MAX
    return int(value)


def _read_signals(signals: Iterable["Signal"], bits: str) -> Optional[dict[str, float]]:
    """Extract every signal from ``bits``; None when one lies outside them."""
    decoded: dict[str, float] = {}
    for signal in signals:
        start = _require(signal.start_bit, "signal start_bit")
        size = _require(signal.size, "signal size")
        if start < 0 or size < 0 or start + size > len(bits):
            return None
        chunk = bits[start : start + size]
        if any(ch not in "01" for ch in chunk):
            return None
        if not chunk:
            raise ValueError(f"signal {signal.name!r} has zero width")
        value = int(chunk, 2)
        if value > _I32_MAX:
            raise ValueError(f"signal {signal.name!r} value does not fit in 32 bits")
        decoded[_require(signal.name, "signal name")] = float(value)
    return decoded


def _write_signal(buffer: list[str], signal: "Signal", value: float, label: str) -> None:
    start = _require(signal.start_bit, "signal start_bit")
    size = _require(signal.size, "signal size")
    if start < 0 or size < 0 or start + size > len(buffer):
        logger.warning("Signal %s out of bounds", label)
        return
    bin_str = format(_to_unsigned(value), f"0{size}b")
    for offset, ch in enumerate(bin_str):
        if start + offset < len(buffer):
            buffer[start + offset] = ch


def _pack_bits(buffer: Sequence[str]) -> bytes:
    bits = "".join(buffer)
    if not bits:
        return b""
    return int(bits, 2).to_bytes(len(bits) // 8, "big")


@dataclass
class Signal:
    """A signal placed at a bit position inside a frame or PDU."""

    name: Optional[str] = None
    start_bit: Optional[int] = None
    size: Optional[int] = None
    is_little_endian: Optional[bool] = None
    is_ascii: Optional[bool] = None
    is_float: Optional[bool] = None
    is_multiplexer: Optional[bool] = None
    max: Optional[int] = None
    min: Optional[int] = None
    initial_value: Optional[int] = None
    values: Optional[dict[str, str]] = None
    cycle_time: Optional[int] = None
    comment: Optional[str] = None
    comments: Optional[dict[str, str]] = None
    offset: Optional[int] = None
    factor: Optional[int] = None
    unit: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Signal":
        """Build a signal from its JSON object, ignoring unknown keys."""
        return cls(**_known_fields(cls, data))


@dataclass
class Pdu:
    """A protocol data unit carried inside a container frame."""

    name: Optional[str] = None
    cycle_time: Optional[int] = None
    id: Optional[int] = None
    size: Optional[int] = None
    triggering_name: Optional[str] = None
    pdu_type: Optional[str] = None
    port_type: Optional[str] = None
    signals: Optional[list[Signal]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Pdu":
        """Build a PDU from its JSON object, ignoring unknown keys."""
        kwargs = _known_fields(cls, data)
        if kwargs.get("signals") is not None:
            kwargs["signals"] = [Signal.from_dict(s) for s in kwargs["signals"]]
        return cls(**kwargs)


@dataclass
class Frame:
    """A CAN frame, either holding signals directly or a container of PDUs."""

    name: Optional[str] = None
    id: Optional[int] = None
    extended: Optional[bool] = None
    length: Optional[int] = None
    cycle_time: Optional[int] = None
    is_fd: Optional[bool] = None
    is_multiplexed: Optional[bool] = None
    is_pdu_container: Optional[bool] = None
    is_j1939: Optional[bool] = None
    pdu_name: Optional[str] = None
    pdus: Optional[list[Pdu]] = None
    signals: Optional[list[Signal]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Frame":
        """Build a frame from its JSON object, ignoring unknown keys."""
        kwargs = _known_fields(cls, data)
        if kwargs.get("pdus") is not None:
            kwargs["pdus"] = [Pdu.from_dict(p) for p in kwargs["pdus"]]
        if kwargs.get("signals") is not None:
            kwargs["signals"] = [Signal.from_dict(s) for s in kwargs["signals"]]
        return cls(**kwargs)

    def decode(self, data: bytes) -> Optional[dict[str, float]]:
        """Decode a payload into signal values.

        Returns None when a plain frame's signal lies beyond the payload, and
        an empty mapping when a container's PDU is truncated.
        """
        data = bytes(data)
        if self.is_pdu_container is None:
            return {}
        if self.is_pdu_container:
            return self._decode_container(data)
        values: dict[str, float] = {}
        if self.signals is not None:
            decoded = _read_signals(self.signals, bytes_to_bits(data))
            if decoded is None:
                return None
            values.update(decoded)
        return values

    def _decode_container(self, data: bytes) -> dict[str, float]:
        values: dict[str, float] = {}
        index = 0
        while index + 4 <= len(data):
            pdu_id = int.from_bytes(data[index : index + 3], "big")
            pdu_size = data[index + 3]
            index += 4
            if index + pdu_size > len(data):
                return {}
            payload = data[index : index + pdu_size]
            decoded = self.unpack_pdu(pdu_id, bytes_to_bits(payload))
            if decoded is None:
                raise ValueError(f"cannot decode PDU 0x{pdu_id:06X}")
            values.update(decoded)
            index += pdu_size
        return values

    def unpack_pdu(self, pdu_id: int, bits: str) -> Optional[dict[str, float]]:
        """Decode the bit string of one PDU; None if the PDU is unknown or too short."""
        if self.pdus is None:
            return {}
        pdu = next((p for p in self.pdus if p.id == pdu_id), None)
        if pdu is None:
            return None
        if pdu.signals is None:
            return {}
        return _read_signals(pdu.signals, bits)

    def encode(self, values: Mapping[str, float]) -> Optional[bytes]:
        """Encode signal values into a payload; None if the frame kind is unknown."""
        if self.is_pdu_container is None:
            return None
        if self.is_pdu_container:
            return self._encode_container(values)

        length = _require(self.length, "frame length")
        buffer = ["0"] * (length * 8)
        for signal in _require(self.signals, "frame signals"):
            name = _require(signal.name, "signal name")
            if name not in values:
                continue
            _write_signal(buffer, signal, values[name], name)
        return _pack_bits(buffer)

    def _encode_container(self, values: Mapping[str, float]) -> bytes:
        targets: dict[int, list[tuple[str, float]]] = {}
        pdus = _require(self.pdus, "frame pdus")
        for signal_name, value in values.items():
            for pdu in pdus:
                for pdu_signal in _require(pdu.signals, "pdu signals"):
                    if _require(pdu_signal.name, "signal name") == signal_name:
                        targets.setdefault(_require(pdu.id, "pdu id"), []).append(
                            (signal_name, value)
                        )
        out = bytearray()
        for pdu_id, signals in targets.items():
            pdu = self.pdu_by_id(pdu_id)
            if pdu is not None:
                out += self.encode_pdu_signals(pdu, signals)
        return bytes(out)

    def encode_pdu_signals(self, pdu: Pdu, signals: Iterable[tuple[str, float]]) -> bytes:
        """Encode one PDU as a 3-byte id, a 1-byte size and its payload."""
        size = _require(pdu.size, "pdu size")
        pdu_id = _require(pdu.id, "pdu id")
        header = (pdu_id & 0xFFFFFF).to_bytes(3, "big") + bytes([size & 0xFF])
        buffer = ["0"] * (size * 8)
        for signal_name, value in signals:
            signal = next(
                (s for s in pdu.signals or () if s.name == signal_name), None
            )
            if signal is not None:
                _write_signal(buffer, signal, value, signal_name)
        return header + _pack_bits(buffer)

    def pdu_by_id(self, pdu_id: int) -> Optional[Pdu]:
        """Return the PDU with the given id, or None."""
        for pdu in _require(self.pdus, "frame pdus"):
            if _require(pdu.id, "pdu id") == pdu_id:
                return pdu
        return None


@dataclass
class Cluster:
    """A named bus with its frames, indexed by id and by name."""

    name: str
    frames: list[Frame] = field(default_factory=list)
    signals: list[Signal] = field(init=False, default_factory=list)
    frame_by_id: dict[int, Frame] = field(init=False, default_factory=dict)
    frames_by_name: dict[str, Frame] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        for frame in self.frames:
            if frame.id is not None:
                self.frame_by_id[frame.id] = frame
            if frame.name is not None:
                self.frames_by_name[frame.name] = frame
            signals = _require(frame.signals, f"signals of frame {frame.name!r}")
            self.signals.extend(signals)


@dataclass
class Root:
    """Top-level document: cluster names mapped to their frames."""

    clusters: Optional[dict[str, list[Frame]]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Root":
        """Build the document from its JSON object."""
        clusters = data.get("clusters")
        if clusters is None:
            return cls()
        return cls(
            clusters={
                name: [Frame.from_dict(f) for f in frames]
                for name, frames in clusters.items()
            }
        )