"""A communication matrix of clusters, loaded from JSON, for building and reading messages."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

from wkxy.bean import Cluster, Frame, Signal
from wkxy.can_bus import CanMessage


@dataclass
class CanMatrix:
    """Clusters by name, each indexing its frames by id."""

    clusters: dict[str, Cluster] = field(default_factory=dict)
    signals: list[Signal] = field(default_factory=list)

    def _frame(self, cluster_name: str, frame_id: int) -> Frame:
        cluster = self.clusters[cluster_name]
        return cluster.frame_by_id[frame_id]

    def get_message_by_signals(
        self, cluster_name: str, frame_id: int, signals: Mapping[str, float]
    ) -> Optional[CanMessage]:
        """Encode signal values into a message for the frame; None if its FD flag is unknown.

        Raises KeyError for an unknown cluster or frame.
        """
        frame = self._frame(cluster_name, frame_id)
        data = frame.encode(signals)
        if data is None:
            raise ValueError(f"frame 0x{frame_id:X} cannot be encoded")
        if frame.length is None:
            raise ValueError(f"frame 0x{frame_id:X} has no length")
        data = data.ljust(frame.length, b"\x00")
        if frame.cycle_time is None:
            raise ValueError(f"frame 0x{frame_id:X} has no cycle time")
        if frame.is_fd is None:
            return None
        return CanMessage(
            id=frame_id,
            data=data,
            period_ms=frame.cycle_time,
            is_fd=frame.is_fd,
        )

    def get_signals_by_message(
        self, cluster_name: str, frame_id: int, data: bytes
    ) -> Optional[dict[str, float]]:
        """Decode a payload of the frame into signal values."""
        return self._frame(cluster_name, frame_id).decode(data)

    def load_from_arxml(self, path: Union[str, Path]) -> None:
        """Replace the clusters with those of a JSON file mapping cluster names to frames."""
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError("matrix document must be an object of clusters")
        clusters: dict[str, Cluster] = {}
        for name, frames in document.items():
            if not isinstance(frames, list):
                raise ValueError(f"cluster {name!r} must hold a list of frames")
            clusters[name] = Cluster(name, [Frame.from_dict(f) for f in frames])
        self.clusters = clusters


def parse_arxml(arxml_file: Union[str, Path]) -> subprocess.CompletedProcess:
    """Run the external ``arxmlparse -l -a`` tool and print its status and output."""
    result = subprocess.run(
        ["arxmlparse", "-l", "-a"], capture_output=True, check=False
    )
    print(f"status: {result.returncode}")
    print(f"stdout:\n{result.stdout.decode('utf-8', errors='replace')}")
    print(f"stderr:\n{result.stderr.decode('utf-8', errors='replace')}")
    return result