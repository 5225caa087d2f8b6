import json
import subprocess
from unittest import mock

import pytest

from wkxy.matrix import CanMatrix, parse_arxml


def _sig(name, start, size):
    return {"name": name, "start_bit": start, "size": size}


DOCUMENT = {
    "ADCANFD": [
        {
            "name": "Plain",
            "id": 0x4D2,
            "length": 8,
            "cycle_time": 100,
            "is_fd": True,
            "is_pdu_container": False,
            "signals": [_sig("a", 0, 1), _sig("b", 1, 1), _sig("c", 8, 8)],
        },
        {
            "name": "Container",
            "id": 0x300,
            "length": 16,
            "cycle_time": 20,
            "is_fd": True,
            "is_pdu_container": True,
            "signals": [],
            "pdus": [{"name": "P5", "id": 5, "size": 2, "signals": [_sig("x", 0, 8)]}],
        },
        {
            "name": "NoFd",
            "id": 0x10,
            "length": 8,
            "cycle_time": 50,
            "is_pdu_container": False,
            "signals": [_sig("y", 0, 8)],
        },
    ]
}


@pytest.fixture
def matrix(tmp_path):
    path = tmp_path / "output.json"
    path.write_text(json.dumps(DOCUMENT), encoding="utf-8")
    m = CanMatrix()
    m.load_from_arxml(path)
    return m


def test_load_indexes_clusters(matrix):
    assert list(matrix.clusters) == ["ADCANFD"]
    assert sorted(matrix.clusters["ADCANFD"].frame_by_id) == [0x10, 0x300, 0x4D2]


def test_message_from_signals(matrix):
    msg = matrix.get_message_by_signals("ADCANFD", 0x4D2, {"a": 1.0, "c": 7.0})
    assert msg.id == 0x4D2
    assert msg.period_ms == 100
    assert msg.is_fd is True
    assert len(msg.data) == 8
    assert msg.data[0] == 0x80


def test_signals_round_trip(matrix):
    values = {"a": 1.0, "b": 0.0, "c": 200.0}
    msg = matrix.get_message_by_signals("ADCANFD", 0x4D2, values)
    assert matrix.get_signals_by_message("ADCANFD", 0x4D2, msg.data) == values


def test_container_padded_to_length(matrix):
    msg = matrix.get_message_by_signals("ADCANFD", 0x300, {"x": 3.0})
    assert len(msg.data) == 16
    assert msg.data[6:] == bytes(10)
    assert matrix.get_signals_by_message("ADCANFD", 0x300, msg.data[:6]) == {"x": 3.0}


def test_unknown_fd_flag_gives_none(matrix):
    assert matrix.get_message_by_signals("ADCANFD", 0x10, {"y": 1.0}) is None


def test_unknown_cluster_raises(matrix):
    with pytest.raises(KeyError):
        matrix.get_message_by_signals("OTHER", 0x4D2, {})


def test_unknown_frame_raises(matrix):
    with pytest.raises(KeyError):
        matrix.get_signals_by_message("ADCANFD", 0x999, b"")


def test_load_rejects_non_object(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        CanMatrix().load_from_arxml(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        CanMatrix().load_from_arxml(tmp_path / "missing.json")


def test_parse_arxml_runs_tool(capsys):
    done = subprocess.CompletedProcess(
        ["arxmlparse", "-l", "-a"], 0, stdout=b"listing", stderr=b""
    )
    with mock.patch("wkxy.matrix.subprocess.run", return_value=done) as run:
        result = parse_arxml("input.arxml")
    assert run.call_args.args[0] == ["arxmlparse", "-l", "-a"]
    assert result.returncode == 0
    assert "listing" in capsys.readouterr().out