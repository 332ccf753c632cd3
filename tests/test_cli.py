import json
import socket
import pytest
import main
from minitorrent.peer.message import pack_handshake
from minitorrent.torrent.parser import load
from minitorrent.tracker.peer_address import PeerAddress
from minitorrent.tracker.tracker_client import TrackerClient
from conftest import REMOTE_PEER_ID, FakeSocket, make_torrent, peer_preamble, serve_piece


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    monkeypatch.setattr(main, "config_logging", lambda *args, **kwargs: None)


@pytest.fixture
def torrent_path(tmp_path, content):
    path = tmp_path / "sample.torrent"
    path.write_bytes(make_torrent(content, 32768))
    return path


@pytest.mark.parametrize(
    "value, expected",
    [
        ("5:hello", "hello"),
        ("i52e", 52),
        ("l4:spam4:eggse", ["spam", "eggs"]),
        ("d3:cow3:moo4:spam4:eggse", {"cow": "moo", "spam": "eggs"}),
    ],
)
def test_decode_command(capsys, value, expected):
    assert main.main(["decode", value]) == 0
    assert json.loads(capsys.readouterr().out) == expected


def test_decode_renders_binary_as_hex():
    assert main.to_json_compatible(b"\xff\x00") == "ff00"


def test_decode_command_reports_malformed_input(capsys):
    assert main.main(["decode", "l4:spam"]) == 1
    assert "Unterminated list" in capsys.readouterr().err


def test_info_command(capsys, torrent_path, metadata):
    assert main.main(["info", str(torrent_path)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Tracker URL: http://tracker.example/announce"
    assert out[1] == "Length: 76800"
    assert out[2] == f"Info Hash: {metadata.info_hash.hex()}"
    assert out[3] == "Piece Length: 32768"
    assert out[4] == "Piece Hashes:"
    assert out[5:] == [piece.hex() for piece in metadata.pieces]


def test_peers_command(capsys, monkeypatch, torrent_path):
    peers = [PeerAddress("127.0.0.1", 6881), PeerAddress("10.0.0.2", 51413)]
    monkeypatch.setattr(TrackerClient, "announce", lambda self, metadata, info_hash=None: peers)
    assert main.main(["peers", str(torrent_path)]) == 0
    assert capsys.readouterr().out.splitlines() == ["127.0.0.1:6881", "10.0.0.2:51413"]


def test_missing_torrent_file(capsys, tmp_path):
    assert main.main(["info", str(tmp_path / "missing.torrent")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_invalid_peer_address(capsys, torrent_path):
    assert main.main(["handshake", str(torrent_path), "not-an-address"]) == 1
    assert "ip:port" in capsys.readouterr().err


def test_subcommand_is_required():
    with pytest.raises(SystemExit):
        main.main([])


def test_decode_command_rejects_trailing_data(capsys):
    assert main.main(["decode", "i1ei2e"]) == 1
    assert "Trailing data" in capsys.readouterr().err


def test_decode_command_rejects_deep_nesting(capsys):
    assert main.main(["decode", "l" * 5000 + "e" * 5000]) == 1
    assert "Nesting too deep" in capsys.readouterr().err


@pytest.fixture
def peer(monkeypatch):
    """Serve outgoing peer connections from a FakeSocket; the tracker returns one peer."""
    sock = FakeSocket()
    connected = []

    def create_connection(address, timeout=None):
        connected.append(address)
        return sock

    monkeypatch.setattr(socket, "create_connection", create_connection)
    monkeypatch.setattr(
        TrackerClient, "announce",
        lambda self, metadata, info_hash=None: [PeerAddress("127.0.0.1", 6881)],
    )
    sock.connected = connected
    return sock


def test_handshake_command(capsys, torrent_path, metadata, peer):
    peer.inbound += pack_handshake(metadata.info_hash, REMOTE_PEER_ID)
    assert main.main(["handshake", str(torrent_path), "10.0.0.7:51413"]) == 0
    assert capsys.readouterr().out.strip() == f"Peer ID: {REMOTE_PEER_ID.hex()}"
    assert peer.connected == [("10.0.0.7", 51413)]


def test_download_piece_command(capsys, tmp_path, torrent_path, content, metadata, peer):
    peer.inbound += peer_preamble(metadata.info_hash) + serve_piece(content, 32768, 1)
    output = tmp_path / "piece-1"

    assert main.main(["download_piece", "-o", str(output), str(torrent_path), "1"]) == 0
    assert output.read_bytes() == content[32768:65536]
    assert "Piece 1 downloaded" in capsys.readouterr().out


def test_download_piece_command_with_bad_index(capsys, tmp_path, torrent_path, peer):
    assert main.main(["download_piece", "-o", str(tmp_path / "p"), str(torrent_path), "9"]) == 1
    assert "out of range" in capsys.readouterr().err
    assert peer.connected == []


def test_download_command(capsys, tmp_path, torrent_path, content, metadata, peer):
    peer.inbound += peer_preamble(metadata.info_hash) + b"".join(
        serve_piece(content, 32768, index) for index in range(3)
    )
    output = tmp_path / "sample.bin"

    assert main.main(["download", "-o", str(output), str(torrent_path)]) == 0
    assert output.read_bytes() == content
    assert load(torrent_path.read_bytes()).name in capsys.readouterr().out


def test_download_command_fails_on_corrupt_piece(capsys, tmp_path, torrent_path, content, metadata, peer):
    corrupt = bytes(len(content))
    peer.inbound += peer_preamble(metadata.info_hash) + serve_piece(corrupt, 32768, 0)
    output = tmp_path / "sample.bin"

    assert main.main(["download", "-o", str(output), str(torrent_path)]) == 1
    assert "failed verification" in capsys.readouterr().err
    assert not output.exists()
