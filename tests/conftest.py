import hashlib
import struct
import pytest
from minitorrent.bencode.codec import encode
from minitorrent.common.config import ClientConfig
from minitorrent.peer.message import pack_handshake
from minitorrent.torrent.parser import load

PEER_ID = b"-MT0001-123456789012"
REMOTE_PEER_ID = b"-RP0001-abcdefghijkl"


class FakeSocket:
    """In-memory socket: replays scripted inbound bytes and records outbound bytes."""

    def __init__(self, inbound: bytes = b"", chunk_size: int | None = None):
        self.inbound = bytearray(inbound)
        self.sent = bytearray()
        self.chunk_size = chunk_size
        self.closed = False

    def recv(self, n: int) -> bytes:
        if self.chunk_size is not None:
            n = min(n, self.chunk_size)
        data = bytes(self.inbound[:n])
        del self.inbound[:n]
        return data

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("socket closed")
        self.sent += data

    def close(self) -> None:
        self.closed = True


def frame(msg_id: int, payload: bytes = b"") -> bytes:
    return struct.pack("!IB", len(payload) + 1, msg_id) + payload


def piece_frame(index: int, offset: int, block: bytes) -> bytes:
    return frame(7, struct.pack("!II", index, offset) + block)


def split_requests(sent: bytes) -> list[tuple[int, int, int]]:
    """Parse every Request frame out of recorded outbound bytes."""
    requests = []
    pos = 0
    while pos < len(sent):
        (length,) = struct.unpack_from("!I", sent, pos)
        msg_id = sent[pos + 4]
        if msg_id == 6:
            requests.append(struct.unpack_from("!III", sent, pos + 5))
        pos += 4 + length
    return requests


def torrent_dict(content: bytes, piece_length: int, **extra_info) -> dict:
    pieces = b"".join(
        hashlib.sha1(content[i : i + piece_length]).digest()
        for i in range(0, len(content), piece_length)
    )
    info = {
        b"length": len(content),
        b"name": b"sample.bin",
        b"piece length": piece_length,
        b"pieces": pieces,
    }
    info.update(extra_info)
    return {b"announce": b"http://tracker.example/announce", b"info": info}


def make_torrent(content: bytes, piece_length: int, **extra_info) -> bytes:
    return encode(torrent_dict(content, piece_length, **extra_info))


def serve_piece(content: bytes, piece_length: int, index: int, block_size: int = 16384) -> bytes:
    """Inbound bytes a cooperative peer sends for every block of one piece."""
    start = index * piece_length
    data = content[start : start + piece_length]
    return b"".join(
        piece_frame(index, offset, data[offset : offset + block_size])
        for offset in range(0, len(data), block_size)
    )


def peer_preamble(info_hash: bytes, bitfield: bytes = b"\xff") -> bytes:
    """Handshake reply, bitfield and unchoke as sent by a cooperative peer."""
    return pack_handshake(info_hash, REMOTE_PEER_ID) + frame(5, bitfield) + frame(1)


@pytest.fixture
def config():
    return ClientConfig(peer_id=PEER_ID, port=6881)


@pytest.fixture
def content():
    # two full pieces of 32 KiB and a short final piece
    return bytes(range(256)) * 300


@pytest.fixture
def metadata(content):
    return load(make_torrent(content, 32768))
