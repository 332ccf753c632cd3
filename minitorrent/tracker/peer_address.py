import socket
import struct
from typing import NamedTuple
from minitorrent.common.errors import TrackerError

COMPACT_PEER_LENGTH = 6


class PeerAddress(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, text: str) -> "PeerAddress":
        host, sep, port = text.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Peer address must look like 'ip:port', got {text!r}")
        port_num = int(port)
        if not 0 < port_num < 65536:
            raise ValueError(f"Peer port out of range: {port_num}")
        return cls(host, port_num)

    @classmethod
    def from_compact(cls, data: bytes) -> "PeerAddress":
        ip = socket.inet_ntoa(data[:4])
        (port,) = struct.unpack(">H", data[4:6])
        return cls(ip, port)

    def to_compact(self) -> bytes:
        return socket.inet_aton(self.host) + struct.pack(">H", self.port)


def parse_compact_peers(data: bytes) -> list[PeerAddress]:
    if len(data) % COMPACT_PEER_LENGTH:
        raise TrackerError(
            f"Compact peer list length {len(data)} is not a multiple of {COMPACT_PEER_LENGTH}"
        )
    return [
        PeerAddress.from_compact(data[i : i + COMPACT_PEER_LENGTH])
        for i in range(0, len(data), COMPACT_PEER_LENGTH)
    ]
