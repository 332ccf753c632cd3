import struct
from enum import IntEnum

PROTOCOL_STRING = b"BitTorrent protocol"
HANDSHAKE_LENGTH = 68
HANDSHAKE_FORMAT = "!B19s8s20s20s"
RESERVED = b"\x00" * 8


class MessageId(IntEnum):
    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    # Named so they can be reported; the engine never sends or waits for them
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    PIECE = 7
    CANCEL = 8


def message_name(msg_id: int | None) -> str:
    if msg_id is None:
        return "KeepAlive"
    try:
        return MessageId(msg_id).name
    except ValueError:
        return f"Unknown({msg_id})"


class PeerMessage:
    __slots__ = ("id", "payload")

    def __init__(self, msg_id: int | None, payload: bytes = b""):
        self.id = msg_id
        self.payload = payload

    def __repr__(self) -> str:
        return f"PeerMessage({message_name(self.id)}, {len(self.payload)} bytes)"

    @property
    def length(self) -> int:
        return 0 if self.id is None else 1 + len(self.payload)

    def encode(self) -> bytes:
        if self.id is None:
            return struct.pack("!I", 0)
        return struct.pack("!IB", self.length, self.id) + self.payload

    @classmethod
    def request(cls, piece_index: int, offset: int, length: int) -> "PeerMessage":
        return cls(MessageId.REQUEST, struct.pack("!III", piece_index, offset, length))

    @classmethod
    def interested(cls) -> "PeerMessage":
        return cls(MessageId.INTERESTED)

    def block(self) -> tuple[int, int, bytes]:
        """Split a Piece payload into (piece index, offset, block bytes)."""
        piece_index, offset = struct.unpack_from("!II", self.payload, 0)
        return piece_index, offset, self.payload[8:]


def pack_handshake(info_hash: bytes, peer_id: bytes) -> bytes:
    # len, pstr, reserved, info_hash, my id
    return struct.pack(
        HANDSHAKE_FORMAT,
        len(PROTOCOL_STRING),
        PROTOCOL_STRING,
        RESERVED,
        info_hash,
        peer_id,
    )


def unpack_handshake(data: bytes) -> tuple[int, bytes, bytes, bytes, bytes]:
    return struct.unpack(HANDSHAKE_FORMAT, data)
