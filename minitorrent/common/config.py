import random

PEER_ID_PREFIX = b"-MT0001-"
DEFAULT_PORT = 6881
DEFAULT_TRACKER_TIMEOUT = 10.0


def generate_peer_id() -> bytes:
    # Azureus-style prefix followed by 12 ASCII digits
    suffix = "".join(random.choices("0123456789", k=20 - len(PEER_ID_PREFIX)))
    return PEER_ID_PREFIX + suffix.encode("ascii")


class ClientConfig:
    __slots__ = (
        "peer_id",
        "port",
        "tracker_timeout",
        "peer_timeout",
        "strict_handshake",
    )

    def __init__(
        self,
        peer_id: bytes | None = None,
        port: int = DEFAULT_PORT,
        tracker_timeout: float | None = DEFAULT_TRACKER_TIMEOUT,
        peer_timeout: float | None = None,
        strict_handshake: bool = False,
    ):
        self.peer_id = peer_id if peer_id is not None else generate_peer_id()
        self.port = port
        self.tracker_timeout = tracker_timeout
        self.peer_timeout = peer_timeout
        self.strict_handshake = strict_handshake

        if len(self.peer_id) != 20:
            raise ValueError(f"Peer id must be 20 bytes, got {len(self.peer_id)}")
        if not 0 < self.port < 65536:
            raise ValueError(f"Port out of range: {self.port}")

    def __repr__(self) -> str:
        return (
            f"ClientConfig(peer_id={self.peer_id!r}, port={self.port}, "
            f"strict_handshake={self.strict_handshake})"
        )
