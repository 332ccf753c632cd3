import socket
import struct
from enum import IntEnum
from bitarray import bitarray
from minitorrent.common.config import ClientConfig
from minitorrent.common.errors import (
    HandshakeError,
    ProtocolError,
    TransportError,
    UnexpectedMessageError,
)
from minitorrent.peer.message import (
    HANDSHAKE_LENGTH,
    PROTOCOL_STRING,
    MessageId,
    PeerMessage,
    message_name,
    pack_handshake,
    unpack_handshake,
)
from minitorrent.tracker.peer_address import PeerAddress
import logging

logger = logging.getLogger(__name__)

# Large enough for a 16 KiB block or the bitfield of a very large torrent
MAX_FRAME_LENGTH = 1 << 21


class ConnectionState(IntEnum):
    DISCONNECTED = 0
    CONNECTED = 1
    HANDSHAKED = 2
    BITFIELD_RECEIVED = 3
    UNCHOKED = 4


class PeerConnection:
    """
    Blocking connection to a single peer.

    Moves forward through ConnectionState: connect, handshake, wait for the
    bitfield, declare interest and wait to be unchoked. Once unchoked the
    owner drives Request/Piece exchanges with send_message and read_message.
    """

    __slots__ = (
        "address",
        "config",
        "sock",
        "state",
        "remote_peer_id",
        "bitfield",
    )

    def __init__(
        self,
        address: PeerAddress,
        config: ClientConfig,
        sock: socket.socket | None = None,
    ):
        self.address = address
        self.config = config
        self.sock = sock
        self.state = ConnectionState.DISCONNECTED
        self.remote_peer_id: bytes = None
        self.bitfield: bitarray = None

    def __enter__(self) -> "PeerConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PeerConnection({self.address}, {self.state.name})"

    def establish(self, info_hash: bytes) -> None:
        self.connect()
        self.handshake(info_hash)
        self.receive_bitfield()
        self.send_interested()
        self.wait_unchoke()

    def connect(self) -> None:
        self.require_state(ConnectionState.DISCONNECTED)
        if self.sock is None:
            logger.info(f"Initiating connection to peer {self.address}")
            try:
                self.sock = socket.create_connection(
                    (self.address.host, self.address.port),
                    timeout=self.config.peer_timeout,
                )
            except OSError as e:
                raise TransportError(f"Could not connect to peer {self.address}: {e}") from e
        self.state = ConnectionState.CONNECTED
        logger.info(f"TCP connection established to {self.address}")

    def handshake(self, info_hash: bytes) -> bytes:
        self.require_state(ConnectionState.CONNECTED)
        logger.info(f"Sending handshake to peer {self.address}")
        self._send_all(pack_handshake(info_hash, self.config.peer_id))

        reply = self._recv_exactly(HANDSHAKE_LENGTH)
        pstrlen, pstr, _, remote_hash, peer_id = unpack_handshake(reply)

        if self.config.strict_handshake:
            if pstrlen != len(PROTOCOL_STRING) or pstr != PROTOCOL_STRING:
                raise HandshakeError(f"Invalid protocol string from {self.address}: {pstr!r}")
            if remote_hash != info_hash:
                raise HandshakeError(
                    f"Info hash mismatch from {self.address}: {remote_hash.hex()} != {info_hash.hex()}"
                )

        self.remote_peer_id = peer_id
        self.state = ConnectionState.HANDSHAKED
        logger.info(f"Handshake completed with {self.address} (peer_id: {peer_id.hex()})")
        return peer_id

    def receive_bitfield(self) -> bitarray:
        self.require_state(ConnectionState.HANDSHAKED)
        message = self.read_message(MessageId.BITFIELD)

        bitfield = bitarray(endian="big")
        bitfield.frombytes(message.payload)
        self.bitfield = bitfield
        self.state = ConnectionState.BITFIELD_RECEIVED
        logger.info(
            f"Received bitfield from {self.address} advertising {bitfield.count()} pieces"
        )
        return bitfield

    def send_interested(self) -> None:
        self.require_state(ConnectionState.BITFIELD_RECEIVED)
        logger.info(f"Sending interested message to {self.address}")
        self.send_message(PeerMessage.interested())

    def wait_unchoke(self) -> None:
        self.require_state(ConnectionState.BITFIELD_RECEIVED)
        self.read_message(MessageId.UNCHOKE)
        self.state = ConnectionState.UNCHOKED
        logger.info(f"Peer {self.address} unchoked us")

    def send_message(self, message: PeerMessage) -> None:
        if self.state < ConnectionState.CONNECTED:
            raise ProtocolError(f"Cannot send {message!r}: not connected")
        logger.debug(f"Sending {message!r} to {self.address}")
        self._send_all(message.encode())

    def read_message(self, expected: MessageId | None = None) -> PeerMessage:
        while True:
            (length,) = struct.unpack("!I", self._recv_exactly(4))
            if length == 0:
                logger.debug(f"Received keep-alive from {self.address}")
                continue
            if length > MAX_FRAME_LENGTH:
                raise ProtocolError(
                    f"Frame of {length} bytes from {self.address} exceeds {MAX_FRAME_LENGTH}"
                )
            frame = self._recv_exactly(length)
            message = PeerMessage(frame[0], frame[1:])
            break

        logger.debug(f"Received {message!r} from {self.address}")
        if expected is not None and message.id != expected:
            raise UnexpectedMessageError(message_name(expected), message_name(message.id))
        return message

    def close(self) -> None:
        if self.sock is not None:
            try:
                self.sock.close()
            finally:
                self.sock = None
                self.state = ConnectionState.DISCONNECTED
                logger.info(f"Closed connection to {self.address}")

    def require_state(self, state: ConnectionState) -> None:
        if self.state != state:
            raise ProtocolError(
                f"Connection to {self.address} is {self.state.name}, expected {state.name}"
            )

    def _send_all(self, data: bytes) -> None:
        if self.sock is None:
            raise TransportError(f"Connection to {self.address} is closed")
        try:
            self.sock.sendall(data)
        except OSError as e:
            raise TransportError(f"Send to {self.address} failed: {e}") from e

    def _recv_exactly(self, n: int) -> bytes:
        if self.sock is None:
            raise TransportError(f"Connection to {self.address} is closed")
        buffer = bytearray()
        while len(buffer) < n:
            try:
                chunk = self.sock.recv(n - len(buffer))
            except OSError as e:
                raise TransportError(f"Receive from {self.address} failed: {e}") from e
            if not chunk:
                raise TransportError(
                    f"Peer {self.address} closed the connection after {len(buffer)} of {n} bytes"
                )
            buffer += chunk
        return bytes(buffer)
