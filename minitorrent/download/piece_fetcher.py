import hashlib
from collections.abc import Iterator
from minitorrent.common.errors import PieceVerificationError, ProtocolError
from minitorrent.peer.connection import ConnectionState, PeerConnection
from minitorrent.peer.message import MessageId, PeerMessage
from minitorrent.torrent.metadata import TorrentMetadata
import logging

logger = logging.getLogger(__name__)

BLOCK_SIZE = 16384  # 16KB standard block size


def iter_blocks(piece_size: int) -> Iterator[tuple[int, int]]:
    """Yield (offset, length) for each block of a piece, last block clamped."""
    for offset in range(0, piece_size, BLOCK_SIZE):
        yield offset, min(BLOCK_SIZE, piece_size - offset)


def fetch_piece(
    connection: PeerConnection, metadata: TorrentMetadata, piece_index: int
) -> bytes:
    connection.require_state(ConnectionState.UNCHOKED)
    piece_size = metadata.piece_size(piece_index)
    logger.info(
        f"Requesting piece {piece_index} ({piece_size} bytes) from {connection.address}"
    )

    piece = bytearray()
    for offset, length in iter_blocks(piece_size):
        connection.send_message(PeerMessage.request(piece_index, offset, length))
        message = connection.read_message(MessageId.PIECE)
        if len(message.payload) < 8:
            raise ProtocolError(
                f"Piece message for piece {piece_index} offset {offset} too short "
                f"({len(message.payload)} bytes)"
            )
        # echoed index and offset are not checked
        echo_index, echo_offset, block = message.block()
        piece += block
        logger.debug(
            f"Received block: piece {echo_index}, offset {echo_offset}, size {len(block)}"
        )

    expected = metadata.piece_hash_hex(piece_index)
    actual = hashlib.sha1(piece).hexdigest()
    if actual != expected:
        raise PieceVerificationError(piece_index, expected, actual)

    logger.info(f"Piece {piece_index} verified ({len(piece)} bytes)")
    return bytes(piece)


def download_file(metadata: TorrentMetadata, connection: PeerConnection) -> bytes:
    pieces = []
    for piece_index in range(len(metadata.pieces)):
        pieces.append(fetch_piece(connection, metadata, piece_index))
        logger.info(f"Progress: {piece_index + 1}/{len(metadata.pieces)} pieces")
    return b"".join(pieces)
