from pathlib import Path
from minitorrent.common.config import ClientConfig
from minitorrent.common.errors import TrackerError
from minitorrent.download.piece_fetcher import download_file, fetch_piece
from minitorrent.peer.connection import PeerConnection
from minitorrent.torrent.metadata import TorrentMetadata
from minitorrent.tracker.peer_address import PeerAddress
from minitorrent.tracker.tracker_client import TrackerClient
import logging

logger = logging.getLogger(__name__)


class TorrentClient:
    __slots__ = (
        "metadata",
        "config",
        "tracker",
        "peers",
    )

    def __init__(
        self,
        metadata: TorrentMetadata,
        config: ClientConfig,
        tracker: TrackerClient | None = None,
    ):
        self.metadata = metadata
        self.config = config
        self.tracker = tracker if tracker is not None else TrackerClient(config)
        self.peers: list[PeerAddress] = []

        logger.info(f"Initialized TorrentClient for {metadata.name}")

    def discover_peers(self) -> list[PeerAddress]:
        self.peers = self.tracker.announce(self.metadata, self.metadata.info_hash)
        logger.info(f"Got {len(self.peers)} peers from tracker")
        return self.peers

    def handshake(self, address: PeerAddress) -> bytes:
        with PeerConnection(address, self.config) as connection:
            connection.connect()
            return connection.handshake(self.metadata.info_hash)

    def open_connection(self, address: PeerAddress | None = None) -> PeerConnection:
        if address is None:
            peers = self.peers or self.discover_peers()
            if not peers:
                raise TrackerError("Tracker returned no peers")
            address = peers[0]

        connection = PeerConnection(address, self.config)
        try:
            connection.establish(self.metadata.info_hash)
        except BaseException:
            connection.close()
            raise
        return connection

    def download_piece(
        self, piece_index: int, output: Path, address: PeerAddress | None = None
    ) -> None:
        # validate before touching the network
        self.metadata.piece_size(piece_index)
        with self.open_connection(address) as connection:
            piece = fetch_piece(connection, self.metadata, piece_index)
        self._write(output, piece)

    def download(self, output: Path, address: PeerAddress | None = None) -> None:
        with self.open_connection(address) as connection:
            data = download_file(self.metadata, connection)
        self._write(output, data)

    def _write(self, output: Path, data: bytes) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(data)
        logger.info(f"Wrote {len(data)} bytes to {output}")
