import httpx
from urllib.parse import quote, urlencode, urlparse
from minitorrent.bencode.codec import decode
from minitorrent.common.config import ClientConfig
from minitorrent.common.errors import FieldError, TrackerError, TransportError
from minitorrent.torrent.metadata import TorrentMetadata
from minitorrent.tracker.peer_address import PeerAddress, parse_compact_peers
import logging

logger = logging.getLogger(__name__)


class TrackerClient:
    __slots__ = (
        "peer_id",
        "port",
        "timeout",
        "transport",
        "interval",
    )

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        self.peer_id = config.peer_id
        self.port = config.port
        self.timeout = config.tracker_timeout
        self.transport = transport
        self.interval = None

    def build_query(self, metadata: TorrentMetadata, info_hash: bytes) -> str:
        params = {
            "info_hash": info_hash,  # bytes; percent-encoded byte by byte
            "peer_id": self.peer_id,
            "port": self.port,
            "uploaded": 0,
            "downloaded": 0,
            "left": metadata.length,
            "compact": 1,
        }
        return urlencode(params, quote_via=quote)

    def build_url(self, metadata: TorrentMetadata, info_hash: bytes) -> str:
        scheme = urlparse(metadata.announce).scheme
        if scheme not in {"http", "https"}:
            raise TrackerError(f"Unsupported tracker protocol: {scheme or metadata.announce!r}")
        separator = "&" if "?" in metadata.announce else "?"
        return f"{metadata.announce}{separator}{self.build_query(metadata, info_hash)}"

    def announce(
        self, metadata: TorrentMetadata, info_hash: bytes | None = None
    ) -> list[PeerAddress]:
        if info_hash is None:
            info_hash = metadata.info_hash
        url = self.build_url(metadata, info_hash)
        logger.info(f"Announcing to tracker {metadata.announce}")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TrackerError(
                f"Tracker returned HTTP {e.response.status_code} for {metadata.announce}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Tracker request to {metadata.announce} failed: {e}") from e

        peers = self.parse_response(response.content)
        logger.info(
            f"Tracker returned {len(peers)} peers (interval {self.interval}s)"
        )
        return peers

    def parse_response(self, body: bytes) -> list[PeerAddress]:
        value, consumed = decode(body)
        if consumed < len(body):
            logger.debug(f"Ignoring {len(body) - consumed} trailing bytes in tracker response")

        match value:
            case dict() as decoded:
                pass
            case other:
                raise FieldError(
                    f"Tracker response must be a dictionary, got {type(other).__name__}"
                )

        if b"failure reason" in decoded:
            reason = decoded[b"failure reason"]
            if isinstance(reason, bytes):
                reason = reason.decode("utf-8", errors="replace")
            raise TrackerError(f"Tracker failure: {reason}")

        match decoded.get(b"interval"):
            case int() as interval:
                self.interval = interval
            case None:
                raise FieldError("Tracker response is missing 'interval'")
            case other:
                raise FieldError(
                    f"Tracker 'interval' must be int, got {type(other).__name__}"
                )

        match decoded.get(b"peers"):
            case bytes() as peers_raw:
                return parse_compact_peers(peers_raw)
            case None:
                raise FieldError("Tracker response is missing 'peers'")
            case other:
                raise FieldError(
                    f"Tracker 'peers' must be a compact byte string, got {type(other).__name__}"
                )
