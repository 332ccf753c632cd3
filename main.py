#!/usr/bin/env python3
"""
minitorrent - single-peer BitTorrent client
Main entry point for the application.
"""

import argparse
import json
import sys
from pathlib import Path
from minitorrent.bencode.codec import BencodeValue, decode_exact
from minitorrent.common.config import DEFAULT_PORT, ClientConfig
from minitorrent.common.errors import TorrentError
from minitorrent.common.logging import config_logging
from minitorrent.download.client import TorrentClient
from minitorrent.torrent.parser import parse_torrent_file
from minitorrent.tracker.peer_address import PeerAddress
import logging

logger = logging.getLogger(__name__)


def to_json_compatible(value: BencodeValue):
    """Render decoded bencode for JSON: byte strings as UTF-8 text, or hex when not text."""
    match value:
        case bytes():
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return value.hex()
        case int():
            return value
        case list():
            return [to_json_compatible(item) for item in value]
        case dict():
            return {
                to_json_compatible(key): to_json_compatible(item)
                for key, item in value.items()
            }


def cmd_decode(args, config: ClientConfig):
    value = decode_exact(args.value.encode("utf-8"))
    print(json.dumps(to_json_compatible(value)))


def cmd_info(args, config: ClientConfig):
    metadata = parse_torrent_file(args.torrent)
    print(f"Tracker URL: {metadata.announce}")
    print(f"Length: {metadata.length}")
    print(f"Info Hash: {metadata.info_hash_hex}")
    print(f"Piece Length: {metadata.piece_length}")
    print("Piece Hashes:")
    for index in range(len(metadata.pieces)):
        print(metadata.piece_hash_hex(index))


def cmd_peers(args, config: ClientConfig):
    client = TorrentClient(parse_torrent_file(args.torrent), config)
    for peer in client.discover_peers():
        print(peer)


def cmd_handshake(args, config: ClientConfig):
    client = TorrentClient(parse_torrent_file(args.torrent), config)
    peer_id = client.handshake(PeerAddress.parse(args.peer))
    print(f"Peer ID: {peer_id.hex()}")


def cmd_download_piece(args, config: ClientConfig):
    client = TorrentClient(parse_torrent_file(args.torrent), config)
    client.download_piece(args.piece, args.output)
    print(f"Piece {args.piece} downloaded to {args.output}.")


def cmd_download(args, config: ClientConfig):
    metadata = parse_torrent_file(args.torrent)
    TorrentClient(metadata, config).download(args.output)
    print(f"Downloaded {metadata.name} to {args.output}.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minitorrent",
        description="minitorrent - single-peer BitTorrent client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s decode 'd3:cow3:moo4:spam4:eggse'
  %(prog)s info sample.torrent
  %(prog)s download_piece -o /tmp/piece-0 sample.torrent 0
  %(prog)s download -o sample.txt sample.torrent
        """,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument(
        "--log-file",
        default="minitorrent.log.jsonl",
        help="Log file name under data/logs/ (default: minitorrent.log.jsonl)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port reported to the tracker (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--strict-handshake",
        action="store_true",
        help="Reject peers whose handshake echoes a different info hash",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    decode_cmd = commands.add_parser("decode", help="Decode a bencoded value to JSON")
    decode_cmd.add_argument("value")
    decode_cmd.set_defaults(handler=cmd_decode)

    info_cmd = commands.add_parser("info", help="Show torrent metadata")
    info_cmd.add_argument("torrent", type=Path)
    info_cmd.set_defaults(handler=cmd_info)

    peers_cmd = commands.add_parser("peers", help="List peers from the tracker")
    peers_cmd.add_argument("torrent", type=Path)
    peers_cmd.set_defaults(handler=cmd_peers)

    handshake_cmd = commands.add_parser("handshake", help="Handshake with one peer")
    handshake_cmd.add_argument("torrent", type=Path)
    handshake_cmd.add_argument("peer", help="Peer address as ip:port")
    handshake_cmd.set_defaults(handler=cmd_handshake)

    piece_cmd = commands.add_parser("download_piece", help="Download and verify one piece")
    piece_cmd.add_argument("-o", "--output", type=Path, required=True)
    piece_cmd.add_argument("torrent", type=Path)
    piece_cmd.add_argument("piece", type=int)
    piece_cmd.set_defaults(handler=cmd_download_piece)

    download_cmd = commands.add_parser("download", help="Download the whole file")
    download_cmd.add_argument("-o", "--output", type=Path, required=True)
    download_cmd.add_argument("torrent", type=Path)
    download_cmd.set_defaults(handler=cmd_download)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the minitorrent client."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config_logging(args.log_file, verbose=args.verbose)

    try:
        config = ClientConfig(port=args.port, strict_handshake=args.strict_handshake)
        args.handler(args, config)
    except (TorrentError, OSError, ValueError, IndexError) as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
