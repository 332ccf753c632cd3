import hashlib
import math
from pathlib import Path
from minitorrent.bencode.codec import BencodeValue, decode, encode_canonical
from minitorrent.common.errors import FieldError
from minitorrent.torrent.metadata import TorrentMetadata
import logging

logger = logging.getLogger(__name__)

HASH_LENGTH = 20


def parse_torrent_file(path: Path) -> TorrentMetadata:
    logger.info(f"Parsing torrent file: {path}")

    with path.open("rb") as f:
        return load(f.read())


def load(file_bytes: bytes) -> TorrentMetadata:
    value, consumed = decode(file_bytes)
    if consumed < len(file_bytes):
        logger.debug(f"Ignoring {len(file_bytes) - consumed} trailing bytes after torrent dictionary")

    match value:
        case dict() as metainfo:
            pass
        case other:
            raise FieldError(
                f"Torrent file must be a dictionary, got {type(other).__name__}"
            )

    announce = _text(_require(metainfo, b"announce", bytes), "announce")
    info = _require(metainfo, b"info", dict)

    length = _require(info, b"length", int, "info.")
    name = _text(_require(info, b"name", bytes, "info."), "info.name")
    piece_length = _require(info, b"piece length", int, "info.")
    pieces_raw = _require(info, b"pieces", bytes, "info.")

    if length < 0:
        raise FieldError(f"info.length must not be negative, got {length}")
    if piece_length <= 0:
        raise FieldError(f"info.piece length must be positive, got {piece_length}")
    if len(pieces_raw) % HASH_LENGTH:
        raise FieldError(
            f"info.pieces length {len(pieces_raw)} is not a multiple of {HASH_LENGTH}"
        )

    pieces = tuple(
        pieces_raw[i : i + HASH_LENGTH] for i in range(0, len(pieces_raw), HASH_LENGTH)
    )
    expected_count = math.ceil(length / piece_length)
    if len(pieces) != expected_count:
        raise FieldError(
            f"info.pieces holds {len(pieces)} hashes but {length} bytes "
            f"at {piece_length} per piece need {expected_count}"
        )

    # Hash the info dictionary as decoded, extra keys included
    info_hash = hashlib.sha1(encode_canonical(info)).digest()

    logger.info(
        f"Parsed torrent: {name} ({length} bytes, {len(pieces)} pieces, info hash {info_hash.hex()})"
    )
    return TorrentMetadata(
        announce=announce,
        name=name,
        length=length,
        piece_length=piece_length,
        pieces=pieces,
        info_hash=info_hash,
    )


def _require(
    mapping: dict[bytes, BencodeValue], key: bytes, kind: type, prefix: str = ""
):
    label = prefix + key.decode()
    if key not in mapping:
        raise FieldError(f"Missing required field '{label}'")
    value = mapping[key]
    if not isinstance(value, kind):
        raise FieldError(
            f"Field '{label}' must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


def _text(raw: bytes, label: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FieldError(f"Field '{label}' is not valid UTF-8") from e
