class TorrentMetadata:
    __slots__ = (
        "announce",
        "name",
        "length",
        "piece_length",
        "pieces",
        "info_hash",
    )

    def __init__(
        self,
        announce: str,
        name: str,
        length: int,
        piece_length: int,
        pieces: tuple[bytes, ...],
        info_hash: bytes,
    ):
        set_ = object.__setattr__
        set_(self, "announce", announce)
        set_(self, "name", name)
        set_(self, "length", length)
        set_(self, "piece_length", piece_length)
        set_(self, "pieces", tuple(pieces))
        set_(self, "info_hash", info_hash)

    def __setattr__(self, name, value):
        raise AttributeError(f"TorrentMetadata is immutable (cannot set {name!r})")

    def __delattr__(self, name):
        raise AttributeError(f"TorrentMetadata is immutable (cannot delete {name!r})")

    def __repr__(self) -> str:
        return (
            f"TorrentMetadata(name={self.name!r}, length={self.length}, "
            f"pieces={len(self.pieces)}, info_hash={self.info_hash_hex})"
        )

    @property
    def info_hash_hex(self) -> str:
        return self.info_hash.hex()

    def piece_size(self, index: int) -> int:
        """Expected byte length of a piece; only the last one can be shorter."""
        if not 0 <= index < len(self.pieces):
            raise IndexError(f"Piece index {index} out of range (0..{len(self.pieces) - 1})")
        if index == len(self.pieces) - 1:
            return self.length - self.piece_length * index
        return self.piece_length

    def piece_hash_hex(self, index: int) -> str:
        return self.pieces[index].hex()
