class TorrentError(Exception):
    """Base class for every failure raised by the engine."""


class MalformedBencodeError(TorrentError, ValueError):
    def __init__(self, message: str, position: int | None = None):
        if position is not None:
            message = f"{message} (at byte {position})"
        super().__init__(message)
        self.position = position


class FieldError(TorrentError, ValueError):
    """A required torrent or tracker field is absent, has the wrong type or an invalid value."""


class TrackerError(TorrentError):
    pass


class ProtocolError(TorrentError):
    pass


class HandshakeError(ProtocolError):
    pass


class UnexpectedMessageError(ProtocolError):
    def __init__(self, expected: str, actual: str):
        super().__init__(f"Unexpected peer message: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class PieceVerificationError(TorrentError):
    def __init__(self, index: int, expected: str, actual: str):
        super().__init__(
            f"Piece {index} failed verification: expected sha1 {expected}, got {actual}"
        )
        self.index = index
        self.expected = expected
        self.actual = actual


class TransportError(TorrentError, ConnectionError):
    pass
