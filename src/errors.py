class ConfigurationError(Exception):
    """Misconfigured deployment: bad arguments or unsupported parameters."""


class UnsupportedComputation(ConfigurationError):
    """The specification handshake names a field or ring we do not implement."""


class ProtocolError(Exception):
    """Fatal to the current run. Parties never retry a round."""


class PeerUnreachable(ProtocolError):
    def __init__(self, peer, reason="channel closed"):
        self.peer = peer
        super().__init__(f"peer {peer} unreachable: {reason}")


class CountMismatch(ProtocolError):
    def __init__(self, counts):
        self.counts = counts
        super().__init__(f"parties disagree on contribution counts: {counts}")


class Underflow(ProtocolError):
    def __init__(self, contributor, available):
        self.contributor = contributor
        super().__init__(
            f"finalize called past the {available} value(s) contributed by {contributor}"
        )


class OpenMismatch(ProtocolError):
    """The two copies of a missing share received during reveal differ."""


class ShuffleError(Exception):
    pass


class LengthMismatch(ShuffleError):
    pass


class UsageError(AssertionError):
    """Programmer error: a call made out of protocol order."""
