from errors import OpenMismatch, UsageError
from rep3protocol import Rep3Protocol


class PendingOpen:
    """Result of ``partial_open``; readable once the reveal's exchange ran."""

    def __init__(self, shares):
        self.shares = shares
        self._values = None

    def done(self):
        return self._values is not None

    def result(self):
        if self._values is None:
            raise UsageError("reveal result read before exchange()")
        return self._values

    def _resolve(self, values):
        self._values = values


class RevealCoordinator:
    """
    Opens replicated shares to all three parties.

    Every value given to ``open`` becomes public to all parties for good, so
    only designated outputs may pass through here.
    """

    protocol: Rep3Protocol

    def __init__(self, protocol: Rep3Protocol, sign=True):
        self.protocol = protocol
        self.sign = sign
        self.pending = []

    def partial_open(self, shares: list):
        """
        Send this party's contribution to both peers.

        The missing slice x_{i-1} of party i is x_{i-1} of the previous party
        and the second slice of the next one, so it arrives twice.

        Args:
            shares (list of RSS3PC): secret shared values.

        Returns:
            PendingOpen: resolved by the next ``exchange``.
        """
        player = self.protocol.player
        player.send([each[0] for each in shares], 1)
        player.send([each[1] for each in shares], -1)

        pending = PendingOpen(shares)
        self.pending.append(pending)
        return pending

    def exchange(self):
        """
        Receive the peers' contributions for all pending opens and reconstruct.

        Raises:
            OpenMismatch: if the two received copies of a slice differ.
        """
        player = self.protocol.player
        domain = self.protocol.domain

        pending, self.pending = self.pending, []
        for each in pending:
            from_prev = player.recv(-1)
            from_next = player.recv(1)

            if len(from_prev) != len(each.shares) or from_prev != from_next:
                raise OpenMismatch(
                    f"Party {self.protocol.player_id} received inconsistent openings"
                )

            each._resolve(
                [
                    domain.reconstruct([share[0], share[1], missing], self.sign)
                    for share, missing in zip(each.shares, from_prev)
                ]
            )

    def open(self, shares: list):
        """
        Reveal secret shared values to every party.

        Args:
            shares (list of RSS3PC): secret shared values.

        Returns:
            list: the signed plain values.
        """
        pending = self.partial_open(shares)
        self.exchange()
        return pending.result()
