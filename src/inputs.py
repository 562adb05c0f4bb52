from errors import CountMismatch, Underflow, UsageError
from rep3protocol import RSS3PC, Rep3Protocol


def client_contributor(client_id):
    """ShareStore key of the shares delivered by an external client."""
    return ("client", client_id)


class ShareStore:
    """
    Staging buffer for one input round.

    Before the exchange it collects this party's raw contributions and the
    replicated shares delivered by clients; afterwards it holds the finalized
    shares of every contributor, readable by ``(contributor, index)`` or
    consumed in FIFO order. Contributors are party indices or
    ``client_contributor(client_id)`` keys.
    """

    def __init__(self, num_parties=3):
        self.num_parties = num_parties
        self.clear()

    def clear(self):
        self.staged = []
        self.delivered = {}
        self.finalized = {party: [] for party in range(self.num_parties)}
        self.cursors = {party: 0 for party in range(self.num_parties)}
        self.exchanged = False

    def stage(self, value):
        self.staged.append(value)

    def deliver(self, contributor, share):
        self.delivered.setdefault(contributor, []).append(share)

    def delivered_counts(self):
        return {contributor: len(shares) for contributor, shares in self.delivered.items()}

    def put(self, contributor, shares):
        self.finalized.setdefault(contributor, []).extend(shares)
        self.cursors.setdefault(contributor, 0)

    def contributors(self):
        return list(self.finalized)

    def count(self, contributor):
        return len(self.finalized.get(contributor, []))

    def remaining(self, contributor):
        return self.count(contributor) - self.cursors.get(contributor, 0)

    def get(self, contributor, index):
        if not self.exchanged:
            raise UsageError("shares are only indexable after exchange")
        return self.finalized[contributor][index]

    def pop(self, contributor):
        if self.remaining(contributor) <= 0:
            raise Underflow(contributor, self.count(contributor))
        share = self.finalized[contributor][self.cursors[contributor]]
        self.cursors[contributor] += 1
        return share


class InputCollector:
    """
    Turns contributions into replicated shares.

    A round is ``reset`` -> ``add``* / ``add_shared``* -> ``exchange`` ->
    ``finalize``*. All values of a round travel in a single network round, so
    the coordinates of both the points and the centroids can be shared at once.
    Clients share their values themselves; their shares only join the count
    agreement of the round.
    """

    protocol: Rep3Protocol
    store: ShareStore

    def __init__(self, protocol: Rep3Protocol):
        self.protocol = protocol
        self.store = ShareStore(protocol.player.num_players)
        self.ready = False

    def reset(self):
        self.store.clear()
        self.ready = True

    def _check_open(self, name):
        if not self.ready:
            raise UsageError(f"reset() must be called before {name}()")
        if self.store.exchanged:
            raise UsageError(f"{name}() called after exchange(); call reset() first")

    def add(self, value):
        """
        Queue one plain value contributed by this party.

        Args:
            value (int): signed plain value.
        """
        self._check_open("add")
        self.store.stage(self.protocol.domain.encode(value))

    def add_shared(self, contributor, share: RSS3PC):
        """
        Queue this party's view of a share a client already split and delivered.

        Args:
            contributor: key of the client, see ``client_contributor``.
            share (RSS3PC): the slices (x_i, x_{i+1}) received from the client.
        """
        self._check_open("add_shared")
        assert contributor not in self.store.finalized, "Parties contribute through add()"
        self.store.deliver(contributor, share)

    def exchange(self):
        """
        Run the input round with both peers.

        Owner p of value v holds (r, v - r), p + 1 holds (v - r, 0) and
        p - 1 holds (0, r), where r comes from the PRNG shared by p - 1 and p.
        Client shares are finalized as delivered once all parties agree on
        how many each client sent.

        Raises:
            CountMismatch: if the parties added different numbers of values,
                or received different numbers of shares from the clients.
            PeerUnreachable: if a peer channel is broken.
        """
        if not self.ready:
            raise UsageError("reset() must be called before exchange()")
        if self.store.exchanged:
            raise UsageError("exchange() already ran in this round")

        protocol = self.protocol
        domain = protocol.domain
        player_id = protocol.player_id
        num_parties = protocol.player.num_players

        mine = []
        send_buffer = []
        for value in self.store.staged:
            r = domain.random(protocol.PRNGs[0])
            masked = domain.sub(value, r)
            mine.append(RSS3PC(r, masked))
            send_buffer.append(masked)

        count = len(self.store.staged)
        delivered = self.store.delivered_counts()
        protocol.player.send((count, delivered, send_buffer), 1)
        protocol.player.send((count, delivered, None), -1)

        prev_count, prev_delivered, prev_payload = protocol.player.recv(-1)
        next_count, next_delivered, _ = protocol.player.recv(1)

        counts = [0] * num_parties
        counts[player_id] = count
        counts[(player_id - 1) % num_parties] = prev_count
        counts[(player_id + 1) % num_parties] = next_count
        if len(set(counts)) != 1:
            raise CountMismatch(counts)

        if prev_delivered != delivered or next_delivered != delivered:
            client_counts = [None] * num_parties
            client_counts[player_id] = delivered
            client_counts[(player_id - 1) % num_parties] = prev_delivered
            client_counts[(player_id + 1) % num_parties] = next_delivered
            raise CountMismatch(client_counts)

        prev_shares = [RSS3PC(each, 0) for each in prev_payload]
        next_shares = [
            RSS3PC(0, domain.random(protocol.PRNGs[1])) for _ in range(next_count)
        ]

        self.store.put(player_id, mine)
        self.store.put((player_id - 1) % num_parties, prev_shares)
        self.store.put((player_id + 1) % num_parties, next_shares)
        for contributor, shares in self.store.delivered.items():
            self.store.put(contributor, shares)
        self.store.exchanged = True

    def finalize(self, contributor):
        """
        Returns the next share contributed by ``contributor``, a party index
        or a client key.

        Raises:
            Underflow: if that contributor's shares are exhausted.
        """
        if not self.store.exchanged:
            raise UsageError("finalize() called before exchange()")
        return self.store.pop(contributor)
