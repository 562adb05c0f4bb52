import random
import socket
from dataclasses import dataclass

from rich.console import Console

from errors import ConfigurationError, ProtocolError
from field import Domain, encode_specification
from network import Channel
from rep3protocol import RSS3PC, Matrix

console = Console()

# clients reach party i on port_base + CLIENT_PORT_OFFSET + i
CLIENT_PORT_OFFSET = 100


def client_port(port_base, party_index):
    return port_base + CLIENT_PORT_OFFSET + party_index


class Client:
    """
    Client end of the links to all computing parties.

    On connection the client announces its id and every party answers with
    the specification of the computation domain.
    """

    def __init__(self, channels, client_id):
        self.channels = channels
        self.client_id = client_id

        for channel in channels:
            channel.send(client_id)
        specifications = [channel.recv() for channel in channels]
        if any(each != specifications[0] for each in specifications):
            raise ConfigurationError("Parties announced different specifications")
        self.specification = specifications[0]

    @classmethod
    def connect(cls, hostnames, port_base, client_id):
        channels = [
            Channel.connect(host, client_port(port_base, i), peer=i)
            for i, host in enumerate(hostnames)
        ]
        return cls(channels, client_id)

    def send_finish(self, finish):
        for channel in self.channels:
            channel.send(bool(finish))

    def close(self):
        for channel in self.channels:
            channel.close()


class InputDistributor:
    """Splits a client's plain batches into replicated shares, one frame per row and party."""

    def __init__(self, client: Client, domain: Domain, rng=None):
        if len(client.channels) != 3:
            raise ConfigurationError(
                f"{len(client.channels)} parties not supported, replicated sharing needs 3"
            )
        self.client = client
        self.domain = domain
        self.rng = rng if rng is not None else random.SystemRandom()

    def submit(self, batch: Matrix):
        """
        Send every row of ``batch`` to all parties.

        Party i receives the packed slices (x_i, x_{i+1}) of each value in
        the row. Nothing is awaited in return.

        Args:
            batch (Matrix): plain signed integers, one record per row.
        """
        num_parties = len(self.client.channels)
        for row in batch.rows():
            per_party = [[] for _ in range(num_parties)]
            for value in row:
                shares = self.domain.share(value, self.rng)
                for i in range(num_parties):
                    per_party[i].extend((shares[i], shares[(i + 1) % num_parties]))

            for channel, payload in zip(self.client.channels, per_party):
                channel.send(self.domain.pack(payload))


@dataclass
class ClientBatch:
    client_id: int
    points: Matrix
    centroids: Matrix


class ClientListener:
    """
    Party end of the client links.

    Clients are served one at a time until one of them sends finish=True.
    Every client contributes ``n_size`` points and then ``k_size`` centroids.
    """

    def __init__(
        self, party_index, domain, n_size, k_size, dim, port_base=14000, host="0.0.0.0"
    ):
        self.party_index = party_index
        self.domain = domain
        self.n_size = n_size
        self.k_size = k_size
        self.dim = dim
        self.port = client_port(port_base, party_index)
        self.host = host

    def _recv_row(self, channel: Channel):
        values = self.domain.unpack(channel.recv())
        if len(values) != 2 * self.dim:
            raise ProtocolError(
                f"Expected {self.dim} shares per row, got {len(values) // 2}"
            )
        return [RSS3PC(values[j], values[j + 1]) for j in range(0, len(values), 2)]

    def serve_client(self, channel: Channel):
        """
        Run the handshake with one client and read all of its rows.

        Returns:
            tuple: (ClientBatch, finish flag)
        """
        client_id = channel.recv()
        channel.send(encode_specification(self.domain))
        finish = bool(channel.recv())
        console.print(f"Party {self.party_index}: client {client_id} connected, finish={finish}")

        points = [self._recv_row(channel) for _ in range(self.n_size)]
        centroids = [self._recv_row(channel) for _ in range(self.k_size)]

        batch = ClientBatch(
            client_id,
            Matrix(self.n_size, self.dim, [each for row in points for each in row]),
            Matrix(self.k_size, self.dim, [each for row in centroids for each in row]),
        )
        return batch, finish

    def collect(self):
        """
        Accept clients until one signals the final batch.

        Returns:
            list of ClientBatch: ordered by ascending client id.
        """
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((self.host, self.port))
        server.listen(5)
        console.print(f"Party {self.party_index} waiting for clients on port {self.port}...")

        batches = {}
        try:
            while True:
                sock, _ = server.accept()
                channel = Channel(sock, peer="client")
                try:
                    batch, finish = self.serve_client(channel)
                finally:
                    channel.close()

                if batch.client_id in batches:
                    raise ProtocolError(f"Client {batch.client_id} submitted twice")
                batches[batch.client_id] = batch
                if finish:
                    break
        finally:
            server.close()

        return [batches[client_id] for client_id in sorted(batches)]
