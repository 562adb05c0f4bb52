import contextlib
import enum
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
from rich.console import Console
from rich.table import Table

from client_io import ClientListener
from errors import ConfigurationError, UsageError
from field import Domain, PrimeField
from inputs import InputCollector, client_contributor
from network import BasePlayer, Player
from rep3protocol import Matrix, Rep3Protocol
from reveal import RevealCoordinator
from shuffle import Shuffler
from synthetic import fill_random_values

console = Console()

BATCHES = ("N", "K")


class Phase(enum.Enum):
    INIT = 0
    INPUT_SHARING = 1
    SHUFFLING = 2
    CLUSTERING = 3
    REVEALING = 4
    DONE = 5


@dataclass
class SessionConfig:
    party_index: int
    num_parties: int = 3
    n_size: int = 99
    k_size: int = 12
    dim: int = 3
    domain: Domain = field(default_factory=PrimeField)
    port_base: int = 14000
    hostnames: Optional[list] = None
    shuffle: tuple = ("K",)
    reveal: tuple = ("K",)
    seed: Optional[int] = None
    debug: bool = False

    def __post_init__(self):
        if self.num_parties != 3:
            raise ConfigurationError(
                f"{self.num_parties} parties not supported, replicated sharing needs 3"
            )
        if not 0 <= self.party_index < self.num_parties:
            raise ConfigurationError(f"Invalid party index {self.party_index}")
        if min(self.n_size, self.k_size, self.dim) <= 0:
            raise ConfigurationError("n_size, k_size and dim must be positive")
        if self.hostnames is not None and len(self.hostnames) != self.num_parties:
            raise ConfigurationError(
                f"Expected {self.num_parties} hostnames, got {len(self.hostnames)}"
            )
        for name in (*self.shuffle, *self.reveal):
            if name not in BATCHES:
                raise ConfigurationError(f"Unknown batch {name!r}, expected one of {BATCHES}")

    def seed_source(self):
        """
        Seed contributions for the pairwise PRNGs.

        A configured ``seed`` makes runs reproducible for in-process
        simulation and tests only: any party knowing it can recompute the
        other parties' contributions, and with them the joint permutation.
        """
        if self.seed is None:
            return None
        return random.Random(f"{self.seed}/{self.party_index}")

    def data_rng(self):
        if self.seed is None:
            return np.random.default_rng()
        return np.random.default_rng([self.seed, self.party_index])


def keep_centroids(protocol, points, centroids):
    console.print("Clustering step not implemented, centroids passed through")
    return centroids


def matrix_table(matrix: Matrix, title):
    table = Table(title=title)
    for j in range(matrix.ncols):
        table.add_column(f"d{j}", justify="right", style="cyan")
    for row in matrix.rows():
        table.add_row(*[str(each) for each in row])
    return table


class Orchestrator:
    """
    Drives one party through share -> shuffle -> cluster -> reveal.

    Phases run strictly in order, once. Any exception aborts the run and
    every later phase call fails.
    """

    phase: Phase
    protocol: Rep3Protocol

    def __init__(
        self,
        config: SessionConfig,
        player: BasePlayer = None,
        listener: ClientListener = None,
        clustering: Callable = None,
    ):
        self.config = config
        self.player = player
        self.listener = listener
        self.clustering = clustering or keep_centroids

        self.phase = Phase.INIT
        self.aborted = False
        self.protocol = None
        self.batches = {}
        self.outputs = {}

    @contextlib.contextmanager
    def _enter(self, phase):
        if self.aborted:
            raise UsageError(f"Run was aborted, cannot enter {phase.name}")
        if phase is Phase.INIT:
            if self.phase is not Phase.INIT or self.protocol is not None:
                raise UsageError("Session already initialized")
        elif phase.value != self.phase.value + 1 or self.protocol is None:
            raise UsageError(f"Cannot move from {self.phase.name} to {phase.name}")

        self.phase = phase
        console.print(f"[bold blue]Party {self.config.party_index}[/bold blue]: {phase.name}")
        try:
            yield
        except Exception:
            self.aborted = True
            raise

    def init(self):
        cfg = self.config
        with self._enter(Phase.INIT):
            if self.player is None:
                if cfg.seed is not None:
                    # a shared seed lets every party derive all pair seeds
                    raise ConfigurationError("seed is only allowed for in-process simulation")
                self.player = Player(
                    cfg.party_index,
                    cfg.num_parties,
                    port_base=cfg.port_base,
                    hostnames=cfg.hostnames,
                    debug=cfg.debug,
                )
            self.protocol = Rep3Protocol(self.player, cfg.domain, cfg.seed_source())
            self.input = InputCollector(self.protocol)
            self.output = RevealCoordinator(self.protocol)
            self.shuffler = Shuffler(self.protocol)

    def share_inputs(self, my_points: Matrix = None, my_centroids: Matrix = None):
        """
        Turn all contributions into shared batches N (points) and K (centroids).

        Without a client listener every party contributes a third of both
        batches itself; synthetic data is drawn when none is given.
        """
        with self._enter(Phase.INPUT_SHARING):
            if self.listener is not None:
                self._share_client_inputs()
            else:
                self._share_local_inputs(my_points, my_centroids)

    def _share_local_inputs(self, my_points, my_centroids):
        cfg = self.config
        if cfg.n_size % 3 or cfg.k_size % 3:
            raise ConfigurationError("n_size and k_size must be multiples of 3")
        my_n_size = cfg.n_size // 3
        my_k_size = cfg.k_size // 3

        rng = cfg.data_rng()
        if my_points is None:
            my_points = fill_random_values(rng, my_n_size, cfg.dim)
        if my_centroids is None:
            my_centroids = fill_random_values(rng, my_k_size, cfg.dim)
        assert my_points.dimensions() == (my_n_size, cfg.dim), "Bad local points shape"
        assert my_centroids.dimensions() == (my_k_size, cfg.dim), "Bad local centroids shape"

        self.input.reset()
        for value in my_points.data:
            self.input.add(value)
        for value in my_centroids.data:
            self.input.add(value)

        self.input.exchange()

        self.batches["N"] = self._finalize_batch(my_n_size)
        self.batches["K"] = self._finalize_batch(my_k_size)

    def _finalize_batch(self, my_size):
        # records of party p land at rows [p * my_size, (p + 1) * my_size)
        dim = self.config.dim
        batch = Matrix(3 * my_size, dim)
        for j in range(my_size):
            for d in range(dim):
                for party in range(3):
                    batch[j + party * my_size, d] = self.input.finalize(party)
        return batch

    def _share_client_inputs(self):
        cfg = self.config
        batches = self.listener.collect()

        self.input.reset()
        for batch in batches:
            contributor = client_contributor(batch.client_id)
            for share in batch.points.data + batch.centroids.data:
                self.input.add_shared(contributor, share)

        # fails at every party unless all served the same clients and rows
        self.input.exchange()

        points = []
        centroids = []
        for batch in sorted(batches, key=lambda each: each.client_id):
            contributor = client_contributor(batch.client_id)
            points.extend(self.input.finalize(contributor) for _ in batch.points.data)
            centroids.extend(self.input.finalize(contributor) for _ in batch.centroids.data)

        self.batches["N"] = Matrix(len(points) // cfg.dim, cfg.dim, points)
        self.batches["K"] = Matrix(len(centroids) // cfg.dim, cfg.dim, centroids)

    def shuffle(self):
        with self._enter(Phase.SHUFFLING):
            for name in self.config.shuffle:
                batch = self.batches[name]
                handle = self.shuffler.generate(batch.nrows)
                data = self.shuffler.apply(
                    batch.data, len(batch.data), batch.ncols, handle=handle
                )
                self.batches[name] = Matrix(batch.nrows, batch.ncols, data)

    def cluster(self):
        with self._enter(Phase.CLUSTERING):
            self.batches["K"] = self.clustering(
                self.protocol, self.batches["N"], self.batches["K"]
            )

    def reveal(self):
        with self._enter(Phase.REVEALING):
            pending = {
                name: self.output.partial_open(self.batches[name].data)
                for name in self.config.reveal
            }
            self.output.exchange()
            for name, each in pending.items():
                batch = self.batches[name]
                self.outputs[name] = Matrix(batch.nrows, batch.ncols, each.result())
        return self.outputs

    def finish(self):
        with self._enter(Phase.DONE):
            for name, matrix in self.outputs.items():
                console.print(matrix_table(matrix, f"Revealed {name}"))
            console.print(
                f"Party {self.config.party_index}: sent {self.player.bytes_sent} B, "
                f"received {self.player.bytes_recv} B"
            )
            self.protocol.disconnect()

    def run(self, my_points: Matrix = None, my_centroids: Matrix = None):
        self.init()
        self.share_inputs(my_points, my_centroids)
        self.shuffle()
        self.cluster()
        outputs = self.reveal()
        self.finish()
        return outputs
