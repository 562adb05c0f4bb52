import random
from concurrent.futures import ThreadPoolExecutor

import pytest

import harness  # noqa: F401

from client_io import ClientBatch
from errors import ConfigurationError, CountMismatch, UsageError
from field import Ring
from inputs import client_contributor
from network import LocalNetwork
from orchestrator import Orchestrator, Phase, SessionConfig
from playground import run_local
from rep3protocol import RSS3PC, Matrix


def run_orchestrators(make, fn, timeout=10.0):
    network = LocalNetwork(3, timeout=timeout)
    orchestrators = [make(i, network.player(i)) for i in range(3)]
    with ThreadPoolExecutor(max_workers=3) as pool:
        futures = [pool.submit(fn, each) for each in orchestrators]
        return [f.exception() or f.result() for f in futures], orchestrators


def points_of(party):
    return Matrix.from_rows([[10 * party + 1, 10 * party + 2], [10 * party + 3, -10 * party - 4]])


def centroids_of(party):
    return Matrix.from_rows([[100 + party, -party]])


def test_explicit_inputs_are_laid_out_by_party():
    def make(i, player):
        config = SessionConfig(i, n_size=6, k_size=3, dim=2, reveal=("N", "K"), seed=11)
        return Orchestrator(config, player=player)

    def run(orchestrator):
        party = orchestrator.config.party_index
        return orchestrator.run(points_of(party), centroids_of(party))

    outputs, orchestrators = run_orchestrators(make, run)

    expected_points = [row for party in range(3) for row in points_of(party).rows()]
    expected_centroids = [row for party in range(3) for row in centroids_of(party).rows()]
    for each in outputs:
        # only K was shuffled
        assert each["N"].rows() == expected_points
        assert sorted(each["K"].rows()) == sorted(expected_centroids)
        assert each["K"] == outputs[0]["K"]
    assert all(each.phase is Phase.DONE for each in orchestrators)


def test_local_run_is_reproducible_with_a_seed():
    first = run_local(n_size=6, k_size=3, dim=2, seed=5)
    second = run_local(n_size=6, k_size=3, dim=2, seed=5)

    assert first == second
    for each in first:
        assert list(each) == ["K"]
        assert each["K"].dimensions() == (3, 2)
        assert all(1 <= value <= 100 for value in each["K"].data)


def test_phases_must_run_in_order():
    network = LocalNetwork(3)
    orchestrator = Orchestrator(SessionConfig(0), player=network.player(0))

    with pytest.raises(UsageError):
        orchestrator.shuffle()
    with pytest.raises(UsageError):
        orchestrator.reveal()
    assert orchestrator.phase is Phase.INIT
    assert not orchestrator.aborted


def test_failed_phase_aborts_the_run():
    def broken_clustering(protocol, points, centroids):
        raise RuntimeError("clustering failed")

    def make(i, player):
        config = SessionConfig(i, n_size=3, k_size=3, dim=1, seed=3)
        return Orchestrator(config, player=player, clustering=broken_clustering)

    def run(orchestrator):
        orchestrator.init()
        orchestrator.share_inputs()
        orchestrator.shuffle()
        with pytest.raises(RuntimeError):
            orchestrator.cluster()
        with pytest.raises(UsageError):
            orchestrator.reveal()
        return orchestrator.aborted

    outputs, _ = run_orchestrators(make, run)

    assert outputs == [True] * 3


def test_local_inputs_must_split_evenly():
    def make(i, player):
        return Orchestrator(SessionConfig(i, n_size=4, k_size=3, dim=1), player=player)

    def run(orchestrator):
        orchestrator.init()
        orchestrator.share_inputs()

    outputs, orchestrators = run_orchestrators(make, run)

    assert all(isinstance(each, ConfigurationError) for each in outputs)
    assert all(each.aborted for each in orchestrators)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"num_parties": 4},
        {"party_index": 3},
        {"n_size": 0},
        {"hostnames": ["localhost", "localhost"]},
        {"reveal": ("X",)},
        {"shuffle": ("N", "M")},
    ],
)
def test_invalid_session_config(kwargs):
    kwargs.setdefault("party_index", 0)
    with pytest.raises(ConfigurationError):
        SessionConfig(**kwargs)


class FakeListener:
    def __init__(self, batches):
        self.batches = batches

    def collect(self):
        return self.batches


def share_client_rows(domain, rows, rng):
    """Replicated shares of ``rows`` as seen by each of the three parties."""
    views = [[], [], []]
    for row in rows:
        for value in row:
            shares = domain.share(value, rng)
            for i in range(3):
                views[i].append(RSS3PC(shares[i], shares[(i + 1) % 3]))
    return views


def client_batches(domain, clients, dim):
    rng = random.Random(42)
    per_party = [[], [], []]
    for client_id, points, centroids in clients:
        point_views = share_client_rows(domain, points, rng)
        centroid_views = share_client_rows(domain, centroids, rng)
        for i in range(3):
            per_party[i].append(
                ClientBatch(
                    client_id,
                    Matrix(len(points), dim, point_views[i]),
                    Matrix(len(centroids), dim, centroid_views[i]),
                )
            )
    return per_party


CLIENTS = [
    (0, [[1, 2], [3, 4]], [[5, 6]]),
    (1, [[-7, 8], [9, -10]], [[11, 12]]),
]


def test_client_batches_are_concatenated_in_client_order():
    domain = Ring(64)
    per_party = client_batches(domain, CLIENTS, dim=2)

    def make(i, player):
        config = SessionConfig(
            i, n_size=2, k_size=1, dim=2, domain=domain, shuffle=(), reveal=("N", "K")
        )
        return Orchestrator(config, player=player, listener=FakeListener(per_party[i]))

    outputs, _ = run_orchestrators(make, lambda each: each.run())

    for each in outputs:
        assert each["N"].rows() == [[1, 2], [3, 4], [-7, 8], [9, -10]]
        assert each["K"].rows() == [[5, 6], [11, 12]]


def test_parties_serving_different_clients_abort():
    domain = Ring(64)
    per_party = client_batches(domain, CLIENTS, dim=2)
    # party 2 never saw client 1
    per_party[2] = per_party[2][:1]

    def make(i, player):
        config = SessionConfig(i, n_size=2, k_size=1, dim=2, domain=domain)
        return Orchestrator(config, player=player, listener=FakeListener(per_party[i]))

    def run(orchestrator):
        orchestrator.init()
        orchestrator.share_inputs()

    outputs, orchestrators = run_orchestrators(make, run)

    assert all(isinstance(each, CountMismatch) for each in outputs)
    assert all(each.aborted for each in orchestrators)


def test_seed_is_rejected_for_networked_parties():
    orchestrator = Orchestrator(SessionConfig(0, seed=7))

    with pytest.raises(ConfigurationError, match="in-process simulation"):
        orchestrator.init()
    assert orchestrator.aborted
    assert orchestrator.player is None


def test_client_shares_are_finalized_per_client():
    domain = Ring(64)
    per_party = client_batches(domain, CLIENTS, dim=2)

    def make(i, player):
        config = SessionConfig(i, n_size=2, k_size=1, dim=2, domain=domain)
        # listeners may hand clients over in any order
        return Orchestrator(config, player=player, listener=FakeListener(per_party[i][::-1]))

    def run(orchestrator):
        orchestrator.init()
        orchestrator.share_inputs()
        store = orchestrator.input.store
        return [store.remaining(client_contributor(client_id)) for client_id in (0, 1)], [
            store.count(client_contributor(client_id)) for client_id in (0, 1)
        ]

    outputs, orchestrators = run_orchestrators(make, run)

    assert outputs == [([0, 0], [6, 6])] * 3
    for each in orchestrators:
        assert each.batches["N"].dimensions() == (4, 2)
        assert each.batches["K"].dimensions() == (2, 2)
