import random

import pytest

from harness import reveal, run_parties, share_from

from client_io import InputDistributor
from errors import OpenMismatch, Underflow, UsageError
from field import PrimeField, Ring
from inputs import InputCollector, client_contributor
from rep3protocol import RSS3PC, Matrix
from reveal import RevealCoordinator


class RecordingChannel:
    def __init__(self):
        self.frames = []

    def send(self, data):
        self.frames.append(data)


class RecordingClient:
    def __init__(self):
        self.channels = [RecordingChannel() for _ in range(3)]


def test_client_batch_is_revealed_by_the_parties():
    domain = PrimeField()
    client = RecordingClient()
    InputDistributor(client, domain, random.Random(3)).submit(Matrix.from_rows([[7, 2, 1]]))

    def party(protocol):
        (frame,) = client.channels[protocol.player_id].frames
        values = domain.unpack(frame)

        collector = InputCollector(protocol)
        collector.reset()
        for j in range(0, len(values), 2):
            collector.add_shared(client_contributor(3), RSS3PC(values[j], values[j + 1]))
        collector.exchange()

        shares = [collector.finalize(client_contributor(3)) for _ in range(3)]
        with pytest.raises(Underflow):
            collector.finalize(client_contributor(3))
        return reveal(protocol, shares)

    assert run_parties(party, domain=domain) == [[7, 2, 1]] * 3


def test_one_share_finalized_from_each_contributor():
    def party(protocol):
        collector = InputCollector(protocol)
        collector.reset()
        collector.add([7, 2, 1][protocol.player_id])
        collector.exchange()
        return reveal(protocol, [collector.finalize(p) for p in range(3)])

    assert run_parties(party) == [[7, 2, 1]] * 3


@pytest.mark.parametrize("domain", [PrimeField(), Ring(64), Ring(128)])
def test_round_trip_over_the_whole_range(domain):
    half = domain.modulus // 2
    values = [0, 1, -1, half - 1, -half, 123456789]

    def party(protocol):
        return reveal(protocol, share_from(protocol, values, owner=2))

    assert run_parties(party, domain=domain) == [values] * 3


def test_result_is_unavailable_until_exchange():
    def party(protocol):
        shares = share_from(protocol, [11, -12], owner=0)
        coordinator = RevealCoordinator(protocol)

        first = coordinator.partial_open(shares[:1])
        second = coordinator.partial_open(shares[1:])
        assert not first.done()
        with pytest.raises(UsageError):
            first.result()

        coordinator.exchange()
        return first.result() + second.result()

    assert run_parties(party) == [[11, -12]] * 3


def test_inconsistent_openings_are_detected():
    def party(protocol):
        shares = share_from(protocol, [5], owner=1)
        if protocol.player_id == 0:
            shares = [RSS3PC(shares[0][0], shares[0][1] + 1)]
        RevealCoordinator(protocol).open(shares)

    outcomes = run_parties(party, return_exceptions=True)
    # party 2 gets the tampered slice from party 0 and a clean copy from party 1
    assert isinstance(outcomes[2], OpenMismatch)
    assert outcomes[0] is None and outcomes[1] is None


def test_linear_operations_on_shares():
    def party(protocol):
        a = share_from(protocol, [10, -4], owner=0)
        b = share_from(protocol, [5, 6], owner=1)
        total = protocol.add_sp(protocol.add_ss(a, b), [100, 100])
        diff = protocol.sub_ss(a, b)
        return reveal(protocol, total + diff)

    assert run_parties(party) == [[115, 102, 5, -10]] * 3
