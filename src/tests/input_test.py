import random

import pytest

from harness import reveal, run_parties

from errors import CountMismatch, Underflow, UsageError
from field import PrimeField, Ring
from inputs import InputCollector, client_contributor
from rep3protocol import RSS3PC


def test_finalize_round_robin_restores_submission_order():
    m = 4

    def party(protocol):
        collector = InputCollector(protocol)
        collector.reset()
        for k in range(m):
            collector.add(100 * protocol.player_id + k)
        collector.exchange()

        shares = []
        for _ in range(m):
            for contributor in range(3):
                shares.append(collector.finalize(contributor))
        return reveal(protocol, shares)

    results = run_parties(party)

    expected = [value for k in range(m) for value in (k, 100 + k, 200 + k)]
    assert results == [expected] * 3


def test_shares_are_indexable_after_exchange():
    def party(protocol):
        collector = InputCollector(protocol)
        collector.reset()
        collector.add(-5 * (protocol.player_id + 1))
        collector.add(protocol.player_id)
        collector.exchange()
        shares = [collector.store.get(contributor, 0) for contributor in range(3)]
        assert collector.store.get(1, 0) == collector.finalize(1)
        return reveal(protocol, shares)

    assert run_parties(party, domain=Ring(64)) == [[-5, -10, -15]] * 3


def test_count_mismatch_aborts_every_party():
    def party(protocol):
        collector = InputCollector(protocol)
        collector.reset()
        for k in range(5 if protocol.player_id == 0 else 4):
            collector.add(k)
        collector.exchange()

    outcomes = run_parties(party, return_exceptions=True)

    for outcome in outcomes:
        assert isinstance(outcome, CountMismatch)
        assert sorted(outcome.counts) == [4, 4, 5]


def test_finalize_past_contributions_underflows():
    def party(protocol):
        collector = InputCollector(protocol)
        collector.reset()
        collector.add(1)
        collector.add(2)
        collector.exchange()
        collector.finalize(1)
        collector.finalize(1)
        with pytest.raises(Underflow):
            collector.finalize(1)
        # other contributors are unaffected
        return collector.store.remaining(0), collector.store.remaining(2)

    assert run_parties(party) == [(2, 2)] * 3


def test_round_order_is_enforced():
    def party(protocol):
        collector = InputCollector(protocol)
        with pytest.raises(UsageError):
            collector.add(1)

        collector.reset()
        collector.add(1)
        with pytest.raises(UsageError):
            collector.finalize(0)
        collector.exchange()

        with pytest.raises(UsageError):
            collector.add(2)

        collector.reset()
        collector.add(3)
        collector.exchange()
        return reveal(protocol, [collector.finalize(2)])

    assert run_parties(party) == [[3]] * 3


def client_views(domain, values, seed):
    """Each party's slices of ``values`` split by a client."""
    rng = random.Random(seed)
    views = [[], [], []]
    for value in values:
        shares = domain.share(value, rng)
        for i in range(3):
            views[i].append(RSS3PC(shares[i], shares[(i + 1) % 3]))
    return views


def test_client_shares_join_the_round():
    domain = PrimeField()
    first = client_views(domain, [7, 2, 1], seed=1)
    second = client_views(domain, [-8], seed=2)

    def party(protocol):
        collector = InputCollector(protocol)
        collector.reset()
        collector.add(protocol.player_id + 40)
        for share in first[protocol.player_id]:
            collector.add_shared(client_contributor(0), share)
        for share in second[protocol.player_id]:
            collector.add_shared(client_contributor(1), share)
        collector.exchange()

        with pytest.raises(UsageError):
            collector.add_shared(client_contributor(0), first[protocol.player_id][0])

        shares = [collector.finalize(client_contributor(0)) for _ in range(3)]
        shares.append(collector.finalize(client_contributor(1)))
        shares.extend(collector.finalize(contributor) for contributor in range(3))
        assert collector.store.remaining(client_contributor(1)) == 0
        return reveal(protocol, shares)

    assert run_parties(party) == [[7, 2, 1, -8, 40, 41, 42]] * 3


def test_client_count_mismatch_aborts_every_party():
    domain = PrimeField()
    views = client_views(domain, [5, 6], seed=3)

    def party(protocol):
        collector = InputCollector(protocol)
        collector.reset()
        # party 1 lost the second share of client 4
        shares = views[protocol.player_id][: 1 if protocol.player_id == 1 else 2]
        for share in shares:
            collector.add_shared(client_contributor(4), share)
        collector.exchange()

    outcomes = run_parties(party, return_exceptions=True)

    for outcome in outcomes:
        assert isinstance(outcome, CountMismatch)
        assert outcome.counts[1] == {client_contributor(4): 1}
        assert outcome.counts[0] == {client_contributor(4): 2}
