import numpy as np

from errors import LengthMismatch, ShuffleError
from rep3protocol import RSS3PC, Matrix, Rep3Protocol


def permute(values, perm, stride=1):
    """
    Reorder whole records of ``stride`` consecutive values.

    Record i of the output is record ``perm[i]`` of the input.
    """
    if len(values) == 0:
        return []
    records = np.array(values, dtype=object).reshape(-1, stride)
    return records[np.asarray(perm, dtype=np.int64)].reshape(-1).tolist()


def invert(perm):
    return np.argsort(np.asarray(perm, dtype=np.int64)).tolist()


class PermutationStore:
    """
    Permutations generated in this run, addressed by handle.

    Each entry holds one permutation per party pair (j, j + 1); the pair this
    party is not part of is stored as None.
    """

    def __init__(self):
        self.shuffles = []

    def add(self, perms, length):
        self.shuffles.append((length, perms))
        return len(self.shuffles) - 1

    def get(self, handle):
        if not isinstance(handle, int) or not 0 <= handle < len(self.shuffles):
            raise ShuffleError(f"Unknown permutation handle {handle!r}")
        return self.shuffles[handle]

    def __len__(self):
        return len(self.shuffles)


class Shuffler:
    """
    Oblivious shuffle for 3-party replicated shares.

    The joint permutation is the composition of three permutations, one per
    pair of parties. Each party knows exactly two of them, so no party knows
    the composition. Applying it takes one resharing round per pair.
    """

    protocol: Rep3Protocol
    store: PermutationStore

    def __init__(self, protocol: Rep3Protocol, store=None):
        self.protocol = protocol
        self.store = store if store is not None else PermutationStore()

    def _pair_role(self, pair):
        player_id = self.protocol.player_id
        if player_id == pair:
            return "first"
        elif player_id == (pair + 1) % 3:
            return "second"
        return "helper"

    def generate(self, length):
        """
        Derive a fresh permutation of ``length`` records.

        Args:
            length (int): number of records to permute.

        Returns:
            int: handle to pass to ``apply``.
        """
        assert length >= 0, "Length must be non-negative"
        perms = []
        for pair in range(3):
            role = self._pair_role(pair)
            if role == "first":
                seed = self.protocol.PRNGs[1].getrandbits(128)
            elif role == "second":
                seed = self.protocol.PRNGs[0].getrandbits(128)
            else:
                perms.append(None)
                continue
            perms.append(np.random.default_rng(seed).permutation(length).tolist())

        return self.store.add(perms, length)

    def apply(
        self,
        values,
        total_length,
        stride,
        src_offset=0,
        dst_offset=0,
        handle=None,
        inverse=False,
    ):
        """
        Shuffle a region of shares by the permutation behind ``handle``.

        Args:
            values (list of RSS3PC): share store to read from.
            total_length (int): number of shares in the region.
            stride (int): shares per record; records move as a whole.
            src_offset (int, optional): start of the region in ``values``.
            dst_offset (int, optional): where the shuffled region is written.
            handle (int): handle returned by ``generate``.
            inverse (bool, optional): apply the inverse permutation.

        Returns:
            list of RSS3PC: a new store, equal to ``values`` except for the
            shuffled, re-randomized region at ``dst_offset``.

        Raises:
            LengthMismatch: if the region does not fit the store or the handle.
        """
        if stride <= 0:
            raise LengthMismatch(f"Stride must be positive, got {stride}")
        if total_length % stride:
            raise LengthMismatch(
                f"Total length {total_length} is not a multiple of stride {stride}"
            )
        if src_offset < 0 or src_offset + total_length > len(values):
            raise LengthMismatch(
                f"Region [{src_offset}, {src_offset + total_length}) exceeds store of size {len(values)}"
            )
        if dst_offset < 0 or dst_offset > len(values):
            raise LengthMismatch(f"Destination offset {dst_offset} is out of range")

        length, perms = self.store.get(handle)
        if total_length // stride != length:
            raise LengthMismatch(
                f"Handle {handle} permutes {length} records, got {total_length // stride}"
            )

        region = values[src_offset : src_offset + total_length]
        first = [each[0] for each in region]
        second = [each[1] for each in region]

        pairs = [2, 1, 0] if inverse else [0, 1, 2]
        for pair in pairs:
            perm = perms[pair]
            if perm is not None and inverse:
                perm = invert(perm)
            first, second = self._reshare(pair, perm, first, second, stride)

        shuffled = [RSS3PC(s1, s2) for s1, s2 in zip(first, second)]

        ret = list(values)
        if dst_offset + total_length > len(ret):
            ret.extend([None] * (dst_offset + total_length - len(ret)))
        ret[dst_offset : dst_offset + total_length] = shuffled
        return ret

    def _reshare(self, pair, perm, first, second, stride):
        # pair (a, b) = (pair, pair + 1) permutes, c = pair + 2 only re-shares.
        # afterwards a holds (x'_a, x'_b), b holds (x'_b, x'_c), c holds (x'_c, x'_a)
        protocol = self.protocol
        domain = protocol.domain
        role = self._pair_role(pair)
        size = len(first)

        if role == "first":
            y = permute([domain.add(s1, s2) for s1, s2 in zip(first, second)], perm, stride)
            z = [domain.random(protocol.PRNGs[1]) for _ in range(size)]
            x_a = [domain.add(each, mask) for each, mask in zip(y, z)]
            protocol.player.send(x_a, -1)
            x_b = protocol.player.recv(1)
            return x_a, x_b

        elif role == "second":
            y = permute(second, perm, stride)
            z = [domain.random(protocol.PRNGs[0]) for _ in range(size)]
            beta = [domain.random(protocol.PRNGs[1]) for _ in range(size)]
            x_b = [
                domain.sub(domain.sub(each, mask), b) for each, mask, b in zip(y, z, beta)
            ]
            protocol.player.send(x_b, -1)
            return x_b, beta

        else:
            beta = [domain.random(protocol.PRNGs[0]) for _ in range(size)]
            x_a = protocol.player.recv(1)
            return beta, x_a

    def apply_columns(self, matrix: Matrix, handle, inverse=False):
        """
        Shuffle a dimension-major matrix (one row per dimension, one column
        per record), reusing ``handle`` so every dimension moves alike.
        """
        data = []
        for index in range(matrix.nrows):
            data.extend(
                self.apply(matrix.row(index), matrix.ncols, 1, handle=handle, inverse=inverse)
            )
        return Matrix(matrix.nrows, matrix.ncols, data)
