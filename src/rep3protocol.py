import random

from field import Domain
from network import BasePlayer


class RSS3PC:
    data: list

    def __init__(self, s1, s2):
        """
        Initializes one party's view of a replicated secret share (3 party).

        Party i holds the slices (x_i, x_{i+1}) of x = x_0 + x_1 + x_2.

        Args:
            s1 (int): The first share slice, x_i.
            s2 (int): The second share slice, x_{i+1}.
        """
        self.data = [s1, s2]

    def __getitem__(self, index):
        return self.data[index]

    def __setitem__(self, index, value):
        self.data[index] = value

    def __eq__(self, other):
        return isinstance(other, RSS3PC) and self.data == other.data

    def __str__(self):
        return f"({self.data[0]}, {self.data[1]})"

    def __repr__(self):
        return f"({self.data[0]}, {self.data[1]})"


class Matrix:
    data: list
    nrows: int
    ncols: int

    def __init__(self, n, m, data=None):
        """
        Initializes an instance of the Matrix class.

        The elements live in one flat, row-major list; records are rows.

        Args:
            n (int): The number of rows.
            m (int): The number of columns.
            data (list, optional): The initial data. Defaults to None.
        """
        if data is None:
            self.data = [0] * (n * m)
        else:
            assert len(data) == n * m, f"Expected {n * m} elements, got {len(data)}"
            self.data = list(data)
        self.nrows = n
        self.ncols = m

    @classmethod
    def from_rows(cls, rows):
        rows = [list(row) for row in rows]
        ncols = len(rows[0]) if rows else 0
        assert all(len(row) == ncols for row in rows), "Rows must have equal length"
        return cls(len(rows), ncols, [each for row in rows for each in row])

    def row(self, index):
        """
        Returns a row from the data matrix.

        Args:
            index (int): The index of the row to retrieve.

        Returns:
            list: The row of data.

        Raises:
            IndexError: If the index is out of range.
        """
        if index >= self.nrows:
            raise IndexError("Index out of range")
        return self.data[index * self.ncols : (index + 1) * self.ncols]

    def col(self, index):
        """
        Returns a list containing the elements in the specified column.

        Args:
            index (int): The index of the column.

        Returns:
            list: A list containing the elements in the specified column.

        Raises:
            IndexError: If the index is out of range.
        """
        if index >= self.ncols:
            raise IndexError("Index out of range")
        return [self.data[i * self.ncols + index] for i in range(self.nrows)]

    def rows(self):
        return [self.row(i) for i in range(self.nrows)]

    def dimensions(self):
        return (self.nrows, self.ncols)

    def __getitem__(self, index):
        if isinstance(index, tuple):
            i, j = index
            return self.data[i * self.ncols + j]
        return self.row(index)

    def __setitem__(self, index, value):
        if isinstance(index, tuple):
            assert len(index) == 2, "Index must be a tuple of length 2"
            i, j = index
            self.data[i * self.ncols + j] = value
        else:
            self.data[index * self.ncols : (index + 1) * self.ncols] = value

    def __eq__(self, other):
        return (
            isinstance(other, Matrix)
            and self.dimensions() == other.dimensions()
            and self.data == other.data
        )

    def __str__(self):
        if not self.data:
            return "[]\n"
        each_width = [
            max(len(str(each)) for each in self.col(i)) + 1 for i in range(self.ncols)
        ]
        ret = ""
        for i in range(self.nrows):
            ret += (
                "["
                + " ".join(
                    [str(self[i, j]).rjust(each_width[j]) for j in range(self.ncols)]
                )
                + "]\n"
            )
        return ret

    def __repr__(self):
        return self.__str__()


class Rep3Protocol:
    """
    One party's session of 3-party replicated secret sharing.

    Holds the player, the session domain and two PRNGs correlated with the
    neighbours: PRNGs[0] is shared with the previous party, PRNGs[1] with the
    next one. Both parties of a pair must consume their shared PRNG in the
    same order.
    """

    player: BasePlayer
    PRNGs: list
    domain: Domain

    def __init__(self, player, domain, seed_source=None):
        """
        Initializes the session and agrees on the pairwise PRNG seeds.

        Args:
            player (BasePlayer): connected player.
            domain (Domain): field or ring the shares live in.
            seed_source (optional): random source for this party's seed
                contributions. Defaults to ``random.SystemRandom()``.
        """
        assert player.num_players == 3, "Replicated sharing needs exactly 3 parties"

        self.player = player
        self.player_id = player.player_id
        self.domain = domain

        if seed_source is None:
            seed_source = random.SystemRandom()

        # each pair seed mixes one contribution from each side of the pair
        to_prev = seed_source.getrandbits(128)
        to_next = seed_source.getrandbits(128)
        self.player.send(to_next, 1)
        self.player.send(to_prev, -1)
        from_prev = self.player.recv(-1)
        from_next = self.player.recv(1)

        self.PRNGs = [random.Random(to_prev ^ from_prev), random.Random(to_next ^ from_next)]

    def disconnect(self):
        self.player.disconnect()

    def add_ss(self, lhs: list, rhs: list):
        """
        Add two secret shared values
        """

        assert len(lhs) == len(rhs), "Lengths of lhs and rhs must be equal"
        add = self.domain.add
        return [RSS3PC(add(l[0], r[0]), add(l[1], r[1])) for l, r in zip(lhs, rhs)]

    def add_sp(self, lhs: list, rhs: list):
        """
        Add secret shared value with public value

        The public value is folded into slice x_1, held by players 0 and 1.
        """

        assert len(lhs) == len(rhs), "Lengths of lhs and rhs must be equal"

        ret = [RSS3PC(each[0], each[1]) for each in lhs]
        if self.player_id == 0:
            for i in range(len(lhs)):
                ret[i][1] = self.domain.add(ret[i][1], self.domain.encode(rhs[i]))
        elif self.player_id == 1:
            for i in range(len(lhs)):
                ret[i][0] = self.domain.add(ret[i][0], self.domain.encode(rhs[i]))

        return ret

    def neg(self, shares: list):
        return [RSS3PC(self.domain.neg(each[0]), self.domain.neg(each[1])) for each in shares]

    def sub_ss(self, lhs: list, rhs: list):
        return self.add_ss(lhs, self.neg(rhs))
