import numpy as np

from rep3protocol import Matrix


def fill_random_values(rng: np.random.Generator, n, dim, min_val=1, max_val=100):
    """
    Draws an n x dim matrix of uniform integers in [min_val, max_val].

    Args:
        rng (np.random.Generator): explicit random source, seeded by the caller.
        n (int): The number of rows (records).
        dim (int): The number of columns (dimensions).
        min_val (int, optional): Smallest value. Defaults to 1.
        max_val (int, optional): Largest value. Defaults to 100.

    Returns:
        Matrix: the filled matrix, with plain Python ints.
    """
    values = rng.integers(min_val, max_val, size=(n, dim), endpoint=True)
    return Matrix(n, dim, [int(each) for each in values.reshape(-1)])
