import struct

from errors import UnsupportedComputation

SUPPORTED_RING_BITS = (64, 104, 128)
RING_WORD_BITS = 64

# largest prime below 2^128
DEFAULT_PRIME = 2**128 - 159


class Domain:
    """
    Arithmetic domain the shares live in, either a prime field or a ring Z_{2^k}.

    Plain values are signed integers. They are encoded to representatives in
    [0, modulus) and decoded back to [-modulus // 2, modulus // 2).
    """

    tag: str
    modulus: int

    def __init__(self, modulus):
        self.modulus = modulus
        self.nbytes = (modulus.bit_length() + 7) // 8

    def __eq__(self, other):
        return type(self) is type(other) and self.modulus == other.modulus

    def __hash__(self):
        return hash((self.tag, self.modulus))

    def add(self, lhs, rhs):
        return (lhs + rhs) % self.modulus

    def sub(self, lhs, rhs):
        return (lhs - rhs) % self.modulus

    def neg(self, value):
        return -value % self.modulus

    def encode(self, value):
        """
        Map a signed plain value to its representative.

        Args:
            value (int): plain value, must satisfy -modulus // 2 <= value < modulus // 2.

        Returns:
            int: representative in [0, modulus).

        Raises:
            ValueError: If the value is outside the representable range.
        """
        half = self.modulus // 2
        if not -half <= value < half:
            raise ValueError(f"{value} is not representable in {self}")
        return value % self.modulus

    def decode(self, value, sign=True):
        value %= self.modulus
        if sign and value >= self.modulus // 2:
            return value - self.modulus
        return value

    def random(self, prng):
        return prng.randrange(self.modulus)

    def share(self, value, rng):
        """
        Split a plain value into three additive shares.

        Args:
            value (int): signed plain value.
            rng: random source with a ``randrange`` method.

        Returns:
            list: [x_0, x_1, x_2] with x_0 + x_1 + x_2 = value (mod modulus).
        """
        x0 = self.random(rng)
        x1 = self.random(rng)
        x2 = (self.encode(value) - x0 - x1) % self.modulus
        return [x0, x1, x2]

    def reconstruct(self, shares, sign=True):
        return self.decode(sum(shares), sign)

    def serialize(self, value):
        return int.to_bytes(value % self.modulus, self.nbytes, "big")

    def deserialize(self, data):
        return int.from_bytes(data, "big") % self.modulus

    def pack(self, values):
        return b"".join(self.serialize(each) for each in values)

    def unpack(self, data):
        if len(data) % self.nbytes:
            raise ValueError(
                f"payload of {len(data)} bytes is not a multiple of {self.nbytes}"
            )
        return [
            self.deserialize(data[i : i + self.nbytes])
            for i in range(0, len(data), self.nbytes)
        ]


class PrimeField(Domain):
    tag = "p"

    def __init__(self, prime=DEFAULT_PRIME):
        assert prime > 2, "Prime must be larger than 2"
        super().__init__(prime)

    def __repr__(self):
        return f"PrimeField({self.modulus})"


class Ring(Domain):
    tag = "R"

    def __init__(self, bits=64):
        if bits not in SUPPORTED_RING_BITS:
            raise UnsupportedComputation(f"{bits}-bit ring not implemented")
        self.bits = bits
        super().__init__(1 << bits)

    def __repr__(self):
        return f"Ring({self.bits})"


def encode_specification(domain: Domain):
    """
    Serialize the computation type a party announces to a freshly connected client.

    Args:
        domain (Domain): the session's domain.

    Returns:
        bytes: tag byte followed by the domain parameters.
    """
    if isinstance(domain, PrimeField):
        prime = int.to_bytes(domain.modulus, domain.nbytes, "big")
        return b"p" + struct.pack(">I", len(prime)) + prime
    elif isinstance(domain, Ring):
        return b"R" + struct.pack(">ii", domain.bits, RING_WORD_BITS)
    else:
        raise ValueError(f"Invalid domain {domain!r}")


def decode_specification(data: bytes):
    """
    Parse a specification received during the client handshake.

    Raises:
        UnsupportedComputation: for unknown tags or unsupported ring widths.
    """
    if not data:
        raise UnsupportedComputation("Empty specification")

    tag = chr(data[0])
    if tag == "p":
        if len(data) < 5:
            raise UnsupportedComputation("Truncated prime field specification")
        (length,) = struct.unpack(">I", data[1:5])
        if len(data) < 5 + length:
            raise UnsupportedComputation(
                f"Truncated prime field specification, expected {length} modulus bytes"
            )
        prime = int.from_bytes(data[5 : 5 + length], "big")
        if prime <= 2:
            raise UnsupportedComputation(f"Prime {prime} not implemented")
        return PrimeField(prime)

    elif tag == "R":
        if len(data) < 9:
            raise UnsupportedComputation("Truncated ring specification")
        ring_bits, word_bits = struct.unpack(">ii", data[1:9])
        if word_bits != RING_WORD_BITS:
            raise UnsupportedComputation(f"{word_bits}-bit ring not implemented")
        if ring_bits not in SUPPORTED_RING_BITS:
            raise UnsupportedComputation(f"{ring_bits}-bit ring not implemented")
        return Ring(ring_bits)

    raise UnsupportedComputation(f"Type {tag} not implemented")
