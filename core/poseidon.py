"""
core/poseidon.py -- Poseidon hash over the BN254 scalar field (circomlib parameters).

The zkLogin circuit hashes with circomlib's Poseidon: x^5 S-box, 8 full rounds,
and a width-dependent number of partial rounds. The state is [0, *inputs] and
the hash is state[0] after the permutation.

Round constants and MDS matrices are not shipped as tables. They are rebuilt
from the Grain LFSR that the Poseidon authors use to generate them, seeded
with (prime field, x^alpha S-box, 254-bit field, width, R_F, R_P):

  - round constants: 254-bit draws, redrawn while >= p, (R_F + R_P) * t of them
  - MDS matrix:      Cauchy matrix M[i][j] = 1 / (x_i + y_j) from the next 2t
                     draws reduced mod p, redrawn on duplicates or x_i + y_j = 0

Parameters for a width are generated on first use and cached.

Layer rule: no imports from auth/, api/, or web/.
"""

from functools import lru_cache

BN254_FIELD_SIZE = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FULL_ROUNDS = 8
# Partial rounds for widths t = 2..17 (1..16 inputs).
PARTIAL_ROUNDS = (56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68)
MAX_INPUTS = len(PARTIAL_ROUNDS)

_FIELD_BITS = 254


class _Grain:
    """Self-shrinking Grain LFSR, 80-bit state. Bit k of _state is sequence index k."""

    def __init__(self, width: int, partial_rounds: int) -> None:
        header = [
            (1, 2),  # prime field
            (0, 4),  # x^alpha S-box
            (_FIELD_BITS, 12),
            (width, 12),
            (FULL_ROUNDS, 10),
            (partial_rounds, 10),
        ]
        bits: list[int] = []
        for value, size in header:
            bits.extend(int(b) for b in format(value, f"0{size}b"))
        bits.extend([1] * 30)

        self._state = sum(bit << k for k, bit in enumerate(bits))
        for _ in range(160):
            self._clock()

    def _clock(self) -> int:
        s = self._state
        bit = ((s >> 62) ^ (s >> 51) ^ (s >> 38) ^ (s >> 23) ^ (s >> 13) ^ s) & 1
        self._state = (s >> 1) | (bit << 79)
        return bit

    def _bit(self) -> int:
        while True:
            keep = self._clock()
            bit = self._clock()
            if keep:
                return bit

    def draw(self, nbits: int = _FIELD_BITS) -> int:
        value = 0
        for _ in range(nbits):
            value = (value << 1) | self._bit()
        return value


@lru_cache(maxsize=None)
def parameters(width: int) -> tuple[tuple[int, ...], tuple[tuple[int, ...], ...]]:
    """Return (round_constants, mds_matrix) for a state of `width` elements.

    Raises:
        ValueError: If width is outside 2..17.
    """
    if not 2 <= width <= MAX_INPUTS + 1:
        raise ValueError(f"Poseidon width must be between 2 and {MAX_INPUTS + 1}, got {width}")
    p = BN254_FIELD_SIZE
    partial = PARTIAL_ROUNDS[width - 2]
    grain = _Grain(width, partial)

    constants = []
    for _ in range((FULL_ROUNDS + partial) * width):
        c = grain.draw()
        while c >= p:
            c = grain.draw()
        constants.append(c)

    while True:
        draws = [grain.draw() % p for _ in range(2 * width)]
        while len(set(draws)) != len(draws):
            draws = [grain.draw() % p for _ in range(2 * width)]
        xs, ys = draws[:width], draws[width:]
        if any((x + y) % p == 0 for x in xs for y in ys):
            continue
        mds = tuple(tuple(pow(x + y, p - 2, p) for y in ys) for x in xs)
        return tuple(constants), mds


def permute(state: list[int]) -> list[int]:
    """Run the Poseidon permutation over a full state."""
    p = BN254_FIELD_SIZE
    width = len(state)
    constants, mds = parameters(width)
    partial = PARTIAL_ROUNDS[width - 2]
    half = FULL_ROUNDS // 2

    state = list(state)
    offset = 0
    for r in range(FULL_ROUNDS + partial):
        state = [(s + constants[offset + i]) % p for i, s in enumerate(state)]
        offset += width
        if r < half or r >= half + partial:
            state = [pow(s, 5, p) for s in state]
        else:
            state[0] = pow(state[0], 5, p)
        state = [sum(m * s for m, s in zip(row, state)) % p for row in mds]
    return state


def poseidon(inputs: list[int]) -> int:
    """Hash 1..16 field elements.

    Raises:
        ValueError: On an empty or oversized input list, or an element outside the field.
    """
    if not 1 <= len(inputs) <= MAX_INPUTS:
        raise ValueError(f"Poseidon takes 1 to {MAX_INPUTS} inputs, got {len(inputs)}")
    for x in inputs:
        if not 0 <= x < BN254_FIELD_SIZE:
            raise ValueError(f"Element {x} is not in the BN254 scalar field")
    return permute([0, *inputs])[0]
