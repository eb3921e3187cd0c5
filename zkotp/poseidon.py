"""
Poseidon Hash over the BN254 Scalar Field

Matches circomlib's Poseidon template: width t = inputs + 1, 8 full rounds,
a width-dependent number of partial rounds, x^5 S-box, state initialised
with a zero capacity element in position 0.

Round constants and the Cauchy MDS matrix are derived with the Grain LFSR
parameter generator of the Poseidon reference implementation, run with
(field=1, sbox=0, n=254, t, R_F=8, R_P). The hash computed here and the hash
computed inside the circuit must agree bit for bit.
"""

from collections import deque
from functools import lru_cache
from typing import List, Sequence, Tuple

from .errors import ValidationError
from .field import FIELD_MODULUS

FIELD_BITS = 254
N_ROUNDS_F = 8
N_ROUNDS_P = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]
MAX_INPUTS = len(N_ROUNDS_P)


def _bits(value: int, width: int) -> List[int]:
    return [int(b) for b in format(value, f"0{width}b")]


class GrainLFSR:
    """
    80-bit Grain LFSR in self-shrinking mode.

    Bits are clocked in pairs; the second bit of a pair is emitted only when
    the first one is set.
    """

    def __init__(self, field: int, sbox: int, n: int, t: int, r_f: int, r_p: int):
        seed = (
            _bits(field, 2) + _bits(sbox, 4) + _bits(n, 12) + _bits(t, 12)
            + _bits(r_f, 10) + _bits(r_p, 10) + [1] * 30
        )
        self._state = deque(seed, maxlen=80)
        for _ in range(160):
            self._clock()

    def _clock(self) -> int:
        s = self._state
        new_bit = s[62] ^ s[51] ^ s[38] ^ s[23] ^ s[13] ^ s[0]
        s.append(new_bit)
        return new_bit

    def next_bit(self) -> int:
        while True:
            first = self._clock()
            second = self._clock()
            if first == 1:
                return second

    def random_int(self, num_bits: int) -> int:
        value = 0
        for _ in range(num_bits):
            value = (value << 1) | self.next_bit()
        return value


def _round_constants(grain: GrainLFSR, count: int) -> List[int]:
    constants = []
    while len(constants) < count:
        candidate = grain.random_int(FIELD_BITS)
        if candidate < FIELD_MODULUS:
            constants.append(candidate)
    return constants


def _cauchy_mds(grain: GrainLFSR, t: int) -> List[List[int]]:
    while True:
        values = [grain.random_int(FIELD_BITS) % FIELD_MODULUS for _ in range(2 * t)]
        if len(set(values)) != len(values):
            continue
        xs, ys = values[:t], values[t:]
        if any((x + y) % FIELD_MODULUS == 0 for x in xs for y in ys):
            continue
        return [
            [pow((x + y) % FIELD_MODULUS, -1, FIELD_MODULUS) for y in ys]
            for x in xs
        ]


@lru_cache(maxsize=None)
def parameters(t: int) -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...]]:
    """
    Return (round_constants, mds_matrix) for state width t.

    Generated once per width and cached for the life of the process.
    """
    if t < 2 or t > MAX_INPUTS + 1:
        raise ValueError(f"Unsupported Poseidon width: {t}")

    r_p = N_ROUNDS_P[t - 2]
    grain = GrainLFSR(1, 0, FIELD_BITS, t, N_ROUNDS_F, r_p)
    constants = _round_constants(grain, (N_ROUNDS_F + r_p) * t)
    mds = _cauchy_mds(grain, t)
    return tuple(constants), tuple(tuple(row) for row in mds)


def poseidon(inputs: Sequence[int]) -> int:
    """
    Hash 1..16 field elements with circomlib-compatible Poseidon.

    Args:
        inputs: Integers; reduced into the field before hashing

    Returns:
        The hash as an integer field element
    """
    if not 1 <= len(inputs) <= MAX_INPUTS:
        raise ValidationError("inputs", f"expected 1 to {MAX_INPUTS} elements, got {len(inputs)}")

    t = len(inputs) + 1
    constants, mds = parameters(t)
    r_p = N_ROUNDS_P[t - 2]
    half_f = N_ROUNDS_F // 2
    p = FIELD_MODULUS

    state = [0] + [int(x) % p for x in inputs]
    for r in range(N_ROUNDS_F + r_p):
        offset = r * t
        state = [(s + constants[offset + i]) % p for i, s in enumerate(state)]
        if r < half_f or r >= half_f + r_p:
            state = [pow(s, 5, p) for s in state]
        else:
            state[0] = pow(state[0], 5, p)
        state = [sum(row[j] * state[j] for j in range(t)) % p for row in mds]

    return state[0]
