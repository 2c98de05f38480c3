"""
PURPOSE: Seeded pseudo-random source for reproducible Monte Carlo runs.

RESPONSIBILITIES:
- Produce a deterministic stream of uniform [0, 1) draws from a 32-bit seed
- Offer convenience draws (normal, exponential, poisson, binomial, categorical)
- Checkpoint/restore, reset and fork into independent child streams
- Single responsibility: random numbers only, no distribution validation

The generator is Marsaglia's xorshift128 over four unsigned 32-bit words. Every
operation masks to 32 bits so the stream is identical on all platforms.
"""

import logging
import math
import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from .config import BINOMIAL_NORMAL_CUTOFF, POISSON_NORMAL_CUTOFF

logger = logging.getLogger(__name__)

__all__ = ["RNGState", "SeededRNG", "create_rng", "create_parallel_rngs", "generate_seed"]

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_MAX_INT32 = 2147483647
_TWO_POW_26 = 67108864.0
_TWO_POW_53 = 9007199254740992.0


@dataclass(frozen=True)
class RNGState:
    """Snapshot of a SeededRNG that fully determines its future output.

    Attributes:
        state (tuple): The four 32-bit generator words.
        seed (int): Seed the generator was constructed with.
        count (int): Number of 32-bit words generated so far.
    """
    state: Tuple[int, int, int, int]
    seed: int
    count: int

    def to_dict(self) -> Dict[str, object]:
        return {"state": list(self.state), "seed": self.seed, "count": self.count}

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "RNGState":
        return cls(
            state=tuple(int(w) for w in payload["state"]),
            seed=int(payload["seed"]),
            count=int(payload.get("count", 0)),
        )


def _mix_seed(seed: int) -> List[int]:
    """Spread a 32-bit seed across four words with murmur3-style finalizers."""
    s = seed & _MASK32
    state = [0, 0, 0, 0]
    for i in range(4):
        s = (s + 0x9E3779B9) & _MASK32
        z = s
        z ^= z >> 16
        z = (z * 0x85EBCA6B) & _MASK32
        z ^= z >> 13
        z = (z * 0xC2B2AE35) & _MASK32
        z ^= z >> 16
        state[i] = z
    if not any(state):
        state[0] = 1
    return state


class SeededRNG:
    """
    Deterministic random source built on xorshift128.

    Two generators built from the same seed yield the same sequence. Use
    ``fork()`` to derive an independent stream for a second chain instead
    of sharing one generator between workers.

    Usage:
        rng = SeededRNG(12345)
        u = rng.next()            # uniform in [0, 1)
        checkpoint = rng.save_state()
        rng.restore_state(checkpoint)
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = generate_seed()
        self._seed = int(seed)
        self._state = _mix_seed(self._seed)
        self._count = 0

    @property
    def seed(self) -> int:
        """Seed the generator was constructed (or last restored) with."""
        return self._seed

    @property
    def count(self) -> int:
        """Number of 32-bit words generated since construction or reset."""
        return self._count

    def _next_uint32(self) -> int:
        self._count += 1
        x, y, z, w = self._state

        t = x ^ ((x << 11) & _MASK32)
        w_next = (w ^ (w >> 19) ^ t ^ (t >> 8)) & _MASK32

        self._state = [y, z, w, w_next]
        return w_next

    def next(self) -> float:
        """Uniform draw in [0, 1) with 53 bits of mantissa from two words."""
        hi = self._next_uint32() >> 5
        lo = self._next_uint32() >> 6
        return (hi * _TWO_POW_26 + lo) / _TWO_POW_53

    __call__ = next

    def uniform(self, low: float, high: float) -> float:
        """Uniform draw in [low, high)."""
        return low + self.next() * (high - low)

    def normal(self, mean: float = 0.0, std_dev: float = 1.0) -> float:
        """Gaussian draw via the polar Box-Muller method. The spare is discarded."""
        while True:
            u = self.next() * 2 - 1
            v = self.next() * 2 - 1
            s = u * u + v * v
            if 0 < s < 1:
                break
        return mean + std_dev * u * math.sqrt(-2.0 * math.log(s) / s)

    def exponential(self, rate: float) -> float:
        """Inverse-CDF exponential draw: -ln(1 - U) / rate."""
        return -math.log(1.0 - self.next()) / rate

    def poisson(self, lam: float) -> int:
        """Knuth's product method below the cutoff, rounded normal above it."""
        if lam < POISSON_NORMAL_CUTOFF:
            limit = math.exp(-lam)
            k = 0
            p = 1.0
            while True:
                k += 1
                p *= self.next()
                if p <= limit:
                    return k - 1
        return max(0, int(round(self.normal(lam, math.sqrt(lam)))))

    def binomial(self, n: int, p: float) -> int:
        """Bernoulli summation below the cutoff, clamped normal above it."""
        if n < BINOMIAL_NORMAL_CUTOFF:
            return sum(1 for _ in range(n) if self.next() < p)
        mean = n * p
        std_dev = math.sqrt(n * p * (1 - p))
        return max(0, min(n, int(round(self.normal(mean, std_dev)))))

    def categorical(self, probabilities: Dict[str, float]) -> str:
        """Walk the CDF of a label -> probability mapping."""
        items = list(probabilities.items())
        u = self.next()
        cumulative = 0.0
        for category, prob in items:
            cumulative += prob
            if u <= cumulative:
                return category
        # Floating-point shortfall in the cumulative sum
        return items[-1][0]

    def shuffle(self, items: List[T]) -> List[T]:
        """Fisher-Yates shuffle in place. Returns the same list."""
        for i in range(len(items) - 1, 0, -1):
            j = int(math.floor(self.next() * (i + 1)))
            items[i], items[j] = items[j], items[i]
        return items

    def pick(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("cannot pick from an empty sequence")
        return items[int(math.floor(self.next() * len(items)))]

    def sample(self, items: Sequence[T], n: int) -> List[T]:
        """Pick n elements without replacement."""
        shuffled = list(items)
        self.shuffle(shuffled)
        return shuffled[:n]

    def save_state(self) -> RNGState:
        return RNGState(state=tuple(self._state), seed=self._seed, count=self._count)

    def restore_state(self, state: RNGState) -> None:
        if len(state.state) != 4:
            raise ValueError("Invalid state: must have 4 elements")
        self._state = [int(w) & _MASK32 for w in state.state]
        self._seed = state.seed
        self._count = state.count

    def reset(self) -> None:
        """Return to the state immediately after construction."""
        self._state = _mix_seed(self._seed)
        self._count = 0

    def clone(self) -> "SeededRNG":
        """Copy with identical state; both copies then produce the same stream."""
        twin = SeededRNG(self._seed)
        twin.restore_state(self.save_state())
        return twin

    def fork(self) -> "SeededRNG":
        """Advance this stream once and seed an independent child from that word."""
        child = SeededRNG(self._next_uint32())
        logger.debug(f"Forked child stream with seed {child.seed} from parent seed {self._seed}")
        return child

    def __repr__(self) -> str:
        return f"SeededRNG(seed={self._seed}, count={self._count})"

    def int(self, low, high):
        """Uniform integer in [low, high], both ends inclusive."""
        return math.floor(self.next() * (high - low + 1)) + low


def generate_seed() -> int:
    """Draw a fresh seed from the operating system's entropy source."""
    return secrets.randbelow(_MAX_INT32)


def create_rng(seed: Optional[int] = None) -> SeededRNG:
    return SeededRNG(seed)


def create_parallel_rngs(count: int, base_seed: Optional[int] = None) -> List[SeededRNG]:
    """Build ``count`` independent streams by repeatedly forking one base generator."""
    base = SeededRNG(base_seed)
    return [base.fork() for _ in range(count)]
