import threading
import numpy as np
from typing import List, Optional, Sequence


class ThreadsafeRandom:
    """
    Process-wide random source that is safe to use from many worker threads.

    Every thread draws from its own numpy Generator. Generators are spawned
    from a single master SeedSequence under a lock, so a seeded run produces
    independent streams per thread without sharing mutable RNG state.
    """

    _lock = threading.Lock()
    _local = threading.local()
    _seed_sequence = np.random.SeedSequence()
    _generation = 0

    @classmethod
    def initialize(cls, seed: Optional[int] = None) -> None:
        """
        Reseed the master sequence. Generators already handed to threads are
        discarded the next time those threads draw.

        Args:
            seed: Seed for the master sequence, or None for OS entropy
        """
        with cls._lock:
            cls._seed_sequence = np.random.SeedSequence(seed)
            cls._generation += 1

    @classmethod
    def _generator(cls) -> np.random.Generator:
        local = cls._local
        if getattr(local, 'generation', -1) != cls._generation:
            with cls._lock:
                child = cls._seed_sequence.spawn(1)[0]
                local.generator = np.random.default_rng(child)
                local.generation = cls._generation
        return local.generator

    @classmethod
    def next_int(cls, min_value: int = 0, max_value: Optional[int] = None) -> int:
        """Integer in [min_value, max_value). With one argument, in [0, min_value)."""
        if max_value is None:
            min_value, max_value = 0, min_value
        if max_value <= min_value:
            return min_value
        return int(cls._generator().integers(min_value, max_value))

    @classmethod
    def next_float(cls, min_value: float = 0.0, max_value: float = 1.0) -> float:
        return float(cls._generator().uniform(min_value, max_value))

    @classmethod
    def normal(cls, mean: float = 0.0, stddev: float = 1.0, size: Optional[int] = None):
        generator = cls._generator()
        if size is None:
            return float(generator.normal(mean, stddev))
        return generator.normal(mean, stddev, size)

    @classmethod
    def test(cls, probability: float) -> bool:
        """True with the given probability."""
        return cls.next_float() < probability

    @classmethod
    def select_random(cls, items: Sequence, count: int) -> List:
        """Choose `count` distinct items uniformly at random."""
        count = min(count, len(items))
        indices = cls._generator().choice(len(items), size=count, replace=False)
        return [items[i] for i in indices]

    @classmethod
    def sample_index(cls, weights: Sequence[float]) -> int:
        """Draw an index with probability proportional to its weight."""
        weights = np.asarray(weights, dtype=np.float64)
        total = weights.sum()
        if total <= 0:
            return cls.next_int(len(weights))
        cumulative = np.cumsum(weights)
        sample = cls.next_float(0.0, total)
        return int(min(np.searchsorted(cumulative, sample, side='right'), len(weights) - 1))

    @classmethod
    def shuffle(cls, items: list) -> None:
        cls._generator().shuffle(items)

    @classmethod
    def generate_random_distribution(cls, count: int) -> np.ndarray:
        """Random probability vector of length `count`."""
        values = cls._generator().random(count)
        return values / values.sum()
