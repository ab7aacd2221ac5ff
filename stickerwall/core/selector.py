"""
Weighted random selection over an ordered category table.
"""

from itertools import accumulate
from typing import Generic, Hashable, List, Mapping, Sequence, Tuple, TypeVar, Union

import numpy as np

from stickerwall.utils.common import InternalSelectionError

K = TypeVar("K", bound=Hashable)


class WeightedSelector(Generic[K]):
    """Draws a key with probability proportional to its weight.

    Categories keep the order they were given in; that order is the tie-break
    order. The cumulative weights are computed once per table.

    Args:
        options: Ordered (key, weight) pairs, or a mapping iterated in insertion order

    Raises:
        InternalSelectionError: If any weight is negative
    """

    def __init__(self, options: Union[Sequence[Tuple[K, float]], Mapping[K, float]]):
        pairs = list(options.items()) if isinstance(options, Mapping) else list(options)
        self.keys: List[K] = [key for key, _ in pairs]
        self.weights: List[float] = [float(weight) for _, weight in pairs]
        if any(weight < 0 for weight in self.weights):
            raise InternalSelectionError(f"Negative weight in category table: {pairs!r}")
        self.cumulative: List[float] = list(accumulate(self.weights))
        self.total: float = self.cumulative[-1] if self.cumulative else 0.0

    def __len__(self) -> int:
        return len(self.keys)

    def select(self, rng: np.random.Generator) -> K:
        """Draw one key.

        Args:
            rng: Random source; exactly one uniform draw is consumed

        Returns:
            The first key whose cumulative weight exceeds the draw

        Raises:
            InternalSelectionError: If no category can be selected
        """
        draw = rng.random() * self.total
        for key, bound in zip(self.keys, self.cumulative):
            if draw < bound:
                return key

        raise InternalSelectionError(
            f"No category selected for draw {draw!r} (total weight {self.total!r})"
        )


def random_select(
    options: Union[Sequence[Tuple[K, float]], Mapping[K, float]], rng: np.random.Generator
) -> K:
    """One-off weighted draw; see WeightedSelector."""
    return WeightedSelector(options).select(rng)
