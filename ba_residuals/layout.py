"""
Parameter block layout of a camera parameterization.

The optimizer owns one flat vector per parameter block. A camera's free
variables are split into fixed-size blocks: the 3D point, the 6-dof pose,
and optionally one block per group of intrinsics.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

NUM_POINT_PARAMS = 3
NUM_POSE_PARAMS = 6


class BlockLayoutError(ValueError):
    """Mismatch between parameter blocks and their declared layout."""


@dataclass(frozen=True)
class BlockLayout:
    """Ordered, immutable sequence of parameter block sizes."""
    sizes: Tuple[int, ...]

    def __post_init__(self):
        sizes = tuple(int(s) for s in self.sizes)
        object.__setattr__(self, 'sizes', sizes)
        if len(sizes) < 2:
            raise BlockLayoutError(f"A layout needs a point and a pose block, got {sizes}")
        if sizes[0] != NUM_POINT_PARAMS:
            raise BlockLayoutError(f"First block must be the {NUM_POINT_PARAMS}-parameter point, got {sizes[0]}")
        if sizes[1] != NUM_POSE_PARAMS:
            raise BlockLayoutError(f"Second block must be the {NUM_POSE_PARAMS}-parameter pose, got {sizes[1]}")
        if any(s <= 0 for s in sizes):
            raise BlockLayoutError(f"Parameter blocks must not be empty: {sizes}")

    @property
    def num_blocks(self) -> int:
        return len(self.sizes)

    @property
    def total(self) -> int:
        return sum(self.sizes)

    def validate_blocks(self, blocks: Sequence) -> None:
        """
        Check that blocks match this layout exactly.

        Raises:
            BlockLayoutError: On a wrong number of blocks or a wrongly sized block
        """
        check_block_sizes(blocks, self.sizes)


def check_block_sizes(blocks: Sequence, sizes: Sequence[int]) -> None:
    """Raise BlockLayoutError unless len(blocks[i]) == sizes[i] for every block."""
    if len(blocks) != len(sizes):
        raise BlockLayoutError(f"Expected {len(sizes)} parameter blocks, got {len(blocks)}")
    for i, (block, size) in enumerate(zip(blocks, sizes)):
        actual = np.size(block)
        if actual != size:
            raise BlockLayoutError(f"Parameter block {i} has {actual} values, expected {size}")
