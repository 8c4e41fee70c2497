"""N-dimensional grid helpers shared by the input space and the column space.

Indices are flat, row-major (the last dimension varies fastest), matching
``numpy.ravel_multi_index``.
"""

import numpy as np

from typing import (
    List,
    Sequence,
    Tuple,
)


class Topology:
    """Shape of an N-D grid with flat index <-> coordinate conversion."""

    dimensions: Tuple[int, ...]

    def __init__(self, dimensions: Sequence[int]) -> None:
        self.dimensions = tuple(int(d) for d in dimensions)
        if not self.dimensions or any(d <= 0 for d in self.dimensions):
            raise ValueError(f"Invalid topology dimensions {list(dimensions)}.")

    @property
    def num_dimensions(self) -> int:
        return len(self.dimensions)

    @property
    def size(self) -> int:
        return int(np.prod(self.dimensions))

    def coordinates_from_index(self, index: int) -> Tuple[int, ...]:
        return tuple(int(c) for c in np.unravel_index(int(index), self.dimensions))

    def index_from_coordinates(self, coordinates: Sequence[int]) -> int:
        return int(np.ravel_multi_index(tuple(int(c) for c in coordinates), self.dimensions))

    def _axis_ranges(self, center: int, radius: int, wrap_around: bool) -> List[np.ndarray]:
        radius = max(int(radius), 0)
        ranges = []
        for c, dim in zip(self.coordinates_from_index(center), self.dimensions):
            if wrap_around:
                ranges.append(np.unique(np.arange(c - radius, c + radius + 1) % dim))
            else:
                ranges.append(np.arange(max(0, c - radius), min(dim - 1, c + radius) + 1))
        return ranges

    def _flatten(self, ranges: List[np.ndarray]) -> np.ndarray:
        grid = np.meshgrid(*ranges, indexing="ij")
        flat = np.ravel_multi_index([g.ravel() for g in grid], self.dimensions)
        return np.unique(flat)

    def neighborhood(self, center: int, radius: int) -> np.ndarray:
        """Indices within Chebyshev ``radius`` of ``center`` (inclusive), clipped at the edges."""
        return self._flatten(self._axis_ranges(center, radius, wrap_around=False))

    def wrapping_neighborhood(self, center: int, radius: int) -> np.ndarray:
        """Like ``neighborhood`` but coordinates wrap modulo each dimension."""
        return self._flatten(self._axis_ranges(center, radius, wrap_around=True))

    def region(self, center: int, radius: int, wrap_around: bool) -> np.ndarray:
        if wrap_around:
            return self.wrapping_neighborhood(center, radius)
        return self.neighborhood(center, radius)


def get_neighbors_nd(
    index: int,
    dimensions: Sequence[int],
    radius: int,
    wrap_around: bool,
) -> np.ndarray:
    """Return the sorted flat indices around ``index``, excluding ``index`` itself.

    Every coordinate within ``radius`` along each dimension is included. With
    ``wrap_around`` the grid behaves as a torus; otherwise out-of-range
    coordinates are dropped.
    """
    region = Topology(dimensions).region(index, radius, wrap_around)
    return region[region != index]
