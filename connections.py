import numpy as np

from typing import (
    List,
    Optional,
    Sequence,
    Tuple,
)

from parameters import SpatialPoolerParameters, check_parameters
from topology import Topology

SYN_PERM_MIN = 0.0  # Lower clip bound for every permanence
SYN_PERM_MAX = 1.0  # Upper clip bound for every permanence


# PotentialPool pairs a column's potential inputs with their permanences
class PotentialPool:
    """Proximal synapses of a single column.

    ``inputs`` is fixed at construction and sorted ascending. ``permanences``
    always has the same length; assigning an array of another length raises.
    Connected state is derived from the permanences, never stored.

    When ``params`` is given the connected threshold is read from it on every
    access, so pools owned by a ``Connections`` always agree with the pooler.
    """

    inputs: np.ndarray

    def __init__(
        self,
        inputs: Sequence[int],
        permanences: Optional[Sequence[float]] = None,
        syn_perm_connected: float = 0.1,
        params: Optional[SpatialPoolerParameters] = None,
    ) -> None:
        inputs = np.asarray(inputs, dtype=np.int64)
        order = np.argsort(inputs, kind="stable")
        self.inputs = inputs[order]
        self._syn_perm_connected = syn_perm_connected
        self._params = params
        self._permanences = np.zeros(len(self.inputs), dtype=float)
        if permanences is not None:
            self.permanences = permanences
            self._permanences = self._permanences[order]

    @property
    def syn_perm_connected(self) -> float:
        if self._params is not None:
            return self._params.syn_perm_connected
        return self._syn_perm_connected

    @classmethod
    def from_dense(
        cls,
        potential: Sequence[int],
        dense_permanences: Sequence[float],
        syn_perm_connected: float = 0.1,
    ) -> "PotentialPool":
        """Build a pool from a 0/1 membership vector and a full-length permanence vector."""
        inputs = np.flatnonzero(np.asarray(potential))
        return cls(inputs, np.asarray(dense_permanences, dtype=float)[inputs], syn_perm_connected)

    @property
    def permanences(self) -> np.ndarray:
        return self._permanences

    @permanences.setter
    def permanences(self, values: Sequence[float]) -> None:
        values = np.asarray(values, dtype=float)
        if values.shape != self.inputs.shape:
            raise ValueError(
                f"Permanence length {values.shape[0] if values.ndim else 0} != pool size {len(self.inputs)}."
            )
        self._permanences = values.copy()

    @property
    def size(self) -> int:
        return len(self.inputs)

    @property
    def connected(self) -> np.ndarray:
        return self._permanences >= self.syn_perm_connected

    @property
    def connected_inputs(self) -> np.ndarray:
        return self.inputs[self.connected]

    @property
    def connected_count(self) -> int:
        return int(np.count_nonzero(self.connected))

    def dense_permanences(self, num_inputs: int) -> np.ndarray:
        dense = np.zeros(num_inputs, dtype=float)
        dense[self.inputs] = self._permanences
        return dense

    def dense_connected(self, num_inputs: int) -> np.ndarray:
        dense = np.zeros(num_inputs, dtype=np.int8)
        dense[self.connected_inputs] = 1
        return dense


class Connections:
    """All mutable SpatialPooler state, indexed by flat column index."""

    params: SpatialPoolerParameters
    input_topology: Topology
    column_topology: Topology
    potential_pools: List[PotentialPool]

    def __init__(self, params: SpatialPoolerParameters) -> None:
        self.params = check_parameters(params)
        self.input_topology = Topology(self.params.input_dimensions)
        self.column_topology = Topology(self.params.column_dimensions)
        self.num_inputs = self.input_topology.size
        self.num_columns = self.column_topology.size

        n = self.num_columns
        self.potential_pools = [PotentialPool([], params=self.params) for _ in range(n)]
        self.overlap_duty_cycles = np.zeros(n)
        self.active_duty_cycles = np.zeros(n)
        self.min_overlap_duty_cycles = np.zeros(n)
        self.min_active_duty_cycles = np.zeros(n)
        self.boost_factors = np.ones(n)
        self.tie_breaker = np.zeros(n)
        self.overlaps = np.zeros(n)
        self.boosted_overlaps = np.zeros(n)

        self.inhibition_radius = 0
        self.iteration_num = 0
        self.iteration_learn_num = 0

    @property
    def input_dimensions(self) -> Tuple[int, ...]:
        return self.input_topology.dimensions

    @property
    def column_dimensions(self) -> Tuple[int, ...]:
        return self.column_topology.dimensions

    def set_potential_pool(
        self,
        column: int,
        inputs: Sequence[int],
        permanences: Optional[Sequence[float]] = None,
    ) -> PotentialPool:
        pool = PotentialPool(inputs, permanences, params=self.params)
        if pool.size and (pool.inputs[0] < 0 or pool.inputs[-1] >= self.num_inputs):
            raise ValueError(f"Pool inputs for column {column} fall outside [0, {self.num_inputs}).")
        self.potential_pools[column] = pool
        return pool

    def dense_permanences(self, column: int) -> np.ndarray:
        return self.potential_pools[column].dense_permanences(self.num_inputs)

    def connected_counts(self) -> np.ndarray:
        return np.array([pool.connected_count for pool in self.potential_pools], dtype=np.int64)

    def connected_matrix(self) -> np.ndarray:
        """Dense (num_columns x num_inputs) 0/1 view of the connected synapses."""
        matrix = np.zeros((self.num_columns, self.num_inputs), dtype=np.int8)
        for column, pool in enumerate(self.potential_pools):
            matrix[column, pool.connected_inputs] = 1
        return matrix
