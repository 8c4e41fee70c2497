from enum import Enum
from statistics import fmean, pstdev

import numpy as np

from typing import (
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from connections import SYN_PERM_MAX, SYN_PERM_MIN, Connections, PotentialPool
from parameters import InvalidSpatialPoolerParamValue, SpatialPoolerParameters
from topology import get_neighbors_nd

debug = False

TIE_BREAKER_SCALE = 0.01  # Upper bound of the fixed random value added to each column's overlap
PERMANENCE_DECIMALS = 5   # Initial permanences are truncated to this precision
MIN_WINNER_BONUS = 0.001  # Local inhibition winner bonus when every overlap is zero


class InhibitionStrategy(Enum):
    """How winning columns are selected from the boosted overlaps."""

    GLOBAL = "global"
    LOCAL = "local"


class SpatialPooler:
    """Maps binary input vectors onto a sparse set of active columns while learning.

    All mutable state lives in ``self.connections``; the pooler's methods read
    and update it in place. The random generator is the only source of
    randomness, so two poolers built with the same parameters and seed produce
    identical outputs for identical input sequences.
    """

    connections: Connections
    params: SpatialPoolerParameters
    inhibition: InhibitionStrategy
    rng: np.random.Generator

    # Input variants accepted by compute and the other input-consuming methods
    InputField = Union[np.ndarray, Sequence[int]]
    InputComposite = Union[
        np.ndarray,
        Sequence[int],
        Sequence[InputField],
        Dict[str, InputField],
    ]

    def __init__(
        self,
        params: Optional[SpatialPoolerParameters] = None,
        inhibition: Optional[Union[InhibitionStrategy, str]] = None,
        rng: Optional[np.random.Generator] = None,
        init_permanences: bool = True,
    ) -> None:
        self.connections = Connections(params if params is not None else SpatialPoolerParameters())
        self.params = self.connections.params
        if inhibition is None:
            inhibition = InhibitionStrategy.GLOBAL if self.params.global_inhibition else InhibitionStrategy.LOCAL
        self.inhibition = InhibitionStrategy(inhibition)
        self.rng = rng if rng is not None else np.random.default_rng(self.params.seed)

        c = self.connections
        c.tie_breaker = TIE_BREAKER_SCALE * self.rng.random(c.num_columns)
        for column in range(c.num_columns):
            potential = self.map_potential(column)
            pool = c.set_potential_pool(column, potential)
            if init_permanences:
                pool.permanences = self.init_permanence(potential, column, self.params.init_connected_pct)
                self.update_permanences_for_column(pool, raise_perm=True)

        # The inhibition radius grows and shrinks with the average connected span
        self.update_inhibition_radius()

        if self.params.sp_verbosity > 0:
            self.print_parameters()

    @property
    def num_columns(self) -> int:
        return self.connections.num_columns

    @property
    def num_inputs(self) -> int:
        return self.connections.num_inputs

    def compute(
        self,
        input_vector: InputComposite,
        active_array: Optional[np.ndarray] = None,
        learn: bool = True,
        predictive_overlaps: Optional[Sequence[float]] = None,
    ) -> np.ndarray:
        """Run one cycle and return the sorted indices of the active columns.

        Phase 1: overlap of every column with the input, squelched below the
        stimulus threshold and boosted when learning.
        Phase 2: inhibition picks the winners.
        Phase 3 (learn only): adapt permanences, update duty cycles, bump weak
        columns and, on update rounds, refresh the duty cycle floors, the boost
        factors and the inhibition radius.

        If ``active_array`` is given it is overwritten in place with a 0/1
        vector of the winners. ``predictive_overlaps`` is an optional
        per-column vector added to the raw overlaps before squelching.
        """
        c = self.connections
        combined = self.combine_input_fields(input_vector)
        if active_array is not None:
            if not isinstance(active_array, np.ndarray):
                raise InvalidSpatialPoolerParamValue(
                    f"Active array must be a numpy array, got {type(active_array).__name__}."
                )
            if active_array.shape != (c.num_columns,):
                raise InvalidSpatialPoolerParamValue(
                    f"Active array shape {active_array.shape} != ({c.num_columns},)."
                )

        c.iteration_num += 1
        if learn:
            c.iteration_learn_num += 1

        overlaps = self.calculate_overlap(combined, predictive_overlaps)
        c.overlaps = overlaps
        if learn:
            boosted = overlaps * c.boost_factors
        else:
            boosted = overlaps.astype(float)
        c.boosted_overlaps = boosted

        active_columns = np.sort(np.asarray(self.inhibit_columns(boosted), dtype=np.int64))

        if learn:
            self.adapt_synapses(combined, active_columns)
            self.update_duty_cycles(overlaps, active_columns)
            self.bump_up_weak_columns()
            if self.is_update_round():
                self.update_min_duty_cycles()
                self.update_boost_factors()
                self.update_inhibition_radius()

        if active_array is not None:
            active_array[:] = 0
            active_array[active_columns] = 1

        if debug:
            print(
                f"[iter {c.iteration_num}] active={len(active_columns)} "
                f"radius={c.inhibition_radius} learn={learn}"
            )
        return active_columns

    def combine_input_fields(self, input_vector: InputComposite) -> np.ndarray:
        """Prepare / combine input fields into a single binary array of ``num_inputs`` bits.

        Accepted forms:
          - 1D array-like of bits (already concatenated)
          - list / tuple of field arrays => concatenated in order
          - dict[str, field array] => concatenated in insertion order

        An empty input means every bit is inactive.
        Raises: InvalidSpatialPoolerParamValue for any other length than ``num_inputs``.
        """
        if isinstance(input_vector, dict):
            arrays = [np.ravel(np.asarray(v, dtype=np.int8)) for v in input_vector.values()]
            combined = np.concatenate(arrays) if arrays else np.array([], dtype=np.int8)
        elif (
            isinstance(input_vector, (list, tuple))
            and input_vector
            and all(np.ndim(v) > 0 for v in input_vector)
        ):
            combined = np.concatenate([np.ravel(np.asarray(v, dtype=np.int8)) for v in input_vector])
        else:
            combined = np.ravel(np.asarray(input_vector, dtype=np.int8))

        num_inputs = self.connections.num_inputs
        if combined.shape[0] == 0:
            return np.zeros(num_inputs, dtype=np.int8)
        if combined.shape[0] != num_inputs:
            raise InvalidSpatialPoolerParamValue(
                f"Input length {combined.shape[0]} != number of inputs {num_inputs}."
            )
        return combined

    def strip_unlearned_columns(self, active_columns: Sequence[int]) -> np.ndarray:
        """Drop active columns that have never won, i.e. whose active duty cycle is 0.

        Only meaningful for inference with a trained pooler: on an untrained
        one every column would be stripped.
        """
        duty = self.connections.active_duty_cycles
        kept = [int(col) for col in active_columns if duty[col] > 0]
        return np.array(sorted(set(kept)), dtype=np.int64)

    # Potential pools and permanences

    def map_column(self, index: int) -> int:
        """Input index at the center of the column's receptive field."""
        c = self.connections
        coordinates = c.column_topology.coordinates_from_index(index)
        center = []
        for coord, col_dim, in_dim in zip(coordinates, c.column_dimensions, c.input_dimensions):
            position = int((coord + 0.5) * in_dim / col_dim)
            center.append(min(position, in_dim - 1))
        return c.input_topology.index_from_coordinates(center)

    def map_potential(self, index: int, wrap_around: Optional[bool] = None) -> np.ndarray:
        """Sample the potential pool of a column.

        Candidates are all inputs within ``potential_radius`` of the column's
        center (see ``map_column``). A ``potential_pct`` share of them is drawn
        without replacement and returned sorted.
        """
        c = self.connections
        p = self.params
        if wrap_around is None:
            wrap_around = p.wrap_around
        radius = p.potential_radius if p.potential_radius >= 0 else max(c.input_dimensions)
        candidates = c.input_topology.region(self.map_column(index), radius, wrap_around)
        num_potential = int(len(candidates) * p.potential_pct + 0.5)
        chosen = self.rng.choice(candidates, size=num_potential, replace=False)
        return np.sort(chosen)

    def init_permanence(self, potential: Sequence[int], index: int, connected_pct: float) -> np.ndarray:
        """Initial permanences for the pool members ``potential`` of column ``index``.

        A ``connected_pct`` share of members start connected, uniformly in
        [syn_perm_connected, 1]; the rest start in [0, syn_perm_connected).
        """
        p = self.params
        size = len(potential)
        connected = self.rng.random(size) <= connected_pct
        above = p.syn_perm_connected + (SYN_PERM_MAX - p.syn_perm_connected) * self.rng.random(size)
        below = p.syn_perm_connected * self.rng.random(size)
        perms = np.where(connected, above, below)

        scale = 10 ** PERMANENCE_DECIMALS
        perms = np.floor(perms * scale) / scale
        perms[perms < p.syn_perm_trim_threshold] = 0.0
        return perms

    def raise_permanence_to_threshold(self, pool: PotentialPool) -> int:
        """Raise every pool permanence until at least ``stimulus_threshold`` synapses connect.

        Stops early once every permanence has saturated. Returns the number of
        connected synapses.
        """
        p = self.params
        perms = np.clip(pool.permanences, SYN_PERM_MIN, SYN_PERM_MAX)
        while True:
            num_connected = int(np.count_nonzero(perms >= p.syn_perm_connected))
            if num_connected >= p.stimulus_threshold:
                break
            if np.all(perms >= SYN_PERM_MAX) or p.syn_perm_below_stimulus_inc <= 0:
                break
            perms = np.clip(perms + p.syn_perm_below_stimulus_inc, SYN_PERM_MIN, SYN_PERM_MAX)
        pool.permanences = perms
        return num_connected

    def update_permanences_for_column(self, pool: PotentialPool, raise_perm: bool = True) -> int:
        """Normalise a pool after its permanences changed and return its connected count.

        Optionally raises the pool to threshold, then trims permanences at or
        below ``syn_perm_trim_threshold`` to 0 and clips to [0, 1].
        """
        if raise_perm:
            self.raise_permanence_to_threshold(pool)
        perms = pool.permanences.copy()
        perms[perms <= self.params.syn_perm_trim_threshold] = 0.0
        pool.permanences = np.clip(perms, SYN_PERM_MIN, SYN_PERM_MAX)
        return pool.connected_count

    def adapt_synapses(self, input_vector: InputComposite, active_columns: Sequence[int]) -> None:
        """Hebbian update of the pools of the winning columns.

        Pool members whose input bit is on gain ``syn_perm_active_inc``; the
        others lose ``syn_perm_inactive_dec``.
        """
        p = self.params
        combined = self.combine_input_fields(input_vector)
        for column in active_columns:
            pool = self.connections.potential_pools[column]
            on = combined[pool.inputs] > 0
            delta = np.where(on, p.syn_perm_active_inc, -p.syn_perm_inactive_dec)
            pool.permanences = pool.permanences + delta
            self.update_permanences_for_column(pool, raise_perm=True)

    def bump_up_weak_columns(self) -> np.ndarray:
        """Add ``syn_perm_below_stimulus_inc`` to the whole pool of every column
        whose overlap duty cycle is below its floor. Returns the bumped columns."""
        c = self.connections
        weak = np.flatnonzero(c.overlap_duty_cycles < c.min_overlap_duty_cycles)
        for column in weak:
            pool = c.potential_pools[column]
            pool.permanences = pool.permanences + self.params.syn_perm_below_stimulus_inc
            self.update_permanences_for_column(pool, raise_perm=False)
        return weak

    # Overlap

    def calculate_overlap(
        self,
        input_vector: InputComposite,
        predictive_overlaps: Optional[Sequence[float]] = None,
    ) -> np.ndarray:
        """Number of connected synapses of each column whose input bit is on.

        Overlaps below ``stimulus_threshold`` are set to 0.
        """
        c = self.connections
        combined = self.combine_input_fields(input_vector)
        overlaps = np.array(
            [np.count_nonzero(combined[pool.connected_inputs]) for pool in c.potential_pools],
            dtype=np.int64,
        )
        if predictive_overlaps is not None:
            assist = np.asarray(predictive_overlaps, dtype=float)
            if assist.shape != overlaps.shape:
                raise InvalidSpatialPoolerParamValue(
                    f"Predictive overlaps length {assist.shape[0]} != number of columns {c.num_columns}."
                )
            overlaps = overlaps + assist
        overlaps[overlaps < self.params.stimulus_threshold] = 0
        return overlaps

    def calculate_overlap_pct(self, overlaps: Sequence[float]) -> np.ndarray:
        overlaps = np.asarray(overlaps, dtype=float)
        counts = self.connections.connected_counts().astype(float)
        pct = np.zeros(len(overlaps))
        nonzero = counts > 0
        pct[nonzero] = overlaps[nonzero] / counts[nonzero]
        return pct

    # Inhibition

    def inhibition_density(self) -> float:
        """Target fraction of active columns in an inhibition area."""
        c = self.connections
        p = self.params
        if p.local_area_density > 0:
            return float(p.local_area_density)
        area = (2 * c.inhibition_radius + 1) ** len(c.column_dimensions)
        area = min(c.num_columns, area)
        return min(p.num_active_columns_per_inh_area / area, 1.0)

    def inhibit_columns(self, overlaps: Sequence[float]) -> np.ndarray:
        """Pick the winning columns for the (boosted) ``overlaps``.

        The fixed per-column tie breaker is added first. Global inhibition is
        used when selected, or when the inhibition radius already spans the
        whole column space.
        """
        c = self.connections
        overlaps = np.asarray(overlaps, dtype=float) + c.tie_breaker
        density = self.inhibition_density()
        if self.inhibition is InhibitionStrategy.GLOBAL or c.inhibition_radius > max(c.column_dimensions):
            return self.inhibit_columns_global(overlaps, density)
        return self.inhibit_columns_local(overlaps, density)

    def inhibit_columns_global(self, overlaps: Sequence[float], density: float) -> np.ndarray:
        """Top ``density`` share of all columns by overlap, above the stimulus threshold."""
        overlaps = np.asarray(overlaps, dtype=float)
        num_active = min(int(density * self.connections.num_columns + 0.5), len(overlaps))
        ranked = np.argsort(-overlaps, kind="stable")[:num_active]
        winners = ranked[overlaps[ranked] >= self.params.stimulus_threshold]
        return np.sort(winners)

    def inhibit_columns_local(self, overlaps: Sequence[float], density: float) -> np.ndarray:
        """Winners within each column's own neighborhood.

        Columns are visited in ascending order. A column wins when fewer than
        ``int(0.5 + density * area)`` of its neighbors have a larger overlap,
        where the area counts the column itself. Each winner's overlap is then
        nudged up so that later neighborhoods count it as a taken slot.
        """
        c = self.connections
        overlaps = np.asarray(overlaps, dtype=float)
        if not len(overlaps):
            return np.array([], dtype=np.int64)
        add_to_winners = overlaps.max() / 1000.0
        if add_to_winners == 0:
            add_to_winners = MIN_WINNER_BONUS
        tie_broken = overlaps.copy()

        winners: List[int] = []
        for column in range(len(overlaps)):
            if overlaps[column] < self.params.stimulus_threshold:
                continue
            neighbors = self.get_neighbors_nd(column, c.inhibition_radius)
            num_bigger = int(np.count_nonzero(tie_broken[neighbors] > overlaps[column]))
            num_active = int(0.5 + density * (len(neighbors) + 1))
            if num_bigger < num_active:
                winners.append(column)
                tie_broken[column] += add_to_winners
        return np.array(winners, dtype=np.int64)

    def get_neighbors_nd(self, column: int, radius: int) -> np.ndarray:
        """Neighbors of ``column`` in column space, excluding the column itself."""
        c = self.connections
        region = c.column_topology.region(column, radius, self.params.wrap_around)
        return region[region != column]

    # Homeostasis

    def update_duty_cycles(self, overlaps: Sequence[float], active_columns: Sequence[int]) -> None:
        c = self.connections
        overlap_array = (np.asarray(overlaps) > 0).astype(float)
        active_array = np.zeros(c.num_columns)
        active_array[np.asarray(active_columns, dtype=np.int64)] = 1.0

        period = max(1, min(self.params.duty_cycle_period, c.iteration_num))
        c.overlap_duty_cycles = self.update_duty_cycles_helper(c.overlap_duty_cycles, overlap_array, period)
        c.active_duty_cycles = self.update_duty_cycles_helper(c.active_duty_cycles, active_array, period)

    @staticmethod
    def update_duty_cycles_helper(
        duty_cycles: Sequence[float],
        new_input: Sequence[float],
        period: int,
    ) -> np.ndarray:
        """Moving average: ``(duty_cycles * (period - 1) + new_input) / period``."""
        if period < 1:
            raise ValueError(f"Duty cycle period must be >= 1, got {period}.")
        duty_cycles = np.asarray(duty_cycles, dtype=float)
        return (duty_cycles * (period - 1) + np.asarray(new_input, dtype=float)) / period

    def update_min_duty_cycles(self) -> None:
        c = self.connections
        if self.inhibition is InhibitionStrategy.GLOBAL or c.inhibition_radius > c.num_inputs:
            self.update_min_duty_cycles_global()
        else:
            self.update_min_duty_cycles_local()

    def update_min_duty_cycles_global(self) -> None:
        c = self.connections
        p = self.params
        c.min_overlap_duty_cycles = np.full(
            c.num_columns, p.min_pct_overlap_duty_cycle * float(np.max(c.overlap_duty_cycles))
        )
        c.min_active_duty_cycles = np.full(
            c.num_columns, p.min_pct_active_duty_cycle * float(np.max(c.active_duty_cycles))
        )

    def update_min_duty_cycles_local(self) -> None:
        """Floors from the maximum duty cycles within each column's neighborhood (itself included)."""
        c = self.connections
        p = self.params
        min_overlap = np.zeros(c.num_columns)
        min_active = np.zeros(c.num_columns)
        for column in range(c.num_columns):
            area = np.append(self.get_neighbors_nd(column, c.inhibition_radius), column)
            min_overlap[column] = p.min_pct_overlap_duty_cycle * c.overlap_duty_cycles[area].max()
            min_active[column] = p.min_pct_active_duty_cycle * c.active_duty_cycles[area].max()
        c.min_overlap_duty_cycles = min_overlap
        c.min_active_duty_cycles = min_active

    def update_boost_factors(self) -> None:
        """Boost rises linearly from 1 to ``max_boost`` as the active duty cycle
        falls from its floor to 0. Columns with a zero floor keep their boost."""
        c = self.connections
        floor = c.min_active_duty_cycles
        mask = floor > 0
        boost = np.array(c.boost_factors, dtype=float)
        deficit = np.maximum(0.0, (floor[mask] - c.active_duty_cycles[mask]) / floor[mask])
        boost[mask] = 1.0 + (self.params.max_boost - 1.0) * deficit
        c.boost_factors = boost

    def update_inhibition_radius(self) -> None:
        c = self.connections
        if self.inhibition is InhibitionStrategy.GLOBAL:
            c.inhibition_radius = max(c.column_dimensions)
            return

        spans = [self.avg_connected_span_for_column_nd(i) for i in range(c.num_columns)]
        diameter = fmean(spans) * self.avg_columns_per_input()
        radius = max(1.0, (diameter - 1) / 2.0)
        c.inhibition_radius = int(radius + 0.5)

    def avg_columns_per_input(self) -> float:
        c = self.connections
        ratios = [col / inp for col, inp in zip(c.column_dimensions, c.input_dimensions)]
        return float(fmean(ratios))

    def avg_connected_span_for_column_nd(self, index: int) -> float:
        """Mean, over input dimensions, of the extent covered by the column's connected synapses."""
        c = self.connections
        connected = c.potential_pools[index].connected_inputs
        if connected.size == 0:
            return 0.0
        coordinates = np.array(np.unravel_index(connected, c.input_dimensions))
        spans = coordinates.max(axis=1) - coordinates.min(axis=1) + 1
        return float(np.mean(spans))

    def is_update_round(self) -> bool:
        return self.connections.iteration_num % self.params.update_period == 0

    # Reporting

    def print_parameters(self) -> None:
        c = self.connections
        print("SpatialPooler parameters:")
        for name, value in vars(self.params).items():
            print(f"  {name:<32}= {value}")
        print(f"  {'inhibition':<32}= {self.inhibition.value}")
        print(f"  {'num_inputs':<32}= {c.num_inputs}")
        print(f"  {'num_columns':<32}= {c.num_columns}")
        print(f"  {'inhibition_radius':<32}= {c.inhibition_radius}")

    def print_stats(self) -> None:
        """Print statistics (with stddev) of the pools, permanences and homeostatic state."""
        def describe(values: List[float]) -> Tuple[int, float, float, float, float]:
            if not values:
                return 0, 0.0, 0.0, 0.0, 0.0
            count = len(values)
            mean_val = fmean(values)
            std_val = pstdev(values) if count > 1 else 0.0
            return count, mean_val, std_val, min(values), max(values)

        def format_metric(
            label: str,
            stats: Tuple[int, float, float, float, float],
            value_precision: str = ".2f",
            extrema_precision: str = ".0f",
        ) -> str:
            _, mean_val, std_val, min_val, max_val = stats
            mean_str = format(mean_val, value_precision)
            std_str = format(std_val, value_precision)
            min_str = format(min_val, extrema_precision)
            max_str = format(max_val, extrema_precision)
            return f"| {label:<22}| {mean_str:>8} ± {std_str:<8}| {min_str:>8} | {max_str:>8} |"

        c = self.connections
        pools = c.potential_pools
        pool_sizes = [float(pool.size) for pool in pools]
        connected_counts = [float(pool.connected_count) for pool in pools]
        permanences = [float(v) for pool in pools for v in pool.permanences]
        fine = {"value_precision": ".3f", "extrema_precision": ".3f"}

        table_lines = [
            "+------------------------+--------------------+----------+----------+",
            "| Metric                 |   Mean ± Std      |      Min |      Max |",
            "+------------------------+--------------------+----------+----------+",
            format_metric("Pool size", describe(pool_sizes)),
            format_metric("Connected per column", describe(connected_counts)),
            format_metric("Permanence", describe(permanences), **fine),
            format_metric("Overlap duty cycle", describe(c.overlap_duty_cycles.tolist()), **fine),
            format_metric("Active duty cycle", describe(c.active_duty_cycles.tolist()), **fine),
            format_metric("Boost factor", describe(c.boost_factors.tolist()), **fine),
            "+------------------------+--------------------+----------+----------+",
        ]

        total_connected = int(sum(connected_counts))
        connected_ratio = (total_connected / len(permanences)) if permanences else 0.0
        never_active = int(np.count_nonzero(c.active_duty_cycles <= 0))

        print("SpatialPooler statistics:")
        print(
            f"  Columns: {c.num_columns} | Inputs: {c.num_inputs} | "
            f"Iterations: {c.iteration_num} ({c.iteration_learn_num} learning)"
        )
        for line in table_lines:
            print(f"  {line}")
        print(
            f"  Connected synapses (>= {self.params.syn_perm_connected}): {total_connected}"
            f" ({connected_ratio:.1%} of all pool members)"
        )
        print(f"  Inhibition: {self.inhibition.value} | radius {c.inhibition_radius}")
        print(f"  Columns never active: {never_active} ({never_active / c.num_columns:.1%})")


def sparsify(vector: Sequence[int]) -> List[int]:
    """Converts a dense activity vector to a list of active indices."""
    return [i for i, bit in enumerate(vector) if bit]


__all__ = [
    "InhibitionStrategy",
    "SpatialPooler",
    "get_neighbors_nd",
    "sparsify",
]
