import re
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, Tuple

"""
 * Parameters for the SpatialPooler.
 *
 * Members "localAreaDensity" & "numActiveColumnsPerInhArea" are alternative
 * ways to set the target sparsity. A positive "localAreaDensity" takes
 * precedence; set it to -1 to use "numActiveColumnsPerInhArea" instead.
 *
 * Members "synPermBelowStimulusInc" & "synPermTrimThreshold" are derived
 * from "synPermConnected" and "synPermActiveInc" when left as None.
"""


class InvalidSpatialPoolerParamValue(ValueError):
    """Raised for an invalid SpatialPooler configuration or call argument."""


@dataclass
class SpatialPoolerParameters:

    input_dimensions: Tuple[int, ...] = (64,)
    """
    * Member "inputDimensions" is the shape of the input space. The number of
    * inputs is the product of the dimensions.
    """
    column_dimensions: Tuple[int, ...] = (2048,)
    """
    * Member "columnDimensions" is the shape of the column space. It must have
    * the same number of dimensions as "inputDimensions".
    """
    potential_radius: int = 16
    """
    * Member "potentialRadius" bounds the input region, around each column's
    * center in input space, from which its potential pool is drawn. -1 means
    * the whole input space.
    """
    potential_pct: float = 0.5
    """
    * Member "potentialPct" is the fraction of inputs within the potential
    * radius that become members of the potential pool.
    """
    global_inhibition: bool = False
    """
    * Member "globalInhibition" selects competition across the whole column
    * space instead of within each column's local neighborhood.
    """
    local_area_density: float = -1.0
    """
    * Member "localAreaDensity" is the desired fraction of active columns
    * within an inhibition area.
    """
    num_active_columns_per_inh_area: float = 10.0
    """
    * Member "numActiveColumnsPerInhArea" is the desired number of active
    * columns within an inhibition area.
    """
    stimulus_threshold: float = 0.0
    """
    * Member "stimulusThreshold" is the minimum raw overlap a column needs to
    * take part in inhibition.
    """
    syn_perm_inactive_dec: float = 0.01
    syn_perm_active_inc: float = 0.1
    syn_perm_connected: float = 0.1
    """
    * Member "synPermConnected": a synapse is connected when its permanence is
    * at or above this value.
    """
    syn_perm_below_stimulus_inc: Optional[float] = None
    """
    * Member "synPermBelowStimulusInc" is added to every pool permanence of
    * an under-connected or weak column. Defaults to synPermConnected / 10.
    """
    syn_perm_trim_threshold: Optional[float] = None
    """
    * Member "synPermTrimThreshold": permanences at or below it are set to 0.
    * Defaults to synPermActiveInc / 2.
    """
    init_connected_pct: float = 0.5
    min_pct_overlap_duty_cycle: float = 0.001
    min_pct_active_duty_cycle: float = 0.001
    duty_cycle_period: int = 1000
    update_period: int = 50
    """
    * Member "updatePeriod": the inhibition radius, duty cycle floors and boost
    * factors are recomputed every updatePeriod iterations.
    """
    max_boost: float = 10.0
    wrap_around: bool = True
    seed: int = 42
    sp_verbosity: int = 0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "SpatialPoolerParameters":
        """Build parameters from snake_case field names or camelCase keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in mapping.items():
            name = re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()
            if name not in known:
                raise InvalidSpatialPoolerParamValue(f"Unknown parameter '{key}'.")
            kwargs[name] = value
        return cls(**kwargs)


def check_parameters(parameters: SpatialPoolerParameters) -> SpatialPoolerParameters:
    """Validate ``parameters`` and return a copy with derived values filled in."""
    args = replace(
        parameters,
        input_dimensions=tuple(int(d) for d in parameters.input_dimensions),
        column_dimensions=tuple(int(d) for d in parameters.column_dimensions),
    )

    if not args.input_dimensions or any(d <= 0 for d in args.input_dimensions):
        raise InvalidSpatialPoolerParamValue(f"Invalid input dimensions {list(args.input_dimensions)}.")
    if not args.column_dimensions or any(d <= 0 for d in args.column_dimensions):
        raise InvalidSpatialPoolerParamValue(f"Invalid column dimensions {list(args.column_dimensions)}.")
    if len(args.input_dimensions) != len(args.column_dimensions):
        raise InvalidSpatialPoolerParamValue(
            f"Input rank {len(args.input_dimensions)} != column rank {len(args.column_dimensions)}."
        )
    if not 0 < args.potential_pct <= 1:
        raise InvalidSpatialPoolerParamValue(f"potential_pct must be in (0, 1], got {args.potential_pct}.")
    if args.num_active_columns_per_inh_area <= 0 and not 0 < args.local_area_density <= 1:
        raise InvalidSpatialPoolerParamValue(
            "Inhibition parameters are invalid: need num_active_columns_per_inh_area > 0 "
            "or local_area_density in (0, 1]."
        )
    if not 0 <= args.syn_perm_connected <= 1:
        raise InvalidSpatialPoolerParamValue(
            f"syn_perm_connected must be in [0, 1], got {args.syn_perm_connected}."
        )
    if args.duty_cycle_period < 1 or args.update_period < 1:
        raise InvalidSpatialPoolerParamValue("duty_cycle_period and update_period must be >= 1.")
    if args.max_boost < 1:
        raise InvalidSpatialPoolerParamValue(f"max_boost must be >= 1, got {args.max_boost}.")

    if args.syn_perm_below_stimulus_inc is None:
        args.syn_perm_below_stimulus_inc = args.syn_perm_connected / 10.0
    if args.syn_perm_trim_threshold is None:
        args.syn_perm_trim_threshold = args.syn_perm_active_inc / 2.0

    return args
