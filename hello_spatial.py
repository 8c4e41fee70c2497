#!/usr/bin/env python3
"""Walk-through of the SpatialPooler's basic properties.

- Different inputs give different SDRs.
- Identical inputs give identical SDRs.
- Similar (noisy) inputs give similar SDRs, and the similarity drops as noise grows.
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from parameters import SpatialPoolerParameters
from spatial_pooler import SpatialPooler


def make_pooler(input_dims: Sequence[int], column_dims: Sequence[int], seed: int) -> SpatialPooler:
    input_size = int(np.prod(input_dims))
    num_columns = int(np.prod(column_dims))
    params = SpatialPoolerParameters(
        input_dimensions=tuple(input_dims),
        column_dimensions=tuple(column_dims),
        potential_radius=input_size,
        global_inhibition=True,
        num_active_columns_per_inh_area=0.02 * num_columns,
        syn_perm_active_inc=0.01,
        syn_perm_trim_threshold=0.005,
        seed=seed,
    )
    return SpatialPooler(params)


def random_input(size: int, rng: np.random.Generator) -> np.ndarray:
    return rng.integers(0, 2, size=size, dtype=np.int8)


def add_noise(vector: np.ndarray, noise_level: float, rng: np.random.Generator) -> np.ndarray:
    """Flip ``noise_level * len(vector)`` randomly chosen bits (positions may repeat)."""
    noisy = vector.copy()
    for _ in range(int(noise_level * len(vector))):
        position = rng.integers(len(vector))
        noisy[position] = 1 - noisy[position]
    return noisy


def sdr_overlap(first: Sequence[int], second: Sequence[int]) -> float:
    """Share of ``first``'s active columns that are also active in ``second``."""
    first_set = set(int(i) for i in first)
    if not first_set:
        return 0.0
    return len(first_set & set(int(i) for i in second)) / len(first_set)


def banner(text: str) -> None:
    print("-" * 70)
    print(text)
    print("-" * 70)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show how the SpatialPooler turns inputs into SDRs.")
    parser.add_argument("--input-dims", type=int, nargs="+", default=[32, 32])
    parser.add_argument("--column-dims", type=int, nargs="+", default=[64, 64])
    parser.add_argument("--train-steps", type=int, default=20, help="Random inputs seen before the noise test.")
    parser.add_argument("--noise-levels", type=float, nargs="+", default=[0.0, 0.05, 0.1, 0.2, 0.3, 0.5])
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--plot", type=Path, default=None, help="Save an overlap vs. noise chart here.")
    parser.add_argument("--stats", action="store_true", help="Print pooler statistics at the end.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> dict[float, float]:
    args = parse_args(argv)
    rng = np.random.default_rng(args.seed + 1)
    sp = make_pooler(args.input_dims, args.column_dims, args.seed)
    print(f"SpatialPooler with {sp.num_inputs} inputs and {sp.num_columns} columns")

    banner("Different inputs give different SDRs")
    for _ in range(3):
        print(sp.compute(random_input(sp.num_inputs, rng), learn=True).tolist())

    for _ in tqdm(range(args.train_steps), desc="Training"):
        sp.compute(random_input(sp.num_inputs, rng), learn=True)

    banner("Identical inputs give identical SDRs")
    reference_input = random_input(sp.num_inputs, rng)
    reference = sp.compute(reference_input, learn=False)
    repeat = sp.compute(reference_input, learn=False)
    print(reference.tolist())
    print(repeat.tolist())
    print(f"identical: {np.array_equal(reference, repeat)}")

    banner("Similar inputs give similar SDRs")
    results: dict[float, float] = {}
    for level in args.noise_levels:
        noisy = add_noise(reference_input, level, rng)
        active = sp.compute(noisy, learn=False)
        results[level] = sdr_overlap(reference, active)
        print(f"noise {level:>5.0%}: overlap with reference SDR {results[level]:.2f}")

    if args.plot is not None:
        levels = list(results)
        plt.figure(figsize=(6, 4))
        plt.plot(levels, [results[level] for level in levels], marker="o")
        plt.xlabel("Input noise")
        plt.ylabel("SDR overlap with reference")
        plt.title("SpatialPooler noise robustness")
        plt.ylim(0, 1.05)
        plt.grid(True, alpha=0.3)
        plt.tight_layout()
        plt.savefig(args.plot)
        plt.close()
        print(f"\nChart written to {args.plot}")

    if args.stats:
        sp.print_stats()
    return results


if __name__ == "__main__":
    main()
