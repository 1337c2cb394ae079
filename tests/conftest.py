"""Shared synthetic data for the test-suite."""

import numpy as np
import pandas as pd
import pytest

from expression_report.loader import ExpressionDataset

GENOTYPES = ["wt", "mutA", "mutB", "mutAB"]
NUTRIENTS = ["glucose", "galactose", "glycerol"]
TIMES = ["t15", "t30", "t60"]


def _sample_ids(n):
    return [f"GSM{100000 + i}" for i in range(n)]


def _balanced_metadata(n_samples):
    """genotype cycles fastest, then nutrient, then time (full rank for n ≥ 36)."""
    rows = {
        sid: {
            "title": f"sample {i}",
            "genotype": GENOTYPES[i % 4],
            "nutrient": NUTRIENTS[(i // 4) % 3],
            "time": TIMES[(i // 12) % 3],
        }
        for i, sid in enumerate(_sample_ids(n_samples))
    }
    return pd.DataFrame.from_dict(rows, orient="index")


def _latin_metadata(n_samples=12):
    """12 samples: full genotype × nutrient grid, time as a Latin-square factor."""
    rows = {}
    for i, sid in enumerate(_sample_ids(n_samples)):
        g, n = i % 4, (i // 4) % 3
        rows[sid] = {
            "title": f"sample {i}",
            "genotype": GENOTYPES[g],
            "nutrient": NUTRIENTS[n],
            "time": TIMES[(g + n) % 3],
        }
    return pd.DataFrame.from_dict(rows, orient="index")


def _factors(metadata):
    return pd.DataFrame(
        {name: pd.Categorical(metadata[name]) for name in ("genotype", "nutrient", "time")},
        index=metadata.index,
    )


@pytest.fixture
def small_design():
    """(metadata, factors) for 12 samples."""
    metadata = _latin_metadata(12)
    return metadata, _factors(metadata)


@pytest.fixture
def signal_dataset():
    """
    Factory: n_samples × n_genes dataset with n_signal genes driven by one
    factor level each; returns (ExpressionDataset, factors, signal_ids).
    """
    def build(n_samples=90, n_genes=100, n_signal=10, seed=7):
        rng = np.random.default_rng(seed)
        metadata = _balanced_metadata(n_samples)
        factors = _factors(metadata)
        effects = [("genotype", "mutA"), ("nutrient", "glycerol"), ("time", "t60")]

        rows, index = [], []
        for j in range(n_signal):
            name, level = effects[j % len(effects)]
            hit = (metadata[name] == level).to_numpy(dtype=float)
            rows.append(10.0 + 3.0 * hit + rng.normal(0, 0.5, n_samples))
            index.append(f"sig_{j:02d}")
        for j in range(n_genes - n_signal):
            base = rng.uniform(3.0, 8.0)
            rows.append(base + rng.normal(0, 0.5, n_samples))
            index.append(f"gene_{j:03d}")

        expression = pd.DataFrame(np.vstack(rows), index=index, columns=metadata.index)
        dataset = ExpressionDataset(accession="GSE0000", expression=expression,
                                    metadata=metadata)
        return dataset, factors, index[:n_signal]

    return build


@pytest.fixture
def two_pairs():
    """Four samples forming two well-separated pairs (genes × samples)."""
    return pd.DataFrame(
        {"a": [0.0, 0.0], "b": [0.0, 1.0], "c": [10.0, 10.0], "d": [10.0, 11.0]},
        index=["g1", "g2"],
    )
