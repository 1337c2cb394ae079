"""Tests for expression_report.pca."""

import numpy as np
import pandas as pd
import pytest

from expression_report.pca import run_pca


def _samples(n):
    return [f"s{i}" for i in range(n)]


def test_perfectly_correlated_genes_load_on_pc1():
    rng = np.random.default_rng(11)
    base = rng.normal(size=20)
    matrix = pd.DataFrame(
        [base, 2.0 * base + 1.0, -0.5 * base + 3.0, 10.0 * base - 4.0],
        index=["g1", "g2", "g3", "g4"], columns=_samples(20),
    )
    result = run_pca(matrix)
    assert result.explained_variance_ratio["PC1"] >= 0.99


def test_shapes_and_labels():
    rng = np.random.default_rng(2)
    matrix = pd.DataFrame(rng.normal(size=(30, 12)),
                          index=[f"g{i}" for i in range(30)], columns=_samples(12))
    result = run_pca(matrix)
    assert result.scores.index.tolist() == _samples(12)
    assert result.scores.shape == (12, 12)
    assert result.loadings.shape == (30, 12)
    assert result.explained_variance_ratio.sum() == pytest.approx(1.0)
    assert result.explained_variance_ratio.is_monotonic_decreasing


def test_n_components_caps_output():
    rng = np.random.default_rng(3)
    matrix = pd.DataFrame(rng.normal(size=(10, 8)), columns=_samples(8))
    result = run_pca(matrix, n_components=3)
    assert result.scores.columns.tolist() == ["PC1", "PC2", "PC3"]


def test_genes_are_standardised_before_pca():
    # one gene with huge scale must not dominate after scaling
    rng = np.random.default_rng(4)
    matrix = pd.DataFrame(rng.normal(size=(5, 40)), columns=_samples(40))
    matrix.iloc[0] *= 1e6
    result = run_pca(matrix)
    assert result.explained_variance_ratio["PC1"] < 0.6


def test_constant_gene_is_dropped():
    rng = np.random.default_rng(6)
    matrix = pd.DataFrame(rng.normal(size=(4, 10)),
                          index=["a", "b", "c", "flat"], columns=_samples(10))
    matrix.loc["flat"] = 2.0
    result = run_pca(matrix)
    assert "flat" not in result.loadings.index
    assert result.axis_label("PC1").startswith("PC1 (")


def test_no_variable_gene_raises():
    matrix = pd.DataFrame(1.0, index=["a", "b"], columns=_samples(5))
    with pytest.raises(ValueError):
        run_pca(matrix)
