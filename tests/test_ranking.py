"""Tests for expression_report.ranking."""

import numpy as np
import pandas as pd
import pytest

from expression_report.errors import EmptyGeneSetError, FitDegenerate, ValidationError
from expression_report.ranking import build_design, rank_genes, score_gene


def _five_gene_matrix(metadata, seed=3):
    """5 genes × 12 samples; 'signal' is perfectly predicted by genotype == mutB."""
    rng = np.random.default_rng(seed)
    n = len(metadata)
    hit = (metadata["genotype"] == "mutB").to_numpy(dtype=float)
    rows = {
        "noise_1": rng.normal(5.0, 1.0, n),
        "noise_2": rng.normal(5.0, 1.0, n),
        "signal": 5.0 + 4.0 * hit + rng.normal(0.0, 0.05, n),
        "noise_3": rng.normal(5.0, 1.0, n),
        "noise_4": rng.normal(5.0, 1.0, n),
    }
    return pd.DataFrame(rows, index=metadata.index).T


# ---------------------------------------------------------------------------
# Design matrix
# ---------------------------------------------------------------------------

class TestBuildDesign:

    def test_treatment_coding_columns(self, small_design):
        _, factors = small_design
        design = build_design(factors)
        # intercept + (4-1) + (3-1) + (3-1)
        assert design.shape == (12, 8)
        assert design.columns[0] == "const"
        assert "genotype[T.wt]" in design.columns
        assert "genotype[T.mutA]" not in design.columns     # reference level
        assert set(np.unique(design.to_numpy())) <= {0.0, 1.0}

    def test_confounded_factors_raise(self, small_design):
        _, factors = small_design
        confounded = factors.assign(time=factors["nutrient"].astype(str))
        with pytest.raises(ValidationError):
            build_design(confounded)


# ---------------------------------------------------------------------------
# Per-gene score
# ---------------------------------------------------------------------------

class TestScoreGene:

    def test_signal_gene_scores_on_genotype(self, small_design):
        metadata, factors = small_design
        design = build_design(factors)
        matrix = _five_gene_matrix(metadata)
        score = score_gene(matrix.loc["signal"].to_numpy(), design)
        assert 0.0 <= score.min_pvalue < 1e-4
        assert score.best_term == "genotype[T.mutB]"
        assert score.n_obs == 12

    def test_pure_function(self, small_design):
        metadata, factors = small_design
        design = build_design(factors)
        values = _five_gene_matrix(metadata).loc["noise_1"].to_numpy()
        assert score_gene(values, design) == score_gene(values.copy(), design)

    def test_constant_expression_is_degenerate(self, small_design):
        _, factors = small_design
        design = build_design(factors)
        with pytest.raises(FitDegenerate):
            score_gene(np.full(12, 7.0), design)

    def test_too_many_missing_is_degenerate(self, small_design):
        _, factors = small_design
        design = build_design(factors)
        values = np.arange(12, dtype=float)
        values[:6] = np.nan
        with pytest.raises(FitDegenerate):
            score_gene(values, design)

    def test_missing_samples_are_dropped(self, small_design):
        metadata, factors = small_design
        design = build_design(factors)
        values = _five_gene_matrix(metadata).loc["signal"].to_numpy()
        values[0] = np.nan
        score = score_gene(values, design)
        assert score.n_obs == 11
        assert 0.0 <= score.min_pvalue <= 1.0


# ---------------------------------------------------------------------------
# Ranking pass
# ---------------------------------------------------------------------------

class TestRankGenes:

    def test_scores_in_unit_interval_and_signal_first(self, small_design):
        metadata, factors = small_design
        ranking = rank_genes(_five_gene_matrix(metadata), factors, n_top=5)
        scores = ranking.table["min_pvalue"]
        assert ((scores >= 0.0) & (scores <= 1.0)).all()
        assert ranking.table.index[0] == "signal"
        assert ranking.top[0] == "signal"
        assert scores.is_monotonic_increasing

    def test_n_top_limits_selection(self, small_design):
        metadata, factors = small_design
        ranking = rank_genes(_five_gene_matrix(metadata), factors, n_top=2)
        assert len(ranking.top) == 2
        assert list(ranking.top) == ranking.table.index[:2].tolist()
        assert ranking.top_table.shape[0] == 2

    def test_degenerate_gene_gets_nan_and_is_excluded(self, small_design):
        metadata, factors = small_design
        matrix = _five_gene_matrix(metadata)
        matrix.loc["flat"] = 3.0
        ranking = rank_genes(matrix, factors, n_top=10)
        assert ranking.n_degenerate == 1
        assert np.isnan(ranking.table.loc["flat", "min_pvalue"])
        assert "flat" not in ranking.top
        assert ranking.table.index[-1] == "flat"
        assert len(ranking.top) == 5

    def test_qvalue_not_below_pvalue(self, small_design):
        metadata, factors = small_design
        table = rank_genes(_five_gene_matrix(metadata), factors).table
        assert (table["qvalue"] >= table["min_pvalue"] - 1e-15).all()

    def test_factor_order_follows_expression_columns(self, small_design):
        metadata, factors = small_design
        matrix = _five_gene_matrix(metadata)
        shuffled = factors.iloc[::-1]
        a = rank_genes(matrix, factors).table
        b = rank_genes(matrix, shuffled).table
        pd.testing.assert_frame_equal(a, b)

    def test_missing_factor_rows_raise(self, small_design):
        metadata, factors = small_design
        with pytest.raises(ValidationError):
            rank_genes(_five_gene_matrix(metadata), factors.iloc[1:])

    def test_all_degenerate_raises(self, small_design):
        _, factors = small_design
        flat = pd.DataFrame(1.0, index=["a", "b"], columns=factors.index)
        with pytest.raises(EmptyGeneSetError):
            rank_genes(flat, factors)

    def test_parallel_matches_sequential(self, small_design):
        metadata, factors = small_design
        matrix = _five_gene_matrix(metadata)
        sequential = rank_genes(matrix, factors, n_jobs=1)
        parallel = rank_genes(matrix, factors, n_jobs=2)
        pd.testing.assert_frame_equal(sequential.table, parallel.table)
        assert sequential.top == parallel.top
