"""
ranking.py
----------
Rank genes by an additive three-factor linear model.

For every gene the expression across samples is regressed on
    y ~ genotype + nutrient + time
with each factor treatment-coded (first sorted level = reference). The gene's
score is the smallest p-value among the non-intercept coefficients, i.e. the
single most significant factor level, not the overall F-test. Genes are
sorted ascending by score and the N smallest are kept.

The per-gene fit is a pure function of (expression vector, design matrix), so
the pass can run sequentially or be fanned out with joblib. A gene whose fit
is ill-defined (constant values, too many missing samples, rank-deficient
design after dropping missing samples) gets a NaN score and never enters the
top-N.

Informational columns
─────────────────────
  f_pvalue   overall model F-test p-value
  qvalue     Benjamini–Hochberg adjustment of min_pvalue over finite scores;
             not used for ranking
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.api as sm
from joblib import Parallel, delayed
from statsmodels.stats.multitest import multipletests

from .errors import EmptyGeneSetError, FitDegenerate, ValidationError

log = logging.getLogger(__name__)

INTERCEPT = "const"
TABLE_COLUMNS = ["min_pvalue", "best_term", "f_pvalue", "n_obs"]


@dataclass(frozen=True)
class GeneScore:
    min_pvalue: float
    best_term: str
    f_pvalue: float
    n_obs: int


@dataclass(frozen=True, eq=False)
class GeneRanking:
    table: pd.DataFrame          # one row per gene, sorted by min_pvalue (NaN last)
    top: tuple[str, ...]         # ids of the n_top smallest finite scores, in order
    n_degenerate: int

    @property
    def top_table(self) -> pd.DataFrame:
        return self.table.loc[list(self.top)]


def build_design(factors: pd.DataFrame) -> pd.DataFrame:
    """
    Treatment-coded design matrix: intercept + one 0/1 column per
    non-reference level, named "<factor>[T.<level>]".
    """
    columns = {}
    for name in factors.columns:
        cat = factors[name].astype("category").cat.remove_unused_categories()
        for level in cat.cat.categories[1:]:
            columns[f"{name}[T.{level}]"] = (cat == level).astype(float).to_numpy()
    design = pd.DataFrame(columns, index=factors.index)
    design = sm.add_constant(design, prepend=True, has_constant="add")

    rank = np.linalg.matrix_rank(design.to_numpy())
    if rank < design.shape[1]:
        raise ValidationError(
            f"Factor design is rank-deficient (rank {rank} < {design.shape[1]} "
            "columns); factors are confounded",
            failures=("design_rank",),
        )
    return design


def score_gene(values, design: pd.DataFrame, full_rank: bool = True) -> GeneScore:
    """
    Fit one gene against the design; return the smallest non-intercept p-value.

    ``values`` is aligned with the design rows. Samples with missing values are
    dropped. ``full_rank`` says the complete design is known to be full rank,
    so the rank check is only repeated when samples were dropped.
    Raises FitDegenerate when the fit is ill-defined.
    """
    y = np.asarray(values, dtype=np.float64)
    X = design.to_numpy(dtype=np.float64)
    mask = np.isfinite(y)
    dropped = not mask.all()
    y, X = y[mask], X[mask]

    n_obs, n_params = X.shape
    if n_obs <= n_params:
        raise FitDegenerate(f"{n_obs} observations for {n_params} parameters")
    if np.ptp(y) == 0:
        raise FitDegenerate("constant expression")
    if (dropped or not full_rank) and np.linalg.matrix_rank(X) < n_params:
        raise FitDegenerate("design is rank-deficient over the observed samples")

    fit = sm.OLS(y, X).fit()
    pvalues = pd.Series(fit.pvalues, index=design.columns).drop(INTERCEPT)
    if pvalues.isna().all():
        raise FitDegenerate("no finite coefficient p-values")

    best_term = pvalues.idxmin()
    return GeneScore(
        min_pvalue=float(pvalues[best_term]),
        best_term=best_term,
        f_pvalue=float(fit.f_pvalue),
        n_obs=int(n_obs),
    )


def _score_or_nan(gene: str, values: np.ndarray, design: pd.DataFrame) -> tuple:
    try:
        s = score_gene(values, design)
    except FitDegenerate as e:
        log.debug(f"  {gene}: degenerate fit ({e})")
        return (np.nan, None, np.nan, int(np.isfinite(values).sum()))
    return (s.min_pvalue, s.best_term, s.f_pvalue, s.n_obs)


def rank_genes(expression: pd.DataFrame, factors: pd.DataFrame,
               n_top: int = 1000, n_jobs: int = 1) -> GeneRanking:
    """
    Score every gene (row) of ``expression`` and keep the ``n_top`` smallest.

    ``factors`` is indexed by sample id and must cover every expression column.
    """
    if expression.empty:
        raise EmptyGeneSetError("No genes to rank")
    missing = pd.Index(expression.columns).difference(factors.index)
    if len(missing):
        raise ValidationError(f"No factor values for samples {missing.tolist()[:5]}",
                              failures=("factor_values",))

    design = build_design(factors.loc[expression.columns])
    values = expression.to_numpy(dtype=np.float64)
    genes = expression.index.tolist()
    log.info(f"  Fitting {len(genes):,} genes × {design.shape[0]} samples  "
             f"({design.shape[1]} parameters, n_jobs={n_jobs})")

    if n_jobs == 1:
        rows = [_score_or_nan(g, v, design) for g, v in zip(genes, values)]
    else:
        rows = Parallel(n_jobs=n_jobs)(
            delayed(_score_or_nan)(g, v, design) for g, v in zip(genes, values)
        )

    table = pd.DataFrame(rows, index=expression.index, columns=TABLE_COLUMNS)
    table.index.name = "gene"
    finite = table["min_pvalue"].notna()
    n_degenerate = int((~finite).sum())
    if n_degenerate:
        log.warning(f"  {n_degenerate:,} genes with degenerate fits (score = NaN, excluded)")
    if not finite.any():
        raise EmptyGeneSetError("Every gene fit was degenerate; nothing to rank")

    table["qvalue"] = np.nan
    table.loc[finite, "qvalue"] = multipletests(
        table.loc[finite, "min_pvalue"].to_numpy(), method="fdr_bh"
    )[1]
    table = table.sort_values("min_pvalue", na_position="last", kind="mergesort")

    ranked = table.index[table["min_pvalue"].notna()]
    if n_top > len(ranked):
        log.warning(f"  Requested top {n_top:,} but only {len(ranked):,} genes have scores")
    top = tuple(ranked[:n_top])
    log.info(f"  Top {len(top):,} genes: min_pvalue ≤ "
             f"{table.loc[list(top), 'min_pvalue'].max():.3g}")
    return GeneRanking(table=table, top=top, n_degenerate=n_degenerate)
