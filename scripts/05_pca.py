"""
05_pca.py
---------
Principal component analysis of the top-ranked genes.

  1. samples × genes matrix of the top genes
  2. Standardise each gene (zero mean, unit variance across samples)
  3. PCA (SVD); scores per sample, variance explained per component
  4. PC1 vs PC2 scatter for every (colour, shape) pairing of the factors

Outputs
───────
  results/tables/
    pca_scores.tsv          samples × PCs
    pca_variance.tsv        explained variance ratio per PC
  results/figures/pca/
    pca_<colour>_<shape>.pdf
    pca_scree.pdf

Run from project root:
  python scripts/05_pca.py
"""

import logging
import sys
from itertools import permutations

import pandas as pd

from expression_report import config
from expression_report.pca import run_pca
from expression_report.plots import plot_pca, plot_scree

config.setup_logging("05_pca")
log = logging.getLogger(__name__)

FIG_OUT = config.FIG_OUT / "pca"


def main():
    config.ensure_dirs(config.TABLE_OUT, FIG_OUT)

    log.info("=" * 60)
    log.info("STEP 5: PCA OF TOP GENES")
    log.info("=" * 60)

    for path in (config.FILTERED_PATH, config.FACTORS_PATH, config.TOP_GENES_PATH):
        if not path.exists():
            log.error(f"{path.name} not found — run 02_rank_genes.py first")
            sys.exit(1)

    filtered = pd.read_parquet(config.FILTERED_PATH)
    factors = pd.read_parquet(config.FACTORS_PATH)
    top_genes = [g for g in config.TOP_GENES_PATH.read_text().splitlines() if g]
    top = filtered.loc[top_genes]
    log.info(f"  Top-gene matrix: {top.shape}")

    try:
        result = run_pca(top)
    except ValueError as e:
        log.error(f"PCA failed: {e}")
        sys.exit(1)

    for colour, shape in permutations(factors.columns, 2):
        plot_pca(result, factors, colour, shape, FIG_OUT / f"pca_{colour}_{shape}.pdf")
    plot_scree(result, FIG_OUT / "pca_scree.pdf", n=config.N_PCS_SCREE)

    scores_path = config.TABLE_OUT / "pca_scores.tsv"
    result.scores.join(factors).to_csv(scores_path, sep="\t", float_format="%.6g")
    variance_path = config.TABLE_OUT / "pca_variance.tsv"
    result.explained_variance_ratio.to_csv(variance_path, sep="\t", float_format="%.6g")
    log.info(f"  Tables saved → {scores_path}, {variance_path}")

    log.info("")
    log.info("=" * 60)
    log.info("PCA COMPLETE — SUMMARY")
    log.info("=" * 60)
    cumulative = result.explained_variance_ratio.cumsum()
    for pc, ratio in result.explained_variance_ratio.head(5).items():
        log.info(f"  {pc}: {100 * ratio:5.1f}%   cumulative {100 * cumulative[pc]:5.1f}%")


if __name__ == "__main__":
    main()
