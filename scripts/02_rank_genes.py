"""
02_rank_genes.py
----------------
Validate sample metadata, filter genes by total expression and rank the
survivors with a per-gene additive linear model.

Pipeline
────────
  1. Sample checks  (fatal on failure)
       - expression column count == metadata row count
       - column ids == row ids, same order
       - sample ids unique
  2. Factor table: genotype / nutrient / time as unordered categoricals
  3. Median-total filter: keep genes whose summed expression is strictly
     above the median of all gene totals
  4. Per-gene OLS  y ~ genotype + nutrient + time  (treatment coding)
       score = smallest non-intercept coefficient p-value
       degenerate fits → NaN, excluded from the top-N
  5. Keep the N_TOP_GENES smallest scores

Design decisions
────────────────
  - The score is the single most significant factor level per gene, not the
    model F-test; f_pvalue and a BH q-value are stored alongside for
    reference but play no part in the ranking.
  - No multiple-testing correction is applied to the selection.

Outputs
───────
  data/processed/
    factors.parquet               samples × {genotype, nutrient, time}
    expression_filtered.parquet   genes above median total × samples
    ranking.parquet               ranking table (all filtered genes)
    top_genes.txt                 N_TOP_GENES ids, best first
  results/tables/
    gene_ranking.tsv
    best_term_counts.tsv          how often each coefficient was the minimum
  results/figures/ranking/
    score_distribution.pdf

Run from project root:
  python scripts/02_rank_genes.py
"""

import logging
import sys

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from expression_report import config
from expression_report.errors import ReportError
from expression_report.loader import factor_table
from expression_report.pipeline import select_genes
from expression_report.validation import validate_samples

config.setup_logging("02_rank_genes")
log = logging.getLogger(__name__)

FIG_OUT = config.FIG_OUT / "ranking"


def load_inputs() -> tuple[pd.DataFrame, pd.DataFrame]:
    for path in (config.EXPRESSION_PATH, config.METADATA_PATH):
        if not path.exists():
            log.error(f"{path.name} not found — run 01_fetch_series.py first")
            sys.exit(1)
    expression = pd.read_parquet(config.EXPRESSION_PATH)
    metadata = pd.read_parquet(config.METADATA_PATH)
    log.info(f"  Expression: {expression.shape}   Metadata: {metadata.shape}")
    return expression, metadata


def plot_score_distribution(table: pd.DataFrame, n_top: int, out_path) -> None:
    scores = table["min_pvalue"].dropna()
    fig, ax = plt.subplots(figsize=(5, 3.5))
    ax.hist(-np.log10(scores.clip(lower=1e-300)), bins=60, color="tab:blue",
            edgecolor="white", linewidth=0.3)
    if len(scores) >= n_top:
        cutoff = -np.log10(max(scores.iloc[n_top - 1], 1e-300))
        ax.axvline(cutoff, ls="--", color="tab:red", lw=1.0,
                   label=f"top {n_top:,} cutoff")
        ax.legend(frameon=False)
    ax.set_xlabel("-log10(min non-intercept p-value)")
    ax.set_ylabel("Genes")
    ax.set_title(f"Per-gene model scores (n={len(scores):,})")
    plt.tight_layout()
    fig.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    log.info(f"  Score distribution saved → {out_path}")


def main():
    config.ensure_dirs(config.PROCESSED, config.TABLE_OUT, FIG_OUT)

    log.info("=" * 60)
    log.info("STEP 2: VALIDATE, FILTER, RANK")
    log.info("=" * 60)
    log.info(f"Top genes kept:  {config.N_TOP_GENES:,}")
    log.info(f"Factor keys:     {config.FACTOR_KEYS}")

    expression, metadata = load_inputs()

    try:
        log.info("")
        log.info("Sample checks...")
        validate_samples(expression, metadata)

        log.info("")
        log.info("Factor table...")
        factors = factor_table(metadata, config.FACTOR_KEYS)

        log.info("")
        log.info("Filter + rank...")
        filtered, ranking = select_genes(expression, factors,
                                         n_top=config.N_TOP_GENES,
                                         n_jobs=config.N_JOBS)
    except ReportError as e:
        log.error(f"Step 2 failed: {e}")
        sys.exit(1)

    factors.to_parquet(config.FACTORS_PATH)
    filtered.to_parquet(config.FILTERED_PATH)
    ranking.table.to_parquet(config.RANKING_PATH)
    config.TOP_GENES_PATH.write_text("\n".join(ranking.top) + "\n")
    log.info(f"  Saved -> {config.FACTORS_PATH}")
    log.info(f"  Saved -> {config.FILTERED_PATH} {filtered.shape}")
    log.info(f"  Saved -> {config.RANKING_PATH}")
    log.info(f"  Saved -> {config.TOP_GENES_PATH} ({len(ranking.top):,} genes)")

    table_path = config.TABLE_OUT / "gene_ranking.tsv"
    ranking.table.to_csv(table_path, sep="\t", float_format="%.6g")
    log.info(f"  Ranking table saved → {table_path}")

    top_terms = ranking.top_table["best_term"].value_counts()
    terms_path = config.TABLE_OUT / "best_term_counts.tsv"
    top_terms.rename_axis("term").rename("n_genes").to_csv(terms_path, sep="\t")
    log.info(f"  Best-term counts saved → {terms_path}")

    plot_score_distribution(ranking.table, config.N_TOP_GENES,
                            FIG_OUT / "score_distribution.pdf")

    # ── Summary ───────────────────────────────────────────────────────────────
    log.info("")
    log.info("=" * 60)
    log.info("RANKING COMPLETE — SUMMARY")
    log.info("=" * 60)
    log.info(f"  Genes in matrix:        {expression.shape[0]:,}")
    log.info(f"  Above median total:     {filtered.shape[0]:,}")
    log.info(f"  Degenerate fits:        {ranking.n_degenerate:,}")
    log.info(f"  Selected:               {len(ranking.top):,}")
    log.info("  Most frequent best terms among selected genes:")
    for term, n in top_terms.head(8).items():
        log.info(f"    {term:35s} {n:6d}")
    log.info("\n✓ Next: python scripts/03_clustering.py")


if __name__ == "__main__":
    main()
