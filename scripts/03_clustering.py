"""
03_clustering.py
----------------
Hierarchical clustering of samples and of the top-ranked genes, with
silhouette widths for several cuts of the gene dendrogram.

Pipeline
────────
  1. Sample clustering: Euclidean distance between sample vectors over all
     genes, average linkage → dendrogram (one figure per factor colouring)
  2. Gene clustering: z-score the top genes across samples, Euclidean
     distance between gene vectors, average linkage
  3. Cut the gene dendrogram at k in K_RANGE; silhouette width per gene and
     mean per k
  4. k = K_PRIMARY is used downstream for the cluster-ordered heatmap; the
     silhouette table is reported for inspection and does not pick k

Outputs
───────
  data/processed/
    gene_cluster_assignments.parquet   genes × {k3, k4, k5}
    sample_order.txt                   sample dendrogram leaf order
    gene_order.txt                     gene dendrogram leaf order
  results/tables/
    silhouette_summary.tsv
    silhouette_widths.tsv
  results/figures/clustering/
    sample_dendrogram_<factor>.pdf
    silhouette_k{k}.pdf
    silhouette_summary.pdf

Run from project root:
  python scripts/03_clustering.py
"""

import logging
import sys

import pandas as pd

from expression_report import config
from expression_report.clustering import hierarchical_cluster
from expression_report.plots import (
    plot_dendrogram,
    plot_silhouette,
    plot_silhouette_summary,
)
from expression_report.preprocess import zscore_rows
from expression_report.silhouette import evaluate_cuts

config.setup_logging("03_clustering")
log = logging.getLogger(__name__)

FIG_OUT = config.FIG_OUT / "clustering"


def load_inputs():
    for path in (config.EXPRESSION_PATH, config.FACTORS_PATH,
                 config.FILTERED_PATH, config.TOP_GENES_PATH):
        if not path.exists():
            log.error(f"{path.name} not found — run 02_rank_genes.py first")
            sys.exit(1)
    expression = pd.read_parquet(config.EXPRESSION_PATH)
    factors = pd.read_parquet(config.FACTORS_PATH)
    filtered = pd.read_parquet(config.FILTERED_PATH)
    top_genes = [g for g in config.TOP_GENES_PATH.read_text().splitlines() if g]
    log.info(f"  Expression: {expression.shape}  Factors: {factors.shape}  "
             f"Top genes: {len(top_genes):,}")
    return expression, factors, filtered.loc[top_genes]


def main():
    config.ensure_dirs(config.PROCESSED, config.TABLE_OUT, FIG_OUT)

    log.info("=" * 60)
    log.info("STEP 3: SAMPLE + GENE CLUSTERING")
    log.info("=" * 60)
    log.info(f"Linkage:      {config.LINKAGE}")
    log.info(f"k evaluated:  {list(config.K_RANGE)}  (display k={config.K_PRIMARY})")

    expression, factors, top = load_inputs()

    # ── Samples ───────────────────────────────────────────────────────────────
    log.info("")
    log.info("Sample clustering...")
    samples = hierarchical_cluster(expression, axis="samples", method=config.LINKAGE)
    for name in factors.columns:
        plot_dendrogram(samples, factors, name,
                        FIG_OUT / f"sample_dendrogram_{name}.pdf")
    config.SAMPLE_ORDER_PATH.write_text("\n".join(samples.leaf_order()) + "\n")
    log.info(f"  Sample order saved → {config.SAMPLE_ORDER_PATH}")

    # ── Genes ─────────────────────────────────────────────────────────────────
    log.info("")
    log.info("Gene clustering (z-scored top genes)...")
    try:
        genes = hierarchical_cluster(zscore_rows(top), axis="genes",
                                     method=config.LINKAGE)
    except ValueError as e:
        log.error(f"Gene clustering failed: {e}")
        sys.exit(1)
    config.GENE_ORDER_PATH.write_text("\n".join(genes.leaf_order()) + "\n")
    log.info(f"  Gene order saved → {config.GENE_ORDER_PATH}")

    # ── Silhouette ────────────────────────────────────────────────────────────
    log.info("")
    log.info("Silhouette widths per cut...")
    evaluation = evaluate_cuts(genes, config.K_RANGE)

    for col in evaluation.widths.columns:
        plot_silhouette(evaluation.widths[col], evaluation.assignments[col],
                        int(col[1:]), FIG_OUT / f"silhouette_{col}.pdf")
    plot_silhouette_summary(evaluation.summary, FIG_OUT / "silhouette_summary.pdf",
                            highlight_k=config.K_PRIMARY)

    evaluation.assignments.to_parquet(config.ASSIGNMENTS_PATH)
    log.info(f"  Cluster assignments saved → {config.ASSIGNMENTS_PATH}")
    summary_path = config.TABLE_OUT / "silhouette_summary.tsv"
    evaluation.summary.to_csv(summary_path, sep="\t", float_format="%.4f")
    widths_path = config.TABLE_OUT / "silhouette_widths.tsv"
    evaluation.widths.to_csv(widths_path, sep="\t", float_format="%.4f")
    log.info(f"  Silhouette tables saved → {summary_path}, {widths_path}")

    # ── Summary ───────────────────────────────────────────────────────────────
    log.info("")
    log.info("=" * 60)
    log.info("CLUSTERING COMPLETE — SUMMARY")
    log.info("=" * 60)
    log.info(f"  Samples clustered:  {samples.n_items}")
    log.info(f"  Genes clustered:    {genes.n_items:,}")
    log.info("  Mean silhouette width by k:")
    for k, row in evaluation.summary.iterrows():
        log.info(f"    k={k}: {row['mean_width']:.4f}  sizes={row['cluster_sizes']}"
                 + ("  ← display" if k == config.K_PRIMARY else ""))
    log.info("\n✓ Next: python scripts/04_heatmaps.py")


if __name__ == "__main__":
    main()
