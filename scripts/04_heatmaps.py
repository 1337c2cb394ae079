"""
04_heatmaps.py
--------------
Tile heatmaps of the top-ranked genes, z-scored per gene across samples.

Heatmaps
────────
  heatmap_clustered.pdf            genes: dendrogram order   samples: dendrogram order
  heatmap_gene_clusters_k{K}.pdf   genes: grouped by cluster samples: dendrogram order
  heatmap_by_<factor>.pdf          genes: dendrogram order   samples: sorted by factor

Every heatmap carries one annotation strip per factor (genotype, nutrient,
time). Colours come from the declarative palettes; unseen levels are drawn
in the fallback grey.

Outputs: results/figures/heatmaps/

Run from project root:
  python scripts/04_heatmaps.py
"""

import logging
import sys

import pandas as pd

from expression_report import config
from expression_report.pipeline import sample_order_by
from expression_report.plots import plot_heatmap
from expression_report.preprocess import zscore_rows

config.setup_logging("04_heatmaps")
log = logging.getLogger(__name__)

FIG_OUT = config.FIG_OUT / "heatmaps"


def read_ids(path) -> list[str]:
    return [line for line in path.read_text().splitlines() if line]


def main():
    config.ensure_dirs(FIG_OUT)

    log.info("=" * 60)
    log.info("STEP 4: HEATMAPS")
    log.info("=" * 60)

    required = (config.FILTERED_PATH, config.FACTORS_PATH, config.TOP_GENES_PATH,
                config.ASSIGNMENTS_PATH, config.SAMPLE_ORDER_PATH, config.GENE_ORDER_PATH)
    for path in required:
        if not path.exists():
            log.error(f"{path.name} not found — run 02_rank_genes.py and "
                      "03_clustering.py first")
            sys.exit(1)

    filtered = pd.read_parquet(config.FILTERED_PATH)
    factors = pd.read_parquet(config.FACTORS_PATH)
    assignments = pd.read_parquet(config.ASSIGNMENTS_PATH)
    top_genes = read_ids(config.TOP_GENES_PATH)
    sample_order = read_ids(config.SAMPLE_ORDER_PATH)
    gene_order = read_ids(config.GENE_ORDER_PATH)

    z = zscore_rows(filtered.loc[top_genes])
    log.info(f"  z-scored matrix: {z.shape}  "
             f"range=[{z.min().min():.2f}, {z.max().max():.2f}]")

    plot_heatmap(z, FIG_OUT / "heatmap_clustered.pdf", factors,
                 gene_order=gene_order, sample_order=sample_order,
                 title="Top genes — genes and samples ordered by dendrogram")

    col = f"k{config.K_PRIMARY}"
    if col in assignments.columns:
        labels = assignments[col]
        by_cluster = sorted(gene_order, key=labels.to_dict().__getitem__)
        log.info(f"  k={config.K_PRIMARY} cluster sizes: "
                 f"{labels.value_counts().sort_index().tolist()}")
        plot_heatmap(z, FIG_OUT / f"heatmap_gene_clusters_{col}.pdf", factors,
                     gene_order=by_cluster, sample_order=sample_order,
                     gene_clusters=labels,
                     title=f"Top genes — grouped by gene cluster (k={config.K_PRIMARY})")
    else:
        log.warning(f"  No {col} assignments; cluster-ordered heatmap skipped")

    for name in factors.columns:
        plot_heatmap(z, FIG_OUT / f"heatmap_by_{name}.pdf", factors,
                     gene_order=gene_order,
                     sample_order=sample_order_by(factors, name),
                     title=f"Top genes — samples ordered by {name}")

    log.info("\n✓ Next: python scripts/05_pca.py")


if __name__ == "__main__":
    main()
