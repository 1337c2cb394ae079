"""
pipeline.py
-----------
In-memory chaining of the report stages.

  validate → factor table → sample clustering → median filter → rank
  → top-gene subset → gene clustering (z-scored rows) → silhouette (k range)
  → PCA

Each stage gets its inputs as arguments and returns a new value; the whole
run is captured in one frozen PipelineResult. write_report() turns a result
into figures + tables on disk.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from . import config, plots
from .clustering import HierarchicalClustering, hierarchical_cluster
from .loader import ExpressionDataset, factor_table
from .pca import PCAResult, run_pca
from .preprocess import filter_by_median_total, zscore_rows
from .ranking import GeneRanking, rank_genes
from .silhouette import SilhouetteEvaluation, evaluate_cuts
from .validation import ValidationReport, validate_samples

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    dataset: ExpressionDataset
    validation: ValidationReport
    factors: pd.DataFrame
    filtered: pd.DataFrame
    ranking: GeneRanking
    top_expression: pd.DataFrame
    sample_clustering: HierarchicalClustering
    gene_clustering: HierarchicalClustering
    silhouette: SilhouetteEvaluation
    pca: PCAResult


def select_genes(expression: pd.DataFrame, factors: pd.DataFrame,
                 n_top: int = config.N_TOP_GENES,
                 n_jobs: int = config.N_JOBS) -> tuple[pd.DataFrame, GeneRanking]:
    """Median-total filter, then rank the survivors; returns (filtered, ranking)."""
    filtered = filter_by_median_total(expression)
    ranking = rank_genes(filtered, factors, n_top=n_top, n_jobs=n_jobs)
    return filtered, ranking


def sample_order_by(factors: pd.DataFrame, by: str) -> list:
    """Sample ids sorted by one attribute, remaining factors as tie-breakers."""
    keys = [by] + [c for c in factors.columns if c != by]
    return factors.sort_values(keys, kind="mergesort").index.tolist()


def run_pipeline(dataset: ExpressionDataset,
                 factor_keys: dict[str, str] = config.FACTOR_KEYS,
                 n_top: int = config.N_TOP_GENES,
                 ks=config.K_RANGE,
                 n_jobs: int = config.N_JOBS) -> PipelineResult:
    log.info("=" * 60)
    log.info(f"REPORT PIPELINE  {dataset.accession}  "
             f"{dataset.shape[0]:,} genes × {dataset.shape[1]} samples")
    log.info("=" * 60)

    validation = validate_samples(dataset.expression, dataset.metadata)
    factors = factor_table(dataset.metadata, factor_keys)
    sample_clustering = hierarchical_cluster(dataset.expression, axis="samples",
                                             method=config.LINKAGE)

    filtered, ranking = select_genes(dataset.expression, factors,
                                     n_top=n_top, n_jobs=n_jobs)
    top_expression = filtered.loc[list(ranking.top)]

    gene_clustering = hierarchical_cluster(zscore_rows(top_expression), axis="genes",
                                           method=config.LINKAGE)
    silhouette = evaluate_cuts(gene_clustering, ks)
    pca = run_pca(top_expression)

    return PipelineResult(
        dataset=dataset,
        validation=validation,
        factors=factors,
        filtered=filtered,
        ranking=ranking,
        top_expression=top_expression,
        sample_clustering=sample_clustering,
        gene_clustering=gene_clustering,
        silhouette=silhouette,
        pca=pca,
    )


def write_report(result: PipelineResult, out_dir: Path,
                 k_primary: int = config.K_PRIMARY) -> dict[str, Path]:
    """Render every figure and table of the report under out_dir."""
    out_dir = Path(out_dir)
    fig_dir = out_dir / "figures"
    table_dir = out_dir / "tables"
    table_dir.mkdir(parents=True, exist_ok=True)
    factors = result.factors
    first = factors.columns[0]
    paths = {}

    paths["dendrogram"] = plots.plot_dendrogram(
        result.sample_clustering, factors, first, fig_dir / "sample_dendrogram.pdf")

    z = zscore_rows(result.top_expression)
    gene_leaves = result.gene_clustering.leaf_order()
    paths["heatmap_clustered"] = plots.plot_heatmap(
        z, fig_dir / "heatmap_clustered.pdf", factors,
        gene_order=gene_leaves,
        sample_order=result.sample_clustering.leaf_order(),
        title="Top genes — genes and samples ordered by dendrogram")

    if f"k{k_primary}" in result.silhouette.assignments.columns:
        labels = result.silhouette.assignments[f"k{k_primary}"]
        paths["heatmap_gene_clusters"] = plots.plot_heatmap(
            z, fig_dir / f"heatmap_gene_clusters_k{k_primary}.pdf", factors,
            gene_order=result.gene_clustering.leaf_order_by_cluster(k_primary),
            sample_order=result.sample_clustering.leaf_order(),
            gene_clusters=labels,
            title=f"Top genes — grouped by gene cluster (k={k_primary})")
    else:
        log.warning(f"  k={k_primary} not among evaluated cuts; "
                    "skipping cluster-ordered heatmap")

    for name in factors.columns:
        paths[f"heatmap_by_{name}"] = plots.plot_heatmap(
            z, fig_dir / f"heatmap_by_{name}.pdf", factors,
            gene_order=gene_leaves,
            sample_order=sample_order_by(factors, name),
            title=f"Top genes — samples ordered by {name}")

    for col in result.silhouette.widths.columns:
        k = int(col[1:])
        paths[f"silhouette_{col}"] = plots.plot_silhouette(
            result.silhouette.widths[col], result.silhouette.assignments[col], k,
            fig_dir / f"silhouette_{col}.pdf")
    paths["silhouette_summary"] = plots.plot_silhouette_summary(
        result.silhouette.summary, fig_dir / "silhouette_summary.pdf",
        highlight_k=k_primary)

    second = factors.columns[1] if len(factors.columns) > 1 else first
    paths["pca"] = plots.plot_pca(result.pca, factors, first, second,
                                  fig_dir / f"pca_{first}_{second}.pdf")
    paths["scree"] = plots.plot_scree(result.pca, fig_dir / "pca_scree.pdf",
                                      n=config.N_PCS_SCREE)

    tables = {
        "gene_ranking": result.ranking.table,
        "silhouette_summary": result.silhouette.summary,
        "gene_cluster_assignments": result.silhouette.assignments,
        "pca_scores": result.pca.scores,
        "pca_variance": result.pca.explained_variance_ratio.to_frame(),
    }
    for name, df in tables.items():
        path = table_dir / f"{name}.tsv"
        df.to_csv(path, sep="\t", float_format="%.6g")
        paths[name] = path
        log.info(f"  Table saved → {path}")
    return paths
