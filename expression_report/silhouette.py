"""
Silhouette widths for dendrogram cuts.

For item i with own-cluster mean distance a(i) and smallest mean distance to
another cluster b(i):  s(i) = (b(i) - a(i)) / max(a(i), b(i)).
Items alone in their cluster get s(i) = 0.

Used only to compare candidate k values; nothing here picks a k.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_samples

from .clustering import HierarchicalClustering

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SilhouetteEvaluation:
    summary: pd.DataFrame        # one row per k: n_clusters, mean_width, sizes
    widths: pd.DataFrame         # items × k{k}: per-item silhouette width
    assignments: pd.DataFrame    # items × k{k}: cluster label


def silhouette_widths(distances: pd.DataFrame, labels: pd.Series) -> pd.Series:
    """Per-item silhouette width from a square precomputed distance matrix."""
    labels = labels.reindex(distances.index)
    if labels.isna().any():
        raise ValueError("Cluster labels do not cover every item of the distance matrix")

    n_items = len(labels)
    n_clusters = labels.nunique()
    if n_clusters < 2:
        raise ValueError("Silhouette needs at least 2 clusters")
    if n_clusters == n_items:
        widths = np.zeros(n_items)
    else:
        widths = silhouette_samples(distances.to_numpy(), labels.to_numpy(),
                                    metric="precomputed")
    return pd.Series(widths, index=distances.index, name="silhouette")


def evaluate_cuts(clustering: HierarchicalClustering, ks=(3, 4, 5)) -> SilhouetteEvaluation:
    distances = clustering.distances
    rows, widths, assignments = [], {}, {}

    for k in ks:
        labels = clustering.cut(k)
        n_clusters = int(labels.nunique())
        if n_clusters < k:
            log.warning(f"  k={k}: cut produced only {n_clusters} clusters (tied merges)")
        s = silhouette_widths(distances, labels)
        sizes = labels.value_counts().sort_index()
        mean_width = float(s.mean())
        log.info(f"  k={k}  mean silhouette={mean_width:.4f}  "
                 f"sizes={sizes.tolist()}")
        rows.append({
            "k": k,
            "n_clusters": n_clusters,
            "mean_width": mean_width,
            "min_cluster_mean": float(s.groupby(labels).mean().min()),
            "cluster_sizes": ",".join(str(n) for n in sizes.tolist()),
        })
        widths[f"k{k}"] = s
        assignments[f"k{k}"] = labels

    return SilhouetteEvaluation(
        summary=pd.DataFrame(rows).set_index("k"),
        widths=pd.DataFrame(widths),
        assignments=pd.DataFrame(assignments),
    )
