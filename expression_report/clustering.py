"""
Hierarchical agglomerative clustering of samples or genes.

Euclidean distances between item vectors (scipy pdist), average linkage.
The result exposes the leaf order (to reorder an axis for display) and a
cut-at-k operation returning one integer label (1..k) per item. Every call
recomputes from scratch; sample- and gene-level clusterings are independent.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, leaves_list, linkage
from scipy.spatial.distance import pdist, squareform

log = logging.getLogger(__name__)

AXES = ("samples", "genes")


@dataclass(frozen=True, eq=False)
class HierarchicalClustering:
    axis: str
    labels: pd.Index            # item ids in input order
    condensed: np.ndarray       # pdist output
    linkage: np.ndarray         # scipy linkage matrix
    method: str = "average"

    @property
    def n_items(self) -> int:
        return len(self.labels)

    @property
    def distances(self) -> pd.DataFrame:
        """Square, symmetric distance matrix labelled by item id."""
        return pd.DataFrame(squareform(self.condensed),
                            index=self.labels, columns=self.labels)

    def leaf_order(self) -> list:
        """Item ids in dendrogram left-to-right order."""
        return self.labels[leaves_list(self.linkage)].tolist()

    def cut(self, k: int) -> pd.Series:
        """Cut the tree into at most k clusters; labels are 1..k."""
        if not 1 <= k <= self.n_items:
            raise ValueError(f"k must lie in 1..{self.n_items}, got {k}")
        assignment = fcluster(self.linkage, t=k, criterion="maxclust")
        return pd.Series(assignment, index=self.labels, name=f"k{k}")

    def leaf_order_by_cluster(self, k: int) -> list:
        """Leaf order regrouped by cluster label (1..k), dendrogram order within."""
        labels = self.cut(k).to_dict()
        return sorted(self.leaf_order(), key=labels.__getitem__)

    def cuts(self, ks) -> pd.DataFrame:
        return pd.concat([self.cut(k) for k in ks], axis=1)


def hierarchical_cluster(matrix: pd.DataFrame, axis: str = "samples",
                         method: str = "average") -> HierarchicalClustering:
    """
    Cluster the columns (axis="samples") or rows (axis="genes") of a
    genes × samples matrix. Features with missing values are dropped first.
    """
    if axis not in AXES:
        raise ValueError(f"axis must be one of {AXES}, got {axis!r}")
    items = matrix.T if axis == "samples" else matrix
    if items.shape[0] < 2:
        raise ValueError(f"Need at least 2 {axis} to cluster, got {items.shape[0]}")

    complete = items.notna().all(axis=0)
    if not complete.all():
        log.warning(f"  Dropping {int((~complete).sum()):,} features with missing "
                    f"values before clustering {axis}")
        items = items.loc[:, complete]
    if items.shape[1] == 0:
        raise ValueError(f"No complete features left to cluster {axis}")

    condensed = pdist(items.to_numpy(dtype=np.float64), metric="euclidean")
    Z = linkage(condensed, method=method)
    log.info(f"  {method}-linkage clustering of {items.shape[0]:,} {axis} "
             f"on {items.shape[1]:,} features")
    return HierarchicalClustering(axis=axis, labels=pd.Index(items.index),
                                  condensed=condensed, linkage=Z, method=method)
