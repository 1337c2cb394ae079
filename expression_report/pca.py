"""
Principal component analysis of a genes × samples matrix.

Samples are the observations: the matrix is transposed to samples × genes,
each gene is standardised to zero mean / unit variance (StandardScaler) and
sklearn PCA (SVD) is fitted. Genes with zero variance or missing values
cannot be scaled and are dropped first.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PCAResult:
    scores: pd.DataFrame                 # samples × PCs
    explained_variance_ratio: pd.Series  # per PC, sums to ≤ 1
    loadings: pd.DataFrame               # genes × PCs

    def axis_label(self, pc: str) -> str:
        return f"{pc} ({100 * self.explained_variance_ratio[pc]:.1f}%)"


def run_pca(expression: pd.DataFrame, n_components: int | None = None) -> PCAResult:
    data = expression.T                  # samples × genes
    usable = data.notna().all(axis=0) & (data.std(axis=0) > 0)
    if not usable.all():
        log.warning(f"  PCA: dropping {int((~usable).sum()):,} genes with zero "
                    "variance or missing values")
        data = data.loc[:, usable]
    if data.shape[1] == 0 or data.shape[0] < 2:
        raise ValueError(f"PCA needs ≥2 samples and ≥1 variable gene, got {data.shape}")

    max_components = min(data.shape)
    if n_components is None or n_components > max_components:
        n_components = max_components

    scaled = StandardScaler().fit_transform(data.to_numpy(dtype=np.float64))
    pca = PCA(n_components=n_components, svd_solver="full")
    scores = pca.fit_transform(scaled)

    pcs = [f"PC{i + 1}" for i in range(n_components)]
    result = PCAResult(
        scores=pd.DataFrame(scores, index=data.index, columns=pcs),
        explained_variance_ratio=pd.Series(pca.explained_variance_ratio_, index=pcs,
                                           name="explained_variance_ratio"),
        loadings=pd.DataFrame(pca.components_.T, index=data.columns, columns=pcs),
    )
    head = ", ".join(f"{pc}={v:.3f}" for pc, v in
                     result.explained_variance_ratio.head(3).items())
    log.info(f"  PCA on {data.shape[0]} samples × {data.shape[1]:,} genes: {head}")
    return result
