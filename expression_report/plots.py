"""
plots.py
--------
Static figures for the report. Every function is a sink: it draws one figure,
saves it to ``out_path`` (PDF or PNG by suffix), closes it and returns the path.

  plot_dendrogram           sample dendrogram, leaf labels coloured by a factor
  plot_heatmap              z-score tile grid + factor / cluster annotation strips
  plot_silhouette           per-item silhouette widths for one cut
  plot_silhouette_summary   mean silhouette width vs k
  plot_pca                  PC scatter, colour = one factor, marker = another
  plot_scree                variance explained per component
"""

import logging
from pathlib import Path

import matplotlib
matplotlib.use("Agg")   # headless
import matplotlib.gridspec as gridspec
import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.colors import to_rgb
from matplotlib.lines import Line2D
from scipy.cluster.hierarchy import dendrogram

from . import config
from .clustering import HierarchicalClustering
from .palettes import (
    FALLBACK_COLOR,
    CategoryStyle,
    cluster_colors,
    factor_colors,
    factor_markers,
)
from .pca import PCAResult

log = logging.getLogger(__name__)

plt.rcParams.update(config.RC_PARAMS)

HEATMAP_CMAP = "RdBu_r"
HEATMAP_CLIP = 3.0      # z-scores shown on [-3, 3]


def _save(fig, out_path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    log.info(f"  Figure saved → {out_path}")
    return out_path


def _legend_handles(style: CategoryStyle, title: str) -> list:
    handles = [mpatches.Patch(color=colour, label=str(level))
               for level, colour in style.legend_items()]
    return [mpatches.Patch(color="none", label=title)] + handles


def _strip(values, style: CategoryStyle) -> np.ndarray:
    """1 × n RGB array for an annotation strip."""
    return np.array([[to_rgb(c) for c in style.map(values)]])


# ──────────────────────────────────────────────────────────────────────────────
# Dendrogram
# ──────────────────────────────────────────────────────────────────────────────

def plot_dendrogram(clustering: HierarchicalClustering, factors: pd.DataFrame,
                    color_by: str, out_path, title: str | None = None) -> Path:
    style = factor_colors(factors)[color_by]
    levels = factors[color_by].astype(str)

    width = max(8, 0.12 * clustering.n_items)
    fig, ax = plt.subplots(figsize=(width, 4.5))
    tree = dendrogram(
        clustering.linkage,
        labels=clustering.labels.tolist(),
        leaf_rotation=90,
        leaf_font_size=6,
        color_threshold=0,
        above_threshold_color="#444444",
        ax=ax,
    )
    for tick in ax.get_xticklabels():
        tick.set_color(style.lookup(levels.get(tick.get_text(), None)))

    ax.set_ylabel(f"Euclidean distance ({clustering.method} linkage)")
    ax.set_title(title or f"Sample dendrogram — labels coloured by {color_by}")
    ax.legend(handles=_legend_handles(style, color_by), frameon=False,
              loc="upper right", fontsize=7)
    log.info(f"  Dendrogram: {len(tree['ivl'])} leaves")
    return _save(fig, out_path)


# ──────────────────────────────────────────────────────────────────────────────
# Heatmap
# ──────────────────────────────────────────────────────────────────────────────

def plot_heatmap(z: pd.DataFrame, out_path, factors: pd.DataFrame,
                 gene_order=None, sample_order=None,
                 gene_clusters: pd.Series | None = None,
                 title: str = "Top genes (z-score across samples)") -> Path:
    """
    z: genes × samples, already z-scored per gene.
    gene_order / sample_order: ids giving row / column order (default: as given).
    gene_clusters: optional gene → cluster label, drawn as a strip on the left.
    """
    gene_order = list(z.index) if gene_order is None else list(gene_order)
    sample_order = list(z.columns) if sample_order is None else list(sample_order)
    data = z.loc[gene_order, sample_order]
    ann = factors.loc[sample_order]
    styles = factor_colors(factors)

    n_strips = len(ann.columns)
    height = 7.0
    fig = plt.figure(figsize=(max(8, 0.09 * len(sample_order) + 3), height))
    gs = gridspec.GridSpec(
        n_strips + 1, 3, figure=fig,
        height_ratios=[0.35] * n_strips + [height],
        width_ratios=[0.25, 12, 0.3],
        hspace=0.05, wspace=0.03,
    )

    for i, name in enumerate(ann.columns):
        ax_s = fig.add_subplot(gs[i, 1])
        ax_s.imshow(_strip(ann[name].astype(str), styles[name]), aspect="auto",
                    interpolation="nearest")
        ax_s.set_xticks([])
        ax_s.set_yticks([0])
        ax_s.set_yticklabels([name], fontsize=7)

    ax = fig.add_subplot(gs[n_strips, 1])
    im = ax.imshow(data.to_numpy(), aspect="auto", interpolation="nearest",
                   cmap=HEATMAP_CMAP, vmin=-HEATMAP_CLIP, vmax=HEATMAP_CLIP)
    ax.set_yticks([])
    ax.set_xticks([])
    ax.set_xlabel(f"{len(sample_order)} samples")

    if gene_clusters is not None:
        ax_c = fig.add_subplot(gs[n_strips, 0], sharey=ax)
        labels = gene_clusters.loc[gene_order]
        style = cluster_colors(labels.unique())
        ax_c.imshow(_strip(labels, style).transpose(1, 0, 2), aspect="auto",
                    interpolation="nearest")
        ax_c.set_xticks([])
        ax_c.set_ylabel(f"{len(gene_order)} genes")
        ax_c.set_yticks([])
    else:
        ax.set_ylabel(f"{len(gene_order)} genes")

    cax = fig.add_subplot(gs[n_strips, 2])
    fig.colorbar(im, cax=cax, label="z-score")

    handles = []
    for name in ann.columns:
        handles += _legend_handles(styles[name], name)
    fig.legend(handles=handles, loc="upper left", bbox_to_anchor=(0.92, 0.98),
               frameon=False, fontsize=7)
    fig.suptitle(title)
    return _save(fig, out_path)


# ──────────────────────────────────────────────────────────────────────────────
# Silhouette
# ──────────────────────────────────────────────────────────────────────────────

def plot_silhouette(widths: pd.Series, labels: pd.Series, k: int, out_path) -> Path:
    """Horizontal bars per item, grouped by cluster, widest first within cluster."""
    labels = labels.reindex(widths.index)
    style = cluster_colors(labels.unique())
    order = (pd.DataFrame({"w": widths, "c": labels})
             .sort_values(["c", "w"], ascending=[True, False]))

    fig, ax = plt.subplots(figsize=(5, 6))
    y = np.arange(len(order))
    ax.barh(y, order["w"], height=1.0, color=style.map(order["c"]), linewidth=0)
    mean_width = float(widths.mean())
    ax.axvline(mean_width, ls="--", lw=1.0, color="black")
    for cid, grp in order.groupby("c", sort=True):
        pos = y[order["c"].to_numpy() == cid]
        ax.text(ax.get_xlim()[0], pos.mean(),
                f" {cid}: n={len(grp)}  mean={grp['w'].mean():.2f}",
                va="center", ha="left", fontsize=7)
    ax.set_yticks([])
    ax.invert_yaxis()
    ax.set_xlabel("Silhouette width")
    ax.set_title(f"Silhouette plot — k={k}  (mean = {mean_width:.3f})")
    return _save(fig, out_path)


def plot_silhouette_summary(summary: pd.DataFrame, out_path,
                            highlight_k: int | None = None) -> Path:
    fig, ax = plt.subplots(figsize=(5, 3.5))
    ks = summary.index.tolist()
    vals = summary["mean_width"].tolist()
    colours = ["tab:red" if k == highlight_k else "tab:blue" for k in ks]
    ax.bar(ks, vals, color=colours, edgecolor="white", linewidth=0.5)
    ax.set_xlabel("Number of clusters (k)")
    ax.set_ylabel("Mean silhouette width")
    title = "Gene clusters: mean silhouette width by k"
    if highlight_k is not None:
        title += f"\n(red = k={highlight_k} used for display)"
    ax.set_title(title)
    ax.set_xticks(ks)
    for k, v in zip(ks, vals):
        ax.text(k, v + 0.001, f"{v:.3f}", ha="center", va="bottom", fontsize=8)
    plt.tight_layout()
    return _save(fig, out_path)


# ──────────────────────────────────────────────────────────────────────────────
# PCA
# ──────────────────────────────────────────────────────────────────────────────

def plot_pca(result: PCAResult, factors: pd.DataFrame, color_by: str,
             marker_by: str, out_path, pcs=("PC1", "PC2")) -> Path:
    x_pc, y_pc = pcs
    ann = factors.loc[result.scores.index]
    colours = factor_colors(factors)[color_by]
    markers = factor_markers(ann[marker_by].astype(str), name=marker_by)

    fig, ax = plt.subplots(figsize=(6.5, 5))
    for (c_level, m_level), idx in ann.groupby([color_by, marker_by], observed=True).groups.items():
        pts = result.scores.loc[idx]
        ax.scatter(pts[x_pc], pts[y_pc],
                   c=colours.lookup(str(c_level)),
                   marker=markers.lookup(str(m_level)),
                   s=28, alpha=0.85, edgecolors="black", linewidths=0.3)

    handles = [Line2D([], [], color="none", label=color_by)]
    handles += [Line2D([], [], marker="o", ls="", color=c, label=str(level))
                for level, c in colours.legend_items()]
    handles += [Line2D([], [], color="none", label=marker_by)]
    handles += [Line2D([], [], marker=m, ls="", color=FALLBACK_COLOR,
                       markeredgecolor="black", label=str(level))
                for level, m in markers.legend_items()]
    ax.legend(handles=handles, frameon=False, loc="center left",
              bbox_to_anchor=(1.01, 0.5))
    ax.axhline(0, lw=0.5, color="#CCCCCC", zorder=0)
    ax.axvline(0, lw=0.5, color="#CCCCCC", zorder=0)
    ax.set_xlabel(result.axis_label(x_pc))
    ax.set_ylabel(result.axis_label(y_pc))
    ax.set_title(f"PCA of top genes — colour: {color_by}, shape: {marker_by}")
    plt.tight_layout()
    return _save(fig, out_path)


def plot_scree(result: PCAResult, out_path, n: int = 10) -> Path:
    ratio = result.explained_variance_ratio.head(n)
    fig, ax = plt.subplots(figsize=(5, 3.5))
    x = np.arange(1, len(ratio) + 1)
    ax.bar(x, 100 * ratio.to_numpy(), color="tab:blue", edgecolor="white")
    ax.plot(x, 100 * ratio.cumsum().to_numpy(), marker="o", color="tab:red",
            lw=1.0, ms=3, label="cumulative")
    ax.set_xticks(x)
    ax.set_xlabel("Principal component")
    ax.set_ylabel("Variance explained (%)")
    ax.set_title("PCA scree plot")
    ax.legend(frameon=False)
    plt.tight_layout()
    return _save(fig, out_path)
