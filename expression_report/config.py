"""
config.py
---------
Shared constants for the step scripts and the in-memory pipeline.

Everything here is a plain module-level constant; there is no config file and
no environment lookup. The series accession is the only run-time input and is
passed on the command line of the fetch / run scripts.
"""

import logging
import sys
from pathlib import Path

# ──────────────────────────────────────────────────────────────────────────────
# Paths
# ──────────────────────────────────────────────────────────────────────────────
ROOT       = Path(__file__).resolve().parents[1]
RAW_DIR    = ROOT / "data" / "raw"
PROCESSED  = ROOT / "data" / "processed"
RESULTS    = ROOT / "results"
FIG_OUT    = RESULTS / "figures"
TABLE_OUT  = RESULTS / "tables"
LOG_DIR    = ROOT / "logs"

EXPRESSION_PATH = PROCESSED / "expression.parquet"
METADATA_PATH   = PROCESSED / "metadata.parquet"
FACTORS_PATH    = PROCESSED / "factors.parquet"
FILTERED_PATH   = PROCESSED / "expression_filtered.parquet"
RANKING_PATH    = PROCESSED / "ranking.parquet"
TOP_GENES_PATH  = PROCESSED / "top_genes.txt"
ASSIGNMENTS_PATH = PROCESSED / "gene_cluster_assignments.parquet"
SAMPLE_ORDER_PATH = PROCESSED / "sample_order.txt"
GENE_ORDER_PATH   = PROCESSED / "gene_order.txt"

# ──────────────────────────────────────────────────────────────────────────────
# Dataset source (NCBI GEO)
# ──────────────────────────────────────────────────────────────────────────────
GEO_SOFT_URL = (
    "https://ftp.ncbi.nlm.nih.gov/geo/series/{stub}/{accession}/soft/"
    "{accession}_family.soft.gz"
)
HTTP_MAX_RETRIES    = 3
HTTP_BACKOFF        = 1.0                    # seconds, doubled per retry
HTTP_RETRY_STATUSES = (429, 500, 502, 503, 504)
HTTP_TIMEOUT        = (10, 120)              # (connect, read) seconds
HTTP_USER_AGENT     = "factorial-expression-report/0.1"
VALUE_COLUMN        = "VALUE"                # GSM table column holding expression

# Source characteristic keys (``characteristics_ch1`` "key: value" lines)
# for the three factors of the additive model.
FACTOR_KEYS = {
    "genotype": "genotype",
    "nutrient": "nutrient",
    "time":     "time",
}
FACTORS = tuple(FACTOR_KEYS)
EXPECTED_LEVELS = {"genotype": 4, "nutrient": 3, "time": 3}

# ──────────────────────────────────────────────────────────────────────────────
# Analysis parameters
# ──────────────────────────────────────────────────────────────────────────────
N_TOP_GENES   = 1_000         # genes kept after ranking by min p-value
K_RANGE       = (3, 4, 5)     # gene-dendrogram cuts scored by silhouette
K_PRIMARY     = 3             # cut used for the cluster-ordered heatmap
LINKAGE       = "average"
N_JOBS        = 1             # per-gene fits; -1 = all cores via joblib
N_PCS_SCREE   = 10

# ──────────────────────────────────────────────────────────────────────────────
# Figure style
# ──────────────────────────────────────────────────────────────────────────────
RC_PARAMS = {
    "font.family": "sans-serif",
    "font.size": 9,
    "axes.titlesize": 10,
    "axes.labelsize": 9,
    "xtick.labelsize": 8,
    "ytick.labelsize": 8,
    "legend.fontsize": 8,
    "figure.dpi": 150,
    "pdf.fonttype": 42,          # editable text in PDF
    "ps.fonttype": 42,
    "axes.spines.top": False,
    "axes.spines.right": False,
}


def setup_logging(step: str) -> None:
    """File + stdout logging for a step script; the file lands in logs/<step>.log."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(LOG_DIR / f"{step}.log"),
            logging.StreamHandler(sys.stdout),
        ],
    )


def ensure_dirs(*dirs: Path) -> None:
    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)
