"""
run_report.py
-------------
Whole report in one process: fetch → validate → rank → cluster → silhouette
→ PCA → figures + tables, with no intermediate parquet files.

Outputs: results/report_<GSE>/{figures,tables}/

Run from project root:
  python scripts/run_report.py GSE12345 [--n-top 1000] [--n-jobs -1]
"""

import argparse
import logging
import sys

from expression_report import config
from expression_report.errors import ReportError
from expression_report.loader import load_series
from expression_report.pipeline import run_pipeline, write_report

config.setup_logging("run_report")
log = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Exploratory report for a GEO series")
    parser.add_argument("accession", help="GEO series accession, e.g. GSE12345")
    parser.add_argument("--n-top", type=int, default=config.N_TOP_GENES,
                        help="genes kept after ranking")
    parser.add_argument("--n-jobs", type=int, default=config.N_JOBS,
                        help="parallel per-gene fits (-1 = all cores)")
    return parser.parse_args()


def main():
    args = parse_args()
    out_dir = config.RESULTS / f"report_{args.accession}"

    try:
        dataset = load_series(args.accession, destdir=config.RAW_DIR)
        result = run_pipeline(dataset, n_top=args.n_top, n_jobs=args.n_jobs)
    except ReportError as e:
        log.error(f"Report for {args.accession} failed: {e}")
        sys.exit(1)

    paths = write_report(result, out_dir)

    log.info("")
    log.info("=" * 60)
    log.info("REPORT COMPLETE — SUMMARY")
    log.info("=" * 60)
    log.info(f"  Samples:             {dataset.shape[1]}")
    log.info(f"  Genes (all / kept):  {dataset.shape[0]:,} / {result.filtered.shape[0]:,}")
    log.info(f"  Degenerate fits:     {result.ranking.n_degenerate:,}")
    log.info(f"  Top genes:           {len(result.ranking.top):,}")
    for k, row in result.silhouette.summary.iterrows():
        log.info(f"  Silhouette k={k}:    {row['mean_width']:.4f}")
    pcs = 100 * result.pca.explained_variance_ratio
    pc2 = pcs.iloc[1] if len(pcs) > 1 else 0.0
    log.info(f"  PC1 / PC2 variance:  {pcs.iloc[0]:.1f}% / {pc2:.1f}%")
    log.info(f"  {len(paths)} files written under {out_dir}")


if __name__ == "__main__":
    main()
