"""
01_fetch_series.py
------------------
Download a GEO series (family SOFT file) and split it into an expression
matrix and a sample-metadata table.

  1. Fetch  data/raw/<GSE>_family.soft.gz   (cached; bounded retries + timeout)
  2. Parse with GEOparse
       expression : ID_REF × GSM  (VALUE column of every sample table)
       metadata   : GSM × {title, source_name, characteristics_ch1 keys}
  3. Reorder metadata rows to the expression column order

Outputs (data/processed/)
─────────────────────────
  expression.parquet    genes × samples
  metadata.parquet      samples × attributes
  accession.txt         the series accession the run is based on

Run from project root:
  python scripts/01_fetch_series.py GSE12345
"""

import argparse
import logging
import sys

from expression_report import config
from expression_report.errors import ReportError
from expression_report.loader import load_series

config.setup_logging("01_fetch_series")
log = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Download and parse a GEO series")
    parser.add_argument("accession", help="GEO series accession, e.g. GSE12345")
    return parser.parse_args()


def main():
    args = parse_args()
    config.ensure_dirs(config.RAW_DIR, config.PROCESSED)

    log.info("=" * 60)
    log.info(f"STEP 1: FETCH SERIES {args.accession}")
    log.info("=" * 60)

    try:
        dataset = load_series(args.accession, destdir=config.RAW_DIR)
    except ReportError as e:
        log.error(f"Could not load {args.accession}: {e}")
        sys.exit(1)

    dataset.expression.to_parquet(config.EXPRESSION_PATH)
    log.info(f"Saved -> {config.EXPRESSION_PATH} {dataset.expression.shape}")
    dataset.metadata.astype("string").to_parquet(config.METADATA_PATH)
    log.info(f"Saved -> {config.METADATA_PATH} {dataset.metadata.shape}")
    (config.PROCESSED / "accession.txt").write_text(args.accession + "\n")

    log.info("")
    log.info("Characteristic keys and observed levels:")
    for col in dataset.metadata.columns:
        if col in ("title", "source_name"):
            continue
        levels = dataset.metadata[col].dropna().unique().tolist()
        log.info(f"  {col:25s} {len(levels):3d} levels  {levels[:6]}")
    log.info(f"Factor keys used downstream: {config.FACTOR_KEYS}")
    log.info("\n✓ Next: python scripts/02_rank_genes.py")


if __name__ == "__main__":
    main()
