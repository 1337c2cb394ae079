"""
loader.py
---------
Fetch a GEO series and turn it into an expression matrix + sample metadata.

Download
────────
  The family SOFT file is fetched over HTTPS from the NCBI GEO FTP mirror:
      https://ftp.ncbi.nlm.nih.gov/geo/series/GSE12nnn/GSE12345/soft/GSE12345_family.soft.gz
  through a requests Session with a urllib3 Retry adapter (bounded retries,
  exponential backoff, retry on 429/5xx) and a (connect, read) timeout.
  A cached copy under data/raw/ is reused when present.

Parsing
───────
  GEOparse reads the SOFT file. Each GSM contributes
    - one expression column  (ID_REF → VALUE of its data table)
    - one metadata row       (title, source name, characteristics_ch1 pairs)
  characteristics_ch1 lines look like "genotype: wild type"; the part before
  the first colon becomes the (lower-cased) column name.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import GEOparse
import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import config
from .errors import SourceUnavailable, ValidationError
from .validation import align_metadata

log = logging.getLogger(__name__)

ACCESSION_RE = re.compile(r"^GSE\d+$")


@dataclass(frozen=True, eq=False)
class ExpressionDataset:
    accession: str
    expression: pd.DataFrame    # genes × samples
    metadata: pd.DataFrame      # samples × attributes

    @property
    def shape(self) -> tuple[int, int]:
        return self.expression.shape


# ──────────────────────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────────────────────

def create_session(
    max_retries: int = config.HTTP_MAX_RETRIES,
    backoff_factor: float = config.HTTP_BACKOFF,
    status_forcelist: tuple = config.HTTP_RETRY_STATUSES,
    user_agent: str = config.HTTP_USER_AGENT,
) -> requests.Session:
    """
    Create a requests Session with retry logic and a User-Agent header.

    Args:
        max_retries: Maximum retry attempts per request
        backoff_factor: Backoff multiplier between retries
        status_forcelist: HTTP status codes that trigger a retry
        user_agent: User-Agent header value

    Returns:
        Configured requests.Session
    """
    session = requests.Session()
    retries = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=("GET", "HEAD"),
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": user_agent})
    return session


def soft_url(accession: str) -> str:
    """GSE12345 → .../series/GSE12nnn/GSE12345/soft/GSE12345_family.soft.gz"""
    if not ACCESSION_RE.match(accession):
        raise SourceUnavailable(f"Not a GEO series accession: {accession!r}")
    digits = accession[3:]
    stub = f"GSE{digits[:-3]}nnn"
    return config.GEO_SOFT_URL.format(stub=stub, accession=accession)


def fetch_series(accession: str, destdir: Path = config.RAW_DIR,
                 session: requests.Session | None = None) -> Path:
    """
    Download the family SOFT file for ``accession`` into ``destdir``.
    Returns the local path; a non-empty cached file is returned as is.
    Raises SourceUnavailable once the retry budget is exhausted.
    """
    url = soft_url(accession)
    destdir = Path(destdir)
    destdir.mkdir(parents=True, exist_ok=True)
    out_path = destdir / f"{accession}_family.soft.gz"

    if out_path.exists() and out_path.stat().st_size > 0:
        log.info(f"Using cached SOFT file: {out_path}")
        return out_path

    session = session or create_session()
    log.info(f"Downloading {accession} family SOFT file...")
    log.info(f"  URL: {url}")
    tmp_path = out_path.with_suffix(".part")
    try:
        with session.get(url, timeout=config.HTTP_TIMEOUT, stream=True) as response:
            response.raise_for_status()
            with open(tmp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=1 << 20):
                    f.write(chunk)
    except requests.RequestException as e:
        tmp_path.unlink(missing_ok=True)
        raise SourceUnavailable(f"Download of {accession} failed: {e}") from e

    tmp_path.replace(out_path)
    log.info(f"  Saved -> {out_path} ({out_path.stat().st_size / 1024:.1f} KB)")
    return out_path


# ──────────────────────────────────────────────────────────────────────────────
# GSM → tables
# ──────────────────────────────────────────────────────────────────────────────

def parse_characteristics(lines: list[str]) -> dict[str, str]:
    """["genotype: wt", "time: 30 min"] → {"genotype": "wt", "time": "30 min"}"""
    pairs = {}
    for line in lines:
        key, sep, value = line.partition(":")
        if not sep:
            log.debug(f"Skipping characteristic without key: {line!r}")
            continue
        pairs[key.strip().lower()] = value.strip()
    return pairs


def metadata_from_gsms(gsms: dict) -> pd.DataFrame:
    """One row per GSM (index = accession), columns = title, source_name + characteristics."""
    rows = {}
    for name, gsm in gsms.items():
        meta = gsm.metadata
        row = {
            "title": " ".join(meta.get("title", [])),
            "source_name": " ".join(meta.get("source_name_ch1", [])),
        }
        row.update(parse_characteristics(meta.get("characteristics_ch1", [])))
        rows[name] = row
    df = pd.DataFrame.from_dict(rows, orient="index")
    df.index.name = "sample"
    return df


def expression_from_gsms(gsms: dict,
                         value_column: str = config.VALUE_COLUMN) -> pd.DataFrame:
    """genes × samples matrix from each GSM's ID_REF / value_column table."""
    columns = {}
    for name, gsm in gsms.items():
        table = gsm.table
        if table is None or table.empty or value_column not in table.columns:
            raise SourceUnavailable(f"{name}: no '{value_column}' column in sample table")
        values = table.set_index("ID_REF")[value_column]
        columns[name] = pd.to_numeric(values, errors="coerce")

    matrix = pd.DataFrame(columns)
    matrix.index = matrix.index.astype(str)
    matrix.index.name = "gene"
    n_missing = int(matrix.isna().sum().sum())
    if n_missing:
        log.info(f"  {n_missing:,} missing expression values (kept as NaN)")
    return matrix


def load_series(accession: str, destdir: Path = config.RAW_DIR,
                session: requests.Session | None = None) -> ExpressionDataset:
    """Download (or reuse) and parse a GEO series into an ExpressionDataset."""
    path = fetch_series(accession, destdir, session=session)
    log.info(f"Parsing {path.name} with GEOparse...")
    try:
        gse = GEOparse.get_GEO(filepath=str(path), silent=True)
    except Exception as e:
        raise SourceUnavailable(f"Failed to parse {path}: {e}") from e

    if not gse.gsms:
        raise SourceUnavailable(f"{accession}: series contains no samples")

    expression = expression_from_gsms(gse.gsms)
    metadata = metadata_from_gsms(gse.gsms)
    metadata = align_metadata(expression, metadata)
    log.info(f"  Expression matrix: {expression.shape[0]:,} genes × "
             f"{expression.shape[1]} samples")
    log.info(f"  Metadata columns: {metadata.columns.tolist()}")
    return ExpressionDataset(accession=accession, expression=expression,
                             metadata=metadata)


# ──────────────────────────────────────────────────────────────────────────────
# Factor table
# ──────────────────────────────────────────────────────────────────────────────

def factor_table(metadata: pd.DataFrame,
                 factor_keys: dict[str, str] = config.FACTOR_KEYS) -> pd.DataFrame:
    """
    Pull the model factors out of the metadata as unordered categoricals.

    factor_keys maps factor name → source column (e.g. {"nutrient": "growth medium"}).
    A missing column or a missing/blank value in any sample is a ValidationError.
    """
    missing_cols = [key for key in factor_keys.values() if key not in metadata.columns]
    if missing_cols:
        raise ValidationError(
            f"Metadata lacks factor columns {missing_cols}; "
            f"available: {metadata.columns.tolist()}",
            failures=("factor_columns",),
        )

    factors = {}
    for name, key in factor_keys.items():
        values = metadata[key].astype("string").str.strip()
        blank = values.isna() | (values == "")
        if blank.any():
            raise ValidationError(
                f"Factor '{name}' (column '{key}') missing for samples "
                f"{values.index[blank].tolist()}",
                failures=("factor_values",),
            )
        levels = sorted(values.unique())
        factors[name] = pd.Categorical(values.tolist(), categories=levels, ordered=False)
        n_expected = config.EXPECTED_LEVELS.get(name)
        log.info(f"  {name}: {len(levels)} levels {levels}")
        if n_expected is not None and len(levels) != n_expected:
            log.warning(f"  {name}: expected {n_expected} levels, found {len(levels)}")

    return pd.DataFrame(factors, index=metadata.index)
