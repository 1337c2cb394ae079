"""Tests for expression_report.loader (network and GEOparse are mocked)."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
import requests

from expression_report.errors import SourceUnavailable, ValidationError
from expression_report.loader import (
    create_session,
    expression_from_gsms,
    factor_table,
    fetch_series,
    load_series,
    metadata_from_gsms,
    parse_characteristics,
    soft_url,
)


def _gsm(title, characteristics, values, value_column="VALUE"):
    table = pd.DataFrame({"ID_REF": ["p1", "p2", "p3"], value_column: values})
    metadata = {
        "title": [title],
        "source_name_ch1": ["culture"],
        "characteristics_ch1": characteristics,
    }
    return SimpleNamespace(metadata=metadata, table=table)


@pytest.fixture
def gsms():
    return {
        "GSM1": _gsm("wt rep1", ["genotype: wt", "Nutrient: glucose", "time: 15 min"],
                     [1.0, 2.0, 3.0]),
        "GSM2": _gsm("mut rep1", ["genotype: mutA", "Nutrient: glycerol", "time: 30 min"],
                     [4.0, "null", 6.0]),
    }


# ---------------------------------------------------------------------------
# URLs and HTTP session
# ---------------------------------------------------------------------------

class TestSoftUrl:

    def test_series_stub(self):
        url = soft_url("GSE12345")
        assert url.endswith("/geo/series/GSE12nnn/GSE12345/soft/GSE12345_family.soft.gz")

    def test_short_accession(self):
        assert "/GSEnnn/GSE123/" in soft_url("GSE123")

    @pytest.mark.parametrize("bad", ["GDS123", "gse123", "GSE", "GSE12a"])
    def test_invalid_accession(self, bad):
        with pytest.raises(SourceUnavailable):
            soft_url(bad)


def test_create_session_mounts_retry_adapter():
    session = create_session(max_retries=4)
    adapter = session.get_adapter("https://ftp.ncbi.nlm.nih.gov/")
    assert adapter.max_retries.total == 4
    assert 503 in adapter.max_retries.status_forcelist
    assert "User-Agent" in session.headers


class TestFetchSeries:

    def test_cached_file_is_reused(self, tmp_path):
        cached = tmp_path / "GSE1_family.soft.gz"
        cached.write_bytes(b"cached")
        session = MagicMock()
        assert fetch_series("GSE1", tmp_path, session=session) == cached
        session.get.assert_not_called()

    def test_download_writes_file(self, tmp_path):
        response = MagicMock()
        response.iter_content.return_value = [b"abc", b"def"]
        session = MagicMock()
        session.get.return_value.__enter__.return_value = response

        path = fetch_series("GSE1", tmp_path, session=session)

        assert path.read_bytes() == b"abcdef"
        response.raise_for_status.assert_called_once()
        _, kwargs = session.get.call_args
        assert kwargs["timeout"]
        assert not list(tmp_path.glob("*.part"))

    def test_network_failure_raises_source_unavailable(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("unreachable")
        with pytest.raises(SourceUnavailable):
            fetch_series("GSE1", tmp_path, session=session)
        assert not (tmp_path / "GSE1_family.soft.gz").exists()

    def test_http_error_raises_source_unavailable(self, tmp_path):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("404")
        session = MagicMock()
        session.get.return_value.__enter__.return_value = response
        with pytest.raises(SourceUnavailable):
            fetch_series("GSE1", tmp_path, session=session)


# ---------------------------------------------------------------------------
# GSM parsing
# ---------------------------------------------------------------------------

def test_parse_characteristics():
    pairs = parse_characteristics(["Genotype: wt", "time: 12:00", "no separator"])
    assert pairs == {"genotype": "wt", "time": "12:00"}


def test_metadata_from_gsms(gsms):
    metadata = metadata_from_gsms(gsms)
    assert metadata.index.tolist() == ["GSM1", "GSM2"]
    assert metadata.loc["GSM2", "genotype"] == "mutA"
    assert metadata.loc["GSM1", "nutrient"] == "glucose"
    assert metadata.loc["GSM1", "title"] == "wt rep1"


def test_expression_from_gsms(gsms):
    expression = expression_from_gsms(gsms)
    assert expression.shape == (3, 2)
    assert expression.columns.tolist() == ["GSM1", "GSM2"]
    assert expression.loc["p3", "GSM2"] == 6.0
    assert pd.isna(expression.loc["p2", "GSM2"])


def test_expression_without_value_column_raises(gsms):
    gsms["GSM3"] = _gsm("x", [], [1.0, 1.0, 1.0], value_column="OTHER")
    with pytest.raises(SourceUnavailable):
        expression_from_gsms(gsms)


def test_load_series_builds_aligned_dataset(tmp_path, gsms):
    fake_gse = SimpleNamespace(gsms=gsms)
    with patch("expression_report.loader.fetch_series",
               return_value=tmp_path / "GSE1_family.soft.gz"), \
         patch("expression_report.loader.GEOparse.get_GEO", return_value=fake_gse):
        dataset = load_series("GSE1", tmp_path)
    assert dataset.accession == "GSE1"
    assert dataset.shape == (3, 2)
    assert dataset.metadata.index.tolist() == dataset.expression.columns.tolist()


def test_load_series_parse_failure(tmp_path):
    with patch("expression_report.loader.fetch_series",
               return_value=tmp_path / "GSE1_family.soft.gz"), \
         patch("expression_report.loader.GEOparse.get_GEO",
               side_effect=ValueError("corrupt")):
        with pytest.raises(SourceUnavailable):
            load_series("GSE1", tmp_path)


# ---------------------------------------------------------------------------
# Factor table
# ---------------------------------------------------------------------------

class TestFactorTable:

    def test_categoricals_from_source_keys(self, gsms):
        metadata = metadata_from_gsms(gsms)
        factors = factor_table(metadata, {"genotype": "genotype", "nutrient": "nutrient",
                                          "time": "time"})
        assert factors.columns.tolist() == ["genotype", "nutrient", "time"]
        assert all(isinstance(factors[c].dtype, pd.CategoricalDtype) for c in factors)
        assert not factors["genotype"].cat.ordered
        assert factors["time"].cat.categories.tolist() == ["15 min", "30 min"]

    def test_renamed_source_key(self, gsms):
        metadata = metadata_from_gsms(gsms).rename(columns={"nutrient": "growth medium"})
        factors = factor_table(metadata, {"nutrient": "growth medium"})
        assert factors.columns.tolist() == ["nutrient"]

    def test_missing_column_raises(self, gsms):
        metadata = metadata_from_gsms(gsms)
        with pytest.raises(ValidationError):
            factor_table(metadata, {"strain": "strain"})

    def test_blank_value_raises(self, gsms):
        metadata = metadata_from_gsms(gsms)
        metadata.loc["GSM2", "genotype"] = "  "
        with pytest.raises(ValidationError):
            factor_table(metadata, {"genotype": "genotype"})
