"""Tests for expression_report.palettes."""

import logging

import pandas as pd

from expression_report.palettes import (
    FALLBACK_COLOR,
    GENOTYPE_COLORS,
    MARKERS,
    CategoryStyle,
    factor_colors,
    factor_markers,
    style_for_levels,
)


def test_known_category_is_mapped():
    style = CategoryStyle({"wt": "#000000"}, FALLBACK_COLOR, name="genotype")
    assert style.lookup("wt") == "#000000"
    assert "wt" in style


def test_unknown_category_uses_fallback_and_warns_once(caplog):
    style = CategoryStyle({"wt": "#000000"}, FALLBACK_COLOR, name="genotype")
    with caplog.at_level(logging.WARNING, logger="expression_report.palettes"):
        assert style.lookup("mystery") == FALLBACK_COLOR
        assert style.lookup("mystery") == FALLBACK_COLOR
    warnings = [r for r in caplog.records if "mystery" in r.getMessage()]
    assert len(warnings) == 1


def test_style_for_levels_sorts_levels():
    style = style_for_levels(["b", "a", "c", "a"], ["red", "green", "blue"], "grey")
    assert style.mapping == {"a": "red", "b": "green", "c": "blue"}


def test_extra_levels_fall_back():
    style = style_for_levels(["x", "y", "z"], ["red"], "grey")
    assert style.map(["x", "y", "z"]) == ["red", "grey", "grey"]


def test_factor_colors_one_style_per_factor():
    factors = pd.DataFrame({
        "genotype": pd.Categorical(["wt", "mutA", "wt"]),
        "time": pd.Categorical(["t15", "t30", "t60"]),
    })
    styles = factor_colors(factors)
    assert set(styles) == {"genotype", "time"}
    assert styles["genotype"].lookup("mutA") == GENOTYPE_COLORS[0]
    assert styles["time"].lookup("t99") == FALLBACK_COLOR


def test_factor_markers():
    style = factor_markers(["glucose", "galactose"])
    assert style.lookup("galactose") == MARKERS[0]
    assert style.lookup("glucose") == MARKERS[1]
