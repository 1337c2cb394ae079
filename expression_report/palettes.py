"""
Category → visual attribute lookups for the figures.

A CategoryStyle is a plain mapping plus an explicit fallback: anything not in
the mapping gets the fallback colour/marker and one warning, never a silent
default. Styles for observed factor levels are built by zipping the sorted
levels with a fixed attribute list.
"""

import logging

import pandas as pd

log = logging.getLogger(__name__)

FALLBACK_COLOR  = "#AAAAAA"
FALLBACK_MARKER = "X"

GENOTYPE_COLORS = ["#4878D0", "#EE854A", "#6ACC65", "#D65F5F",
                   "#956CB4", "#8C613C", "#DC7EC0", "#797979"]
NUTRIENT_COLORS = ["#1B9E77", "#D95F02", "#7570B3", "#E7298A", "#66A61E"]
TIME_COLORS     = ["#FDE725", "#5EC962", "#21918C", "#3B528B", "#440154"]
CLUSTER_COLORS  = ["#1F77B4", "#FF7F0E", "#2CA02C", "#D62728", "#9467BD",
                   "#8C564B", "#E377C2", "#7F7F7F", "#BCBD22", "#17BECF"]
MARKERS         = ["o", "s", "^", "D", "v", "P", "*"]

FACTOR_COLORS = {
    "genotype": GENOTYPE_COLORS,
    "nutrient": NUTRIENT_COLORS,
    "time":     TIME_COLORS,
}


class CategoryStyle:
    def __init__(self, mapping: dict, fallback, name: str = "category"):
        self.mapping = dict(mapping)
        self.fallback = fallback
        self.name = name
        self._warned = set()

    def __contains__(self, category) -> bool:
        return category in self.mapping

    def lookup(self, category):
        if category in self.mapping:
            return self.mapping[category]
        if category not in self._warned:
            log.warning(f"  {self.name}: no style for {category!r}, using fallback "
                        f"{self.fallback!r}")
            self._warned.add(category)
        return self.fallback

    def map(self, values) -> list:
        return [self.lookup(v) for v in values]

    def legend_items(self) -> list[tuple]:
        return list(self.mapping.items())


def style_for_levels(levels, attributes, fallback, name: str = "category") -> CategoryStyle:
    """Pair sorted levels with attributes; levels beyond the list use the fallback."""
    levels = sorted(pd.unique(pd.Series(list(levels))).tolist())
    if len(levels) > len(attributes):
        log.warning(f"  {name}: {len(levels)} levels but only {len(attributes)} "
                    f"styles; {levels[len(attributes):]} will use the fallback")
    return CategoryStyle(dict(zip(levels, attributes)), fallback, name=name)


def factor_colors(factors: pd.DataFrame) -> dict[str, CategoryStyle]:
    """One colour style per factor column, from the observed levels."""
    return {
        name: style_for_levels(factors[name].astype(str), FACTOR_COLORS.get(name, GENOTYPE_COLORS),
                               FALLBACK_COLOR, name=name)
        for name in factors.columns
    }


def factor_markers(levels, name: str = "marker") -> CategoryStyle:
    return style_for_levels(levels, MARKERS, FALLBACK_MARKER, name=name)


def cluster_colors(labels) -> CategoryStyle:
    return style_for_levels(labels, CLUSTER_COLORS, FALLBACK_COLOR, name="cluster")
