#!/usr/bin/env python3
"""
Render the penguin tutorial progression with layerplot.

Usage:
  python scripts/penguin_walkthrough.py \
    --csv /path/to/penguins.csv \
    --out-dir results/penguins \
    --backend matplotlib

Expects the Palmer penguins columns (species, island, bill_length_mm,
bill_depth_mm, flipper_length_mm, body_mass_g, sex). Writes one file per
step plus a composite panel figure.
"""
from __future__ import annotations

import argparse
import logging
import warnings
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd

import layerplot as lp

log = logging.getLogger("penguin_walkthrough")

SPECIES_COLORS = {"Adelie": "#ff8c00", "Chinstrap": "#a034f0", "Gentoo": "#159090"}


def build_charts(table: lp.DataTable) -> dict:
    base = lp.chart(lp.aes(x="flipper_length_mm", y="body_mass_g"))
    palette = lp.scale_manual("color", mapping=SPECIES_COLORS)
    fill_palette = lp.scale_manual("fill", mapping=SPECIES_COLORS)

    specs = {
        "01_scatter": base + lp.geom_point(),
        "02_styled_scatter": (
            base
            + lp.geom_point(lp.aes(color="species", shape="species"), size=5, alpha=0.8)
            + lp.geom_smooth(lp.aes(color="species"), se=False)
            + palette
            + lp.labs(
                title="Penguin size, Palmer Station LTER",
                subtitle="Flipper length and body mass for three species",
                x="Flipper length (mm)", y="Body mass (g)",
                color="Species", shape="Species",
            )
            + lp.theme("minimal", legend_position=(0.2, 0.7))
        ),
        "03_histogram": (
            lp.chart(lp.aes(x="flipper_length_mm"))
            + lp.geom_histogram(lp.aes(fill="species"), alpha=0.5, position="identity", bins=25)
            + fill_palette
            + lp.theme("minimal")
        ),
        "04_density": (
            lp.chart(lp.aes(x="body_mass_g"))
            + lp.geom_density(lp.aes(color="species", fill="species"), alpha=0.3)
            + palette
            + fill_palette
            + lp.theme("minimal")
        ),
        "05_boxplot": (
            lp.chart(lp.aes(x="species", y="flipper_length_mm"))
            + lp.geom_boxplot(lp.aes(color="species"), width=0.3, show_legend=False)
            + lp.geom_jitter(lp.aes(color="species"), alpha=0.5, width=0.2, show_legend=False)
            + palette
            + lp.theme("minimal")
        ),
        "07_faceted": (
            lp.chart(lp.aes(x="bill_length_mm", y="bill_depth_mm"))
            + lp.geom_point(lp.aes(color="species"), alpha=0.7)
            + lp.stat_ellipse(lp.aes(color="species"))
            + lp.facet_wrap("island")
            + palette
            + lp.theme("bw")
        ),
    }
    charts = {name: lp.build(table, spec) for name, spec in specs.items()}

    summary = lp.summarize(table, "body_mass_g", by=["species", "sex"])
    charts["06_summary_bars"] = lp.build(summary, (
        lp.chart(lp.aes(x="species", fill="sex"))
        + lp.geom_bar(lp.aes(y="mean"), position="dodge")
        + lp.geom_errorbar(lp.aes(ymin="ymin", ymax="ymax", group="sex"), position="dodge", width=0.9)
        + lp.scale_manual("fill", values=["#c08080", "#6090c0"])
        + lp.labs(y="Mean body mass (g)")
        + lp.theme("classic")
    ))
    return charts


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--csv", type=Path, required=True, help="Penguins CSV file")
    parser.add_argument("--out-dir", type=Path, default=Path("results/penguins"))
    parser.add_argument("--backend", choices=["matplotlib", "plotly", "both"], default="matplotlib")
    parser.add_argument("--dpi", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    args.out_dir.mkdir(parents=True, exist_ok=True)

    frame = pd.read_csv(args.csv)
    table = lp.DataTable(frame)
    log.info("Loaded %s", table)

    with warnings.catch_warnings():
        # Missing bill/flipper measurements are dropped per layer.
        warnings.simplefilter("ignore", RuntimeWarning)
        charts = build_charts(table)

    suffix = {"matplotlib": ".png", "plotly": ".html", "both": ""}[args.backend]
    for name, chart in sorted(charts.items()):
        path = args.out_dir / f"{name}{suffix}"
        result = lp.render(chart, backend=args.backend, output_path=path, dpi=args.dpi)
        log.info("Wrote %s (%d rows dropped)", path, chart.dropped_rows)
        if args.backend != "plotly":
            plt.close(result["matplotlib"] if args.backend == "both" else result)

    panel = lp.compose(
        lp.FigureLayout(nrow=1, ncol=2, widths=(2, 1), labels="AUTO", size=(12, 7),
                        title="Palmer penguins"),
        [
            charts["02_styled_scatter"],
            lp.compose(lp.FigureLayout(nrow=2, ncol=1), [charts["03_histogram"], charts["05_boxplot"]]),
        ],
    )
    path = args.out_dir / "08_composite.png"
    fig = lp.render(panel, output_path=path, dpi=args.dpi)
    plt.close(fig)
    log.info("Wrote %s", path)


if __name__ == "__main__":
    main()
