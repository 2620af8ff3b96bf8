"""Tests for the chart builder."""

import numpy as np
import pandas as pd
import pytest

import layerplot as lp
from layerplot import BuildOptions, DataTable, Geom, SpecError, build
from layerplot.style.colors import STANDARD_PALETTE

from conftest import assert_charts_equal

SCATTER = lp.chart(lp.aes(x="flipper_length_mm", y="body_mass_g"))


def _all_traces(chart):
    return [t for p in chart.panels for t in p.traces]


class TestValidation:
    def test_missing_column(self, penguins):
        spec = lp.chart(lp.aes(x="wingspan", y="body_mass_g")) + lp.geom_point()
        with pytest.raises(SpecError, match="wingspan"):
            build(penguins, spec)

    def test_numeric_geometry_rejects_categorical_column(self, penguins):
        spec = lp.chart() + lp.geom_histogram(lp.aes(x="species"))
        with pytest.raises(SpecError, match="numeric"):
            build(penguins, spec)

    def test_size_requires_numeric(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(size="species"))
        with pytest.raises(SpecError, match="size"):
            build(complete_penguins, spec)

    def test_color_requires_categorical(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(color="bill_depth_mm"))
        with pytest.raises(SpecError, match="color"):
            build(complete_penguins, spec)

    def test_missing_required_channel(self, complete_penguins):
        spec = lp.chart(lp.aes(x="flipper_length_mm")) + lp.geom_point()
        with pytest.raises(SpecError, match="'y'"):
            build(complete_penguins, spec)

    def test_histogram_rejects_explicit_y(self, complete_penguins):
        spec = lp.chart() + lp.geom_histogram(lp.aes(x="flipper_length_mm", y="body_mass_g"))
        with pytest.raises(SpecError, match="computes y"):
            build(complete_penguins, spec)

    def test_mixed_axis_kinds(self, complete_penguins):
        spec = (
            lp.chart(lp.aes(y="body_mass_g"))
            + lp.geom_point(lp.aes(x="flipper_length_mm"))
            + lp.geom_boxplot(lp.aes(x="species"))
        )
        with pytest.raises(SpecError, match="categorical and numeric"):
            build(complete_penguins, spec)

    def test_build_rejects_raw_frames(self, penguins_frame):
        with pytest.raises(SpecError, match="DataTable"):
            build(penguins_frame, SCATTER + lp.geom_point())


class TestLayerOrder:
    @pytest.mark.filterwarnings("ignore::RuntimeWarning")
    def test_zorder_follows_append_order(self, penguins):
        spec = (
            SCATTER
            + lp.geom_point(lp.aes(color="species"))
            + lp.geom_smooth()
            + lp.geom_hline(4000.0)
        )
        chart = build(penguins, spec)
        traces = chart.panel().traces
        indices = [t.layer_index for t in traces]
        assert indices == sorted(indices)
        assert [t.geom for t in traces] == [Geom.POINT] * 3 + [Geom.SMOOTH, Geom.REFLINE]
        assert all(t.style.zorder == t.layer_index + 1 for t in traces)

    @pytest.mark.filterwarnings("ignore::RuntimeWarning")
    def test_build_is_deterministic(self, penguins):
        spec = (
            lp.chart(lp.aes(x="species", y="flipper_length_mm"))
            + lp.geom_boxplot()
            + lp.geom_jitter(lp.aes(color="sex"), alpha=0.4)
        )
        assert_charts_equal(build(penguins, spec), build(penguins, spec))


class TestMissingAndLimits:
    def test_missing_rows_dropped_with_warning(self, penguins):
        with pytest.warns(RuntimeWarning, match="missing values"):
            chart = build(penguins, SCATTER + lp.geom_point())
        assert chart.dropped_rows == 2
        assert sum(len(t.x) for t in _all_traces(chart)) == 88

    def test_rows_outside_limits_give_empty_chart(self, complete_penguins):
        with pytest.warns(RuntimeWarning, match="outside the scale limits"):
            chart = build(complete_penguins, SCATTER + lp.geom_point() + lp.xlim(0, 1))
        assert chart.dropped_rows == len(complete_penguins)
        panel = chart.panel()
        assert panel.traces == []
        assert panel.x.domain == (0.0, 1.0)

    def test_strict_limits(self, complete_penguins):
        spec = SCATTER + lp.geom_point() + lp.xlim(0, 1)
        with pytest.raises(SpecError, match="outside the scale limits"):
            build(complete_penguins, spec, BuildOptions(strict_limits=True))

    def test_limits_override_domain(self, complete_penguins):
        chart = build(complete_penguins, SCATTER + lp.geom_point() + lp.scale_x(limits=(150, 250)))
        assert chart.panel().x.domain == (150.0, 250.0)
        lo, hi = chart.panel().x.limits
        assert lo == pytest.approx(145.0) and hi == pytest.approx(255.0)


class TestPalettes:
    def test_default_palette_is_stable(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(color="species"))
        first = build(complete_penguins, spec)
        second = build(complete_penguins, spec)
        colors = [e.color for e in first.legends[0].entries]
        assert colors == [e.color for e in second.legends[0].entries]
        assert colors == STANDARD_PALETTE[:3]

    def test_palette_follows_declared_category_order(self, penguins_frame):
        frame = penguins_frame.dropna().copy()
        frame["species"] = pd.Categorical(frame["species"], categories=["Gentoo", "Adelie", "Chinstrap"])
        chart = build(DataTable(frame), SCATTER + lp.geom_point(lp.aes(color="species")))
        entries = chart.legends[0].entries
        assert [e.label for e in entries] == ["Gentoo", "Adelie", "Chinstrap"]
        assert entries[0].color == STANDARD_PALETTE[0]

    def test_short_palette_rejected(self, complete_penguins):
        spec = (
            SCATTER
            + lp.geom_point(lp.aes(color="species"))
            + lp.scale_manual("color", values=["#ff0000", "#0000ff"])
        )
        with pytest.raises(SpecError, match="2 values"):
            build(complete_penguins, spec)

    def test_mapping_palette_must_cover_categories(self, complete_penguins):
        spec = (
            SCATTER
            + lp.geom_point(lp.aes(color="species"))
            + lp.scale_manual("color", mapping={"Adelie": "#ff8c00", "Gentoo": "#159090"})
        )
        with pytest.raises(SpecError, match="Chinstrap"):
            build(complete_penguins, spec)

    def test_manual_palette_applied_to_traces(self, complete_penguins):
        mapping = {"Adelie": "#ff8c00", "Chinstrap": "#a034f0", "Gentoo": "#159090"}
        spec = SCATTER + lp.geom_point(lp.aes(color="species")) + lp.scale_manual("color", mapping=mapping)
        traces = build(complete_penguins, spec).panel().traces
        assert {t.label: t.style.color for t in traces} == mapping

    def test_named_colormap_palette(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(color="species")) + lp.scale_palette("color", "viridis")
        entries = build(complete_penguins, spec).legends[0].entries
        assert len({e.color for e in entries}) == 3


class TestGeometries:
    def test_histogram_counts_every_row(self, penguins):
        spec = lp.chart(lp.aes(x="flipper_length_mm")) + lp.geom_histogram(bins=12)
        chart = build(penguins, spec)
        (trace,) = chart.panel().traces
        assert len(trace.x) == 12
        assert (trace.y - trace.base).sum() == 90
        assert chart.y_label == "count"

    def test_stacked_histogram(self, complete_penguins):
        spec = lp.chart(lp.aes(x="flipper_length_mm")) + lp.geom_histogram(lp.aes(fill="species"), bins=10)
        traces = build(complete_penguins, spec).panel().traces
        assert len(traces) == 3
        np.testing.assert_allclose(traces[1].base, traces[0].y)
        np.testing.assert_allclose(traces[2].base, traces[1].y)
        assert sum((t.y - t.base).sum() for t in traces) == len(complete_penguins)

    def test_bar_counts_on_categorical_axis(self, penguins):
        chart = build(penguins, lp.chart() + lp.geom_bar(lp.aes(x="species")))
        panel = chart.panel()
        (trace,) = panel.traces
        np.testing.assert_array_equal(trace.x, [0.0, 1.0, 2.0])
        np.testing.assert_array_equal(trace.y, [30.0, 30.0, 30.0])
        assert panel.x.categories == ("Adelie", "Chinstrap", "Gentoo")
        assert panel.x.limits == pytest.approx((-0.6, 2.6))

    def test_dodged_bars(self, penguins):
        spec = lp.chart() + lp.geom_bar(lp.aes(x="island", fill="species"), position="dodge")
        adelie, chinstrap, gentoo = build(penguins, spec).panel().traces
        # islands: Biscoe (Adelie, Gentoo), Dream (Adelie, Chinstrap), Torgersen (Adelie)
        np.testing.assert_allclose(adelie.x, [-0.225, 0.775, 2.0])
        np.testing.assert_allclose(chinstrap.x, [1.225])
        np.testing.assert_allclose(gentoo.x, [0.225])
        assert adelie.width == pytest.approx(0.45)

    def test_boxplot_statistics(self, complete_penguins, penguins_frame):
        spec = lp.chart(lp.aes(x="species", y="flipper_length_mm")) + lp.geom_boxplot()
        (trace,) = build(complete_penguins, spec).panel().traces
        assert len(trace.box_stats) == 3
        gentoo = complete_penguins.where("species", "Gentoo").values("flipper_length_mm")
        assert trace.box_stats[2]["med"] == pytest.approx(np.median(gentoo))
        assert trace.box_stats[2]["q1"] <= trace.box_stats[2]["med"] <= trace.box_stats[2]["q3"]

    def test_linear_smooth(self):
        x = np.linspace(0, 10, 25)
        table = DataTable(pd.DataFrame({"x": x, "y": 2 * x + 1 + np.sin(x) * 0.1}))
        (trace,) = build(table, lp.chart(lp.aes(x="x", y="y")) + lp.geom_smooth()).panel().traces
        np.testing.assert_allclose(trace.y, 2 * trace.x + 1, atol=0.25)
        assert np.all(trace.band_lower <= trace.y) and np.all(trace.y <= trace.band_upper)

    def test_smooth_without_band(self, complete_penguins):
        spec = SCATTER + lp.geom_smooth(se=False)
        (trace,) = build(complete_penguins, spec).panel().traces
        assert trace.band_lower is None

    def test_density_integrates_to_about_one(self, complete_penguins):
        spec = lp.chart(lp.aes(x="flipper_length_mm")) + lp.geom_density()
        chart = build(complete_penguins, spec)
        (trace,) = chart.panel().traces
        area = float(np.sum(trace.y[:-1] * np.diff(trace.x)))
        assert 0.8 < area < 1.05
        assert chart.y_label == "density"

    def test_degenerate_density_group_skipped(self):
        table = DataTable(pd.DataFrame({"v": [1.0, 2.0, 3.0, 5.0, 5.0], "g": ["a", "a", "a", "b", "b"]}))
        spec = lp.chart(lp.aes(x="v")) + lp.geom_density(lp.aes(color="g"))
        with pytest.warns(RuntimeWarning, match="at least two distinct values"):
            chart = build(table, spec)
        assert [t.label for t in chart.panel().traces] == ["a"]

    def test_jitter_is_seeded_and_bounded(self, complete_penguins):
        spec = lp.chart(lp.aes(x="species", y="body_mass_g")) + lp.geom_jitter()
        first = build(complete_penguins, spec).panel().traces[0]
        second = build(complete_penguins, spec).panel().traces[0]
        np.testing.assert_array_equal(first.x, second.x)
        codes = pd.Categorical(
            complete_penguins.values("species"), categories=["Adelie", "Chinstrap", "Gentoo"]
        ).codes
        offsets = first.x - codes
        assert np.all(np.abs(offsets) <= 0.4)
        assert np.any(offsets != 0)
        other_seed = build(complete_penguins, spec, BuildOptions(jitter_seed=7)).panel().traces[0]
        assert not np.array_equal(first.x, other_seed.x)

    def test_errorbars_from_summary(self, penguins):
        summary = lp.summarize(penguins, "body_mass_g", by=["species"])
        spec = (
            lp.chart(lp.aes(x="species"))
            + lp.geom_bar(lp.aes(y="mean"))
            + lp.geom_errorbar(lp.aes(ymin="ymin", ymax="ymax"))
        )
        bars, errors = build(summary, spec).panel().traces
        np.testing.assert_allclose(bars.y, summary.values("mean"))
        np.testing.assert_allclose(errors.band_upper - errors.band_lower, 2 * summary.values("sd"))

    def test_reference_lines_extend_domain(self, complete_penguins):
        spec = SCATTER + lp.geom_point() + lp.geom_hline(10000.0) + lp.geom_abline(slope=1.0)
        panel = build(complete_penguins, spec).panel()
        assert panel.y.domain[1] == 10000.0
        refs = [t for t in panel.traces if t.geom is Geom.REFLINE]
        assert [t.orientation for t in refs] == ["h", "ab"]

    def test_ellipse_is_closed(self, complete_penguins):
        spec = lp.chart(lp.aes(x="bill_length_mm", y="bill_depth_mm")) + lp.stat_ellipse(lp.aes(color="species"))
        traces = build(complete_penguins, spec).panel().traces
        assert len(traces) == 3
        for trace in traces:
            assert trace.x[0] == pytest.approx(trace.x[-1])
            assert trace.y[0] == pytest.approx(trace.y[-1])

    def test_mapped_size_and_alpha(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(size="bill_length_mm", alpha="bill_depth_mm"))
        chart = build(complete_penguins, spec)
        (trace,) = chart.panel().traces
        assert trace.sizes.min() == pytest.approx(2.0) and trace.sizes.max() == pytest.approx(10.0)
        assert trace.alphas.min() == pytest.approx(0.1) and trace.alphas.max() == pytest.approx(1.0)
        assert chart.legends[0].channels == ("size",)

    def test_identifier_column_groups_lines(self):
        frame = pd.DataFrame({
            "id": ["a", "a", "a", "b", "b", "b"],
            "t": [2.0, 0.0, 1.0, 0.0, 1.0, 2.0],
            "v": [3.0, 1.0, 2.0, 5.0, 4.0, 3.0],
        })
        table = DataTable(frame, identifiers=["id"])
        traces = build(table, lp.chart(lp.aes(x="t", y="v")) + lp.geom_line(lp.aes(group="id"))).panel().traces
        assert len(traces) == 2
        np.testing.assert_array_equal(traces[0].x, [0.0, 1.0, 2.0])
        np.testing.assert_array_equal(traces[0].y, [1.0, 2.0, 3.0])
        assert traces[0].legend_key is None

    def test_layer_data_and_inheritance(self, complete_penguins):
        centers = DataTable(pd.DataFrame({"fx": [200.0], "fy": [4200.0]}))
        spec = (
            SCATTER
            + lp.geom_point()
            + lp.geom_point(lp.aes(x="fx", y="fy"), data=centers, inherit_aes=False, color="red")
        )
        points, center = build(complete_penguins, spec).panel().traces
        assert len(points.x) == len(complete_penguins)
        assert center.style.color == "red"
        np.testing.assert_array_equal(center.x, [200.0])


class TestLegendsAndLabels:
    def test_legend_merges_channels_on_same_column(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(color="species", shape="species"))
        (legend,) = build(complete_penguins, spec).legends
        assert legend.channels == ("color", "shape")
        assert [e.shape for e in legend.entries] == ["o", "^", "s"]

    def test_legend_titles(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(color="species"))
        assert build(complete_penguins, spec).legends[0].title == "species"
        titled = build(complete_penguins, spec + lp.labs(color="Species"))
        assert titled.legends[0].title == "Species"

    def test_hidden_legend(self, complete_penguins):
        spec = SCATTER + lp.geom_point(lp.aes(color="species"), show_legend=False)
        assert build(complete_penguins, spec).legends == []

    def test_axis_labels(self, complete_penguins):
        chart = build(complete_penguins, SCATTER + lp.geom_point())
        assert (chart.x_label, chart.y_label) == ("flipper_length_mm", "body_mass_g")
        relabelled = build(complete_penguins, SCATTER + lp.geom_point() + lp.labs(x="Flipper", title="T"))
        assert relabelled.x_label == "Flipper"
        assert relabelled.title == "T"

    def test_theme_overrides(self, complete_penguins):
        chart = build(complete_penguins, SCATTER + lp.geom_point() + lp.theme("classic", base_size=14))
        assert chart.theme.name == "classic"
        assert chart.theme.base_size == 14
        assert chart.theme.grid_major is False
