"""Tests for composing built charts into multi-panel figures."""

import pytest

import layerplot as lp
from layerplot import FigureLayout, LayoutError, Spacer, build, compose, render

SCATTER = lp.chart(lp.aes(x="flipper_length_mm", y="body_mass_g")) + lp.geom_point()


@pytest.fixture
def chart_a(complete_penguins):
    return build(complete_penguins, SCATTER)


@pytest.fixture
def chart_b(complete_penguins):
    return build(complete_penguins, SCATTER + lp.theme(hide_y_text=True))


class TestCellCount:
    @pytest.mark.parametrize("n_items, ok", [(3, False), (4, True), (5, False)])
    def test_two_by_two_takes_four_items(self, chart_a, n_items, ok):
        layout = FigureLayout(nrow=2, ncol=2)
        if ok:
            assert len(compose(layout, [chart_a] * n_items).charts) == 4
        else:
            with pytest.raises(LayoutError, match="2x2 layout has 4 cells"):
                compose(layout, [chart_a] * n_items)

    def test_nested_figure_is_one_slot(self, chart_a, chart_b):
        inner = compose(FigureLayout(nrow=2, ncol=1), [chart_a, chart_b])
        outer = compose(FigureLayout(nrow=1, ncol=2), [chart_a, inner])
        assert outer.charts == [chart_a, chart_a, chart_b]
        paths = [p.path for p in outer.placements()]
        assert paths == [(0,), (1, 0), (1, 1)]

    def test_spacer_is_one_slot(self, chart_a):
        figure = compose(FigureLayout(nrow=1, ncol=3), [chart_a, Spacer(), Spacer])
        assert len(figure.charts) == 1
        assert len(figure.placements()) == 1

    @pytest.mark.parametrize("item", [None, "chart", SCATTER])
    def test_rejects_other_items(self, chart_a, item):
        with pytest.raises(LayoutError, match="Item 1"):
            compose(FigureLayout(nrow=1, ncol=2), [chart_a, item])

    def test_layout_error_is_a_value_error(self, chart_a):
        with pytest.raises(ValueError):
            compose(FigureLayout(nrow=1, ncol=2), [chart_a])


class TestLabels:
    def test_auto_labels_skip_spacers(self, chart_a):
        figure = compose(FigureLayout(nrow=1, ncol=3, labels="auto"), [chart_a, Spacer(), chart_a])
        assert figure.labels == ("a", None, "b")
        assert [t.text for t in figure.tags()] == ["a", "b"]

    def test_upper_case_labels(self, chart_a):
        figure = compose(FigureLayout(nrow=2, ncol=1, labels="AUTO"), [chart_a, chart_a])
        assert figure.labels == ("A", "B")

    def test_labels_continue_past_z(self, chart_a):
        figure = compose(FigureLayout(nrow=1, ncol=28, labels="auto"), [chart_a] * 28)
        assert figure.labels[25:] == ("z", "aa", "ab")

    def test_explicit_labels(self, chart_a):
        figure = compose(FigureLayout(nrow=1, ncol=2, labels=["i", ""]), [chart_a, chart_a])
        assert figure.labels == ("i", None)
        assert figure.placements()[0].label == "i"

    def test_explicit_label_count_must_match(self, chart_a):
        with pytest.raises(LayoutError, match="labels"):
            compose(FigureLayout(nrow=1, ncol=2, labels=["i"]), [chart_a, chart_a])

    def test_labels_reserve_space(self, chart_a):
        plain = compose(FigureLayout(nrow=1, ncol=1), [chart_a]).placements()[0]
        tagged = compose(FigureLayout(nrow=1, ncol=1, labels="auto"), [chart_a]).placements()[0]
        assert tagged.plot_box.top < plain.plot_box.top


class TestLayoutValidation:
    @pytest.mark.parametrize("params", [
        {"nrow": 0},
        {"ncol": 1.5},
        {"nrow": 2, "heights": (1.0,)},
        {"ncol": 2, "widths": (1.0, -1.0)},
        {"labels": "roman"},
        {"size": (0, 4)},
        {"spacing": -0.1},
    ])
    def test_invalid_fields(self, params):
        with pytest.raises(LayoutError):
            FigureLayout(**params)

    def test_compose_needs_a_layout(self, chart_a):
        with pytest.raises(LayoutError):
            compose((1, 1), [chart_a])


class TestGeometry:
    def test_alignment_matches_plot_areas(self, chart_a, chart_b):
        a, b = compose(FigureLayout(nrow=1, ncol=2), [chart_a, chart_b]).placements()
        assert a.plot_box.width == pytest.approx(b.plot_box.width)
        assert a.plot_box.height == pytest.approx(b.plot_box.height)
        assert a.plot_box.bottom == pytest.approx(b.plot_box.bottom)

    def test_rendered_axes_share_plot_area_size(self, chart_a, chart_b):
        fig = render(compose(FigureLayout(nrow=1, ncol=2), [chart_a, chart_b]))
        a, b = (ax.get_position() for ax in fig.axes)
        assert a.width == pytest.approx(b.width)
        assert a.height == pytest.approx(b.height)
        assert a.y0 == pytest.approx(b.y0)

    def test_unaligned_charts_keep_own_margins(self, chart_a, chart_b):
        a, b = compose(FigureLayout(nrow=1, ncol=2, align=False), [chart_a, chart_b]).placements()
        assert b.plot_box.width > a.plot_box.width
        assert a.cell_box.width == pytest.approx(b.cell_box.width)

    def test_relative_widths(self, chart_a):
        a, b = compose(FigureLayout(nrow=1, ncol=2, widths=(2, 1)), [chart_a, chart_a]).placements()
        assert a.cell_box.width / b.cell_box.width == pytest.approx(2.0)
        assert a.cell_box.right < b.cell_box.left

    def test_cells_fill_rows_in_reading_order(self, chart_a):
        boxes = [p.cell_box for p in compose(FigureLayout(nrow=2, ncol=2), [chart_a] * 4).placements()]
        assert boxes[0].top == pytest.approx(boxes[1].top)
        assert boxes[0].left == pytest.approx(boxes[2].left)
        assert boxes[2].top < boxes[0].bottom

    def test_title_sits_above_cells(self, chart_a):
        figure = compose(FigureLayout(nrow=1, ncol=1, title="Penguins"), [chart_a])
        title = figure.title_box()
        assert title.top == pytest.approx(1.0)
        assert figure.placements()[0].cell_box.top <= title.bottom + 1e-9

    def test_figure_size(self, chart_a):
        figure = compose(FigureLayout(size=(10, 4)), [chart_a])
        assert figure.figure_size() == (10.0, 4.0)
        assert figure.figure_size((3, 2)) == (3, 2)
