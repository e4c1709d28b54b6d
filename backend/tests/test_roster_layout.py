from __future__ import annotations

import pytest

from roster_scanner.services.roster_config import DEFAULT_CONFIG, RosterConfig  # type: ignore[import-not-found]
from roster_scanner.services.roster_layout import (  # type: ignore[import-not-found]
    anchor_from_cell,
    estimate_grid,
    parse_rank_and_sig,
)
from roster_scanner.services.roster_types import GridAnchorError  # type: ignore[import-not-found]


def test_two_anchors_give_column_distance_and_left_to_right_cells(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("1567", 300, 300),
        make_detection("1234", 100, 300),
    ]

    layout = estimate_grid(detections, image_width=1400)

    assert layout.avg_col_dist == pytest.approx(200.0)
    assert [cell.power_rating for cell in layout.grid] == [1234, 1567]
    assert layout.grid[0].bounds.x < layout.grid[1].bounds.x
    assert layout.cell_dims.width == pytest.approx(200.0 * DEFAULT_CONFIG.cell_width_ratio)
    assert layout.cell_dims.height == pytest.approx(200.0 * DEFAULT_CONFIG.cell_height_ratio)
    assert layout.header_min_y == 0


def test_min_power_rating_filters_candidates(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("250", 100, 300),
        make_detection("999", 400, 300),
    ]

    layout = estimate_grid(detections, image_width=1400)

    assert [cell.power_rating for cell in layout.grid] == [999]
    # A single column falls back to a seventh of the image width.
    assert layout.avg_col_dist == pytest.approx(200.0)


def test_value_equal_to_threshold_is_not_an_anchor(make_detection, aggregate) -> None:
    with pytest.raises(GridAnchorError):
        estimate_grid([aggregate, make_detection("300", 100, 300)], image_width=1400)


def test_no_anchor_raises(make_detection, aggregate) -> None:
    detections = [aggregate, make_detection("Rank 3", 100, 200), make_detection("Sig 40", 100, 220)]

    with pytest.raises(GridAnchorError):
        estimate_grid(detections, image_width=1400)


def test_full_page_aggregate_is_never_an_anchor(make_detection) -> None:
    detections = [make_detection("12345", 0, 1000, width=1000, height=1000)]

    with pytest.raises(GridAnchorError):
        estimate_grid(detections, image_width=1000)


def test_cell_dimensions_scale_with_column_distance(make_detection, aggregate) -> None:
    narrow = estimate_grid(
        [aggregate, make_detection("1234", 100, 600), make_detection("2345", 250, 600)],
        image_width=1400,
    )
    wide = estimate_grid(
        [aggregate, make_detection("1234", 200, 1200), make_detection("2345", 500, 1200)],
        image_width=2800,
    )

    assert narrow.avg_col_dist > 0
    assert wide.avg_col_dist == pytest.approx(narrow.avg_col_dist * 2)
    assert wide.cell_dims.width == pytest.approx(narrow.cell_dims.width * 2)
    assert wide.cell_dims.height == pytest.approx(narrow.cell_dims.height * 2)


def test_cell_offset_round_trips_to_anchor(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("4321", 137, 611),
        make_detection("5432", 351, 611),
        make_detection("6543", 566, 611),
    ]

    layout = estimate_grid(detections, image_width=1400)

    for cell, detection in zip(layout.grid, detections[1:]):
        anchor_x, anchor_y = anchor_from_cell(cell.bounds, layout.avg_col_dist)
        assert abs(anchor_x - detection.left) <= 1
        assert abs(anchor_y - detection.bottom) <= 1


def test_leading_glyph_shifts_anchor_right(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("⚡1234", 100, 300, height=20),
        make_detection("1567", 323, 300, height=20),
    ]

    layout = estimate_grid(detections, image_width=1400)

    # 100 + 1.15 * 20 = 123, so the columns are exactly 200px apart.
    assert layout.avg_col_dist == pytest.approx(200.0)
    assert layout.grid[0].bounds.x == pytest.approx(123 - 200 * DEFAULT_CONFIG.pi_offset_x_ratio)


def test_close_columns_merge_within_tolerance(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("1111", 100, 300),
        make_detection("2222", 130, 700),
        make_detection("3333", 300, 300),
    ]

    layout = estimate_grid(detections, image_width=1400)

    assert layout.avg_col_dist == pytest.approx(200.0)


def test_header_cutoff_discards_cells_above(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("MASTERIES", 40, 400, width=150),
        make_detection("1111", 100, 300),
        make_detection("2222", 300, 300),
        make_detection("3333", 100, 700),
        make_detection("4444", 300, 700),
    ]

    layout = estimate_grid(detections, image_width=1400)

    assert layout.header_min_y == pytest.approx(400)
    assert [cell.power_rating for cell in layout.grid] == [3333, 4444]
    assert all(cell.bounds.y >= layout.header_min_y for cell in layout.grid)


def test_header_keywords_are_configurable(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("Champions", 40, 400, width=150),
        make_detection("1111", 100, 300),
        make_detection("3333", 100, 700),
    ]

    default_layout = estimate_grid(detections, image_width=1400)
    custom_layout = estimate_grid(
        detections, image_width=1400, config=RosterConfig(header_keywords=("CHAMPIONS",))
    )

    assert len(default_layout.grid) == 2
    assert [cell.power_rating for cell in custom_layout.grid] == [3333]


def test_rank_and_sig_attach_to_nearest_cell(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("1234", 100, 300),
        make_detection("1567", 300, 300),
        make_detection("Rank 4", 90, 260),
        make_detection("Sig. 20", 90, 280),
    ]

    layout = estimate_grid(detections, image_width=1400)
    left, right = layout.grid

    assert (left.rank, left.sig_level) == (4, 20)
    assert right.rank is None
    assert right.sig_level is None


def test_parse_rank_and_sig() -> None:
    assert parse_rank_and_sig("Rank 4 Sig. 20") == (4, 20)
    assert parse_rank_and_sig("rank5 SIG 200") == (5, 200)
    assert parse_rank_and_sig("Rank 3") == (3, None)
    assert parse_rank_and_sig("nothing here") == (None, None)


def test_reading_order_groups_rows_by_half_cell_height(make_detection, aggregate) -> None:
    detections = [
        aggregate,
        make_detection("4000", 300, 702),
        make_detection("2000", 300, 298),
        make_detection("3000", 100, 698),
        make_detection("1000", 100, 302),
    ]

    layout = estimate_grid(detections, image_width=1400)

    assert [cell.power_rating for cell in layout.grid] == [1000, 2000, 3000, 4000]


def test_power_rating_and_pi_bounds_are_recorded(make_detection, aggregate) -> None:
    detections = [aggregate, make_detection("12,345", 100, 300, width=70, height=22)]

    layout = estimate_grid(detections, image_width=1400)
    cell = layout.grid[0]

    assert cell.power_rating == 12345
    assert cell.pi_bounds is not None
    assert (cell.pi_bounds.x, cell.pi_bounds.y) == (100, 278)
    assert (cell.pi_bounds.width, cell.pi_bounds.height) == (70, 22)


def test_cells_exactly_half_a_cell_apart_start_a_new_row(make_detection, aggregate) -> None:
    # Square 200px cells anchored on their bottom edge, so row ys are 200 and 300.
    config = RosterConfig(cell_height_ratio=1.0, pi_offset_y_ratio=0.0)
    detections = [
        aggregate,
        make_detection("2000", 300, 400),
        make_detection("1000", 100, 500),
    ]

    layout = estimate_grid(detections, image_width=1400, config=config)

    assert [cell.bounds.y for cell in layout.grid] == [200, 300]
    assert [cell.power_rating for cell in layout.grid] == [2000, 1000]
