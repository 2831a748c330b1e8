"""
Tests for the torrent table view: sorting keys, column overlay, selection,
scrolling and preferences.
"""

import pytest
from rich.cells import cell_len

from qbt_tui.filters import FilterCriteria
from qbt_tui.layout import DEFAULT_VISIBLE_COLUMNS
from qbt_tui.sorting import SortDirection
from qbt_tui.table import TorrentTable


@pytest.fixture
def records(make_torrent):
    return [
        make_torrent("h1", name="charlie", size=300, state="downloading"),
        make_torrent("h2", name="alpha", size=100, state="uploading"),
        make_torrent("h3", name="bravo", size=200, state="pausedDL"),
    ]


@pytest.fixture
def table(records):
    table = TorrentTable(width=200, height=20)
    table.set_records(records)
    return table


def names(table):
    return [t.name for t in table.ordered]


class TestSorting:
    """Tests for sort keys."""

    def test_default_sort_by_name(self, table):
        assert names(table) == ["alpha", "bravo", "charlie"]

    def test_number_key_sorts_by_rendered_column(self, table):
        """Test 2 sorts by the second visible column and toggles."""
        assert table.on_key("2")
        assert table.sort.column == "size"
        assert names(table) == ["alpha", "bravo", "charlie"]

        table.on_key("2")
        assert table.sort.direction is SortDirection.DESC
        assert names(table) == ["charlie", "bravo", "alpha"]

    def test_shifted_key_sorts_descending(self, table):
        """Test the shifted number starts a column descending."""
        table.on_key("@")
        assert table.sort.column == "size"
        assert table.sort.direction is SortDirection.DESC

    def test_key_beyond_visible_columns(self, records):
        """Test keys past the rendered columns are not used."""
        table = TorrentTable(width=200, visible_columns=["name", "size"])
        table.set_records(records)
        assert table.on_key("5") is False
        assert table.sort.column == "name"


class TestColumnOverlay:
    """Tests for the column configuration overlay."""

    def test_toggle_column(self, table):
        """Test the overlay toggles columns and consumes keys."""
        assert "eta" not in table.visible_columns
        assert table.on_key("C")
        assert table.show_column_config

        assert table.on_key("0")
        assert table.visible_columns[-1] == "eta"
        assert "eta" in [c.key for c in table.columns]

        # Sort keys are toggles while the overlay is open
        table.on_key("2")
        assert "size" not in table.visible_columns
        assert table.sort.column == "name"

        assert table.on_key("esc")
        assert not table.show_column_config

    def test_overlay_lines(self, table):
        lines = table.column_config_lines()
        assert len(lines) == 14
        assert lines[0] == "1  [x] Name"
        assert lines[9] == "0  [ ] ETA"


class TestNavigation:
    """Tests for selection movement."""

    def test_movement_keys(self, table):
        assert table.selected.name == "alpha"
        table.on_key("j")
        assert table.selected.name == "bravo"
        table.on_key("G")
        assert table.selected.name == "charlie"
        table.on_key("k")
        table.on_key("g")
        assert table.selected.name == "alpha"

    def test_unknown_key(self, table):
        assert table.on_key("z") is False

    def test_selection_survives_refresh(self, table, make_torrent):
        """Test new data keeps the cursor on the same torrent."""
        table.on_key("down")
        assert table.selected.hash == "h3"

        table.set_records([
            make_torrent("h0", name="aardvark"),
            make_torrent("h3", name="bravo"),
            make_torrent("h2", name="alpha"),
        ])
        assert table.selected.hash == "h3"
        assert table.selection.index == 2

    def test_filter_moves_selection_to_first_row(self, table):
        """Test filtering out the selected torrent selects the first row."""
        table.on_key("j")
        table.set_filter(FilterCriteria(search="arl"))
        assert names(table) == ["charlie"]
        assert table.selected.hash == "h1"

        table.clear_filter()
        assert len(table.ordered) == 3


class TestCurrentView:
    """Tests for the rendered view."""

    def test_header_and_cells(self, table):
        view = table.current_view()
        assert view.header[0].startswith("Name ↑")
        assert view.sort_indicators == {"name": " ↑"}
        assert view.total == 3
        assert view.row_hashes == ["h2", "h3", "h1"]
        for row in view.rows:
            assert [cell_len(cell) for cell in row] == [c.width for c in view.columns]
        status = [c.key for c in view.columns].index("status")
        assert view.rows[0][status].strip() == "Seeding"

    def test_scroll_window(self, make_torrent):
        """Test the window scrolls to keep the selection visible."""
        table = TorrentTable(width=120, height=4)
        table.set_records([make_torrent(f"h{i}", name=f"t{i}") for i in range(10)])
        table.on_key("G")
        view = table.current_view()
        assert len(view.rows) == 3
        assert view.offset == 7
        assert view.selected_row == 2

        table.on_key("g")
        view = table.current_view()
        assert view.offset == 0
        assert view.selected_row == 0

    def test_empty_table(self):
        view = TorrentTable().current_view()
        assert view.rows == []
        assert view.total == 0
        assert view.selected_row is None

    def test_resize_relayouts(self, table):
        """Test a narrow terminal drops columns."""
        table.set_size(40, 20)
        assert [c.key for c in table.columns] == ["name", "progress"]
        assert table.key_map.sort_action("2") == ("progress", False)


class TestPreferences:
    """Tests for preference round trips."""

    def test_round_trip(self, table, records):
        table.on_key("C")
        table.on_key("e")
        table.on_key("C")
        table.on_key("!")
        prefs = table.preferences()
        assert prefs == {
            "columns": ",".join(DEFAULT_VISIBLE_COLUMNS + ["tags"]),
            "sort_column": "name",
            "sort_direction": "desc",
        }

        restored = TorrentTable(width=200)
        restored.load_preferences(prefs)
        restored.set_records(records)
        assert restored.preferences() == prefs
        assert names(restored) == ["charlie", "bravo", "alpha"]

    def test_invalid_values_ignored(self, table):
        table.load_preferences({"columns": "name,bogus,size", "sort_column": "bogus", "sort_direction": "sideways"})
        assert table.visible_columns == ["name", "size"]
        assert table.sort.column == "name"
        assert table.sort.direction is SortDirection.ASC
