"""
Tests for terminal title rendering and key decoding.
"""

import pytest

from qbt_tui.terminal import (
    TitleData,
    decode_keys,
    render_title,
    title_escape,
    torrent_counts,
    validate_template,
)


class TestTitle:
    """Tests for the terminal title."""

    def test_render(self):
        data = TitleData(dl_speed=2048, up_speed=0, active_torrents=3, total_torrents=10,
                         server_url="http://qbt.test")
        title = render_title("[{active_torrents}/{total_torrents}] ↓{dl_speed} ↑{up_speed} {server_url}", data)
        assert title == "[3/10] ↓2.0 KB/s ↑0 B/s http://qbt.test"

    def test_session_totals(self):
        data = TitleData(session_downloaded=1048576, session_uploaded=512)
        assert render_title("{session_downloaded} {session_uploaded}", data) == "1.0 MB 512 B"

    def test_empty_template(self):
        with pytest.raises(ValueError):
            render_title("", TitleData())

    def test_validate(self):
        validate_template("{dl_torrents} {up_torrents} {paused_torrents}")
        validate_template("")
        with pytest.raises(ValueError) as exc_info:
            validate_template("{dl_speed} {bogus}")
        assert "{bogus}" in str(exc_info.value)

    def test_escape(self):
        assert title_escape("qbt") == "\x1b]0;qbt\x07"

    def test_counts(self, make_torrent):
        records = [
            make_torrent("a", state="downloading"),
            make_torrent("b", state="stalledUP"),
            make_torrent("c", state="pausedDL"),
            make_torrent("d", state="queuedUP"),
        ]
        assert torrent_counts(records) == (2, 1, 1, 1)


class TestDecodeKeys:
    """Tests for splitting terminal input into key names."""

    def test_printable(self):
        assert decode_keys("jk/") == ["j", "k", "/"]

    def test_arrows_and_paging(self):
        assert decode_keys("\x1b[A\x1b[B\x1b[5~\x1b[6~") == ["up", "down", "pgup", "pgdown"]
        assert decode_keys("\x1bOA") == ["up"]

    def test_control_keys(self):
        assert decode_keys("\r\n\t\x7f\x03") == ["enter", "enter", "tab", "backspace", "ctrl+c"]

    def test_function_key(self):
        assert decode_keys("\x1b[15~") == ["f5"]

    def test_lone_escape(self):
        assert decode_keys("\x1b") == ["esc"]
        assert decode_keys("\x1bq") == ["esc", "q"]

    def test_unknown_sequence_dropped(self):
        assert decode_keys("a\x1b[99~b") == ["a", "b"]
        assert decode_keys("\x00") == []
