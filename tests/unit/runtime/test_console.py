"""Unit tests for progress-line coalescing and child output splitting."""

from __future__ import annotations

import io

import pytest

from lightning_search.runtime.console import LineSplitter, ProgressConsole


@pytest.fixture
def streams() -> tuple[io.StringIO, io.StringIO]:
    return io.StringIO(), io.StringIO()


@pytest.fixture
def console(streams) -> ProgressConsole:
    out, err = streams
    return ProgressConsole(out, err)


def test_progress_lines_overwrite_in_place(console, streams):
    out, _ = streams

    for line in ("Progress: 10%", "Progress: 20%", "Done"):
        console.primary(line)

    assert out.getvalue() == "\rProgress: 10%\rProgress: 20%\nDone\n"


def test_shorter_progress_line_is_padded(console, streams):
    out, _ = streams

    console.primary("Progress: 100/1000")
    console.primary("Progress: 5")

    assert out.getvalue() == "\rProgress: 100/1000\rProgress: 5       "
    assert console.in_progress


def test_diagnostic_lines_go_to_error_stream_immediately(console, streams):
    out, err = streams

    console.primary("Progress: 10%")
    console.diagnostic("connection reset")
    console.primary("Progress: 20%")

    assert err.getvalue() == "[error] connection reset\n"
    assert out.getvalue() == "\rProgress: 10%\n\rProgress: 20%"


def test_diagnostic_lines_are_never_coalesced(console, streams):
    _, err = streams

    console.diagnostic("Progress: looks like progress")
    console.diagnostic("Progress: but is an error")

    assert err.getvalue().splitlines() == [
        "[error] Progress: looks like progress",
        "[error] Progress: but is an error",
    ]


def test_finish_terminates_pending_progress_line(console, streams):
    out, _ = streams

    console.primary("Progress: 99%")
    console.finish()
    console.finish()

    assert out.getvalue() == "\rProgress: 99%\n"
    assert not console.in_progress


def test_custom_marker(streams):
    out, err = streams
    console = ProgressConsole(out, err, progress_marker="Seeded")

    console.primary("Seeded 10")
    console.primary("Seeded 20")
    console.primary("Progress: not a marker here")

    assert out.getvalue() == "\rSeeded 10\rSeeded 20\nProgress: not a marker here\n"


def test_warning_prefix(console, streams):
    _, err = streams

    console.warning("engine was not running")

    assert err.getvalue() == "[warning] engine was not running\n"


class TestLineSplitter:
    def test_splits_on_carriage_return_and_newline(self):
        splitter = LineSplitter()

        lines = splitter.feed(b"\rProgress: 10%\rProgress: 20%\r\nDone\n")

        assert lines == ["Progress: 10%", "Progress: 20%", "Done"]

    def test_partial_lines_are_buffered(self):
        splitter = LineSplitter()

        assert splitter.feed(b"Progr") == []
        assert splitter.feed(b"ess: 50%\rtail") == ["Progress: 50%"]
        assert splitter.flush() == ["tail"]
        assert splitter.flush() == []

    def test_multibyte_characters_split_across_chunks(self):
        splitter = LineSplitter()
        encoded = "café\n".encode()

        assert splitter.feed(encoded[:4]) == []
        assert splitter.feed(encoded[4:]) == ["café"]
