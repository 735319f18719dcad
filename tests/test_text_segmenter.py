import pytest

from tts_gateway.errors import InputValidationError
from tts_gateway.schemas.tts import ProviderConfig
from tts_gateway.services.tts.text_segmenter import (
    EDGE_LIMITS,
    OPENAI_LIMITS,
    PAUSE_MARKER_PATTERN,
    limits_for,
    pause_marker,
    preview_text,
    segment_text,
    strip_pause_markers,
    unit_length,
)

SENTENCE = "The quick brown fox jumps over the lazy dog. "


def _joined(chunks) -> str:
    return "".join(chunk.text for chunk in chunks)


def test_unit_length_weights_wide_characters() -> None:
    assert unit_length("abc") == 3
    assert unit_length("你好") == 4
    assert unit_length("a你") == 3


def test_unit_length_counts_pause_markers_by_duration() -> None:
    assert unit_length('a<break time="1s"/>b') == 2 + 11
    assert unit_length("<break time='2s'/>") == 22
    # 0.5s * 11 = 5.5 rounds half up
    assert unit_length('<break time="500ms"/>') == 6


def test_blank_input_yields_no_chunks() -> None:
    assert segment_text("", 100) == []
    assert segment_text("   \n\t ", 100) == []


def test_non_positive_budget_is_rejected() -> None:
    with pytest.raises(ValueError):
        segment_text("hello", 0)


def test_short_text_is_a_single_chunk() -> None:
    chunks = segment_text("Hello world.", 100)

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].text == "Hello world."
    assert chunks[0].units == 12


def test_long_text_splits_on_sentence_terminators() -> None:
    text = SENTENCE * 267
    assert len(text) > 12000

    chunks = segment_text(text, 5000)

    assert len(chunks) >= 3
    assert _joined(chunks) == text
    assert all(chunk.units <= 5000 for chunk in chunks)
    assert all(chunk.text.endswith(".") for chunk in chunks[:-1])
    assert [chunk.index for chunk in chunks] == list(range(len(chunks)))


def test_segmenting_a_chunk_again_returns_it_unchanged() -> None:
    chunks = segment_text(SENTENCE * 267, 5000)

    for chunk in chunks:
        again = segment_text(chunk.text, 5000)
        assert len(again) == 1
        assert again[0].text == chunk.text


def test_sentence_terminator_beats_comma() -> None:
    text = "a" * 10 + "." + "b" * 5 + "," + "c" * 10

    chunks = segment_text(text, 20)

    assert chunks[0].text == "a" * 10 + "."
    assert _joined(chunks) == text


def test_line_break_beats_sentence_terminator() -> None:
    text = "a" * 5 + "\n" + "b" * 5 + "." + "c" * 20

    chunks = segment_text(text, 15)

    assert chunks[0].text == "aaaaa\n"
    assert _joined(chunks) == text


def test_hard_split_without_any_boundary() -> None:
    chunks = segment_text("x" * 25, 10)

    assert [chunk.text for chunk in chunks] == ["x" * 10, "x" * 10, "x" * 5]


def test_wide_characters_respect_the_budget() -> None:
    chunks = segment_text("你" * 10, 5)

    assert len(chunks) == 5
    assert all(chunk.units == 4 for chunk in chunks)


def test_boundary_search_stops_after_lookback_window() -> None:
    text = "a." + "b" * 400

    chunks = segment_text(text, 350)

    # The period sits more than 300 units back, so the split is a hard one
    assert chunks[0].text == text[:350]


def test_pause_markers_are_never_split() -> None:
    marker = '<break time="1s"/>'
    text = "a" * 8 + marker + "bbb"

    chunks = segment_text(text, 10)

    assert _joined(chunks) == text
    assert [chunk.text for chunk in chunks] == ["a" * 8, marker, "bbb"]
    # An oversized marker is the only chunk allowed over budget
    assert chunks[1].units == 11
    for chunk in chunks:
        if "<break" in chunk.text:
            assert PAUSE_MARKER_PATTERN.search(chunk.text)


def test_pause_marker_builder_validates_range() -> None:
    assert pause_marker(1.5) == '<break time="1.5s"/>'
    assert pause_marker(100) == '<break time="100s"/>'
    with pytest.raises(InputValidationError):
        pause_marker(0)
    with pytest.raises(InputValidationError):
        pause_marker(101)


def test_strip_and_preview_ignore_markers() -> None:
    text = '<break time="1s"/>Hello world'

    assert strip_pause_markers(text) == "Hello world"
    assert preview_text(text) == "Hello w..."
    assert preview_text("Hi") == "Hi"


def test_limits_depend_on_wire_format() -> None:
    edge = ProviderConfig(id="e", name="e", wire_format="edge", endpoint="http://e", custom=False)
    openai = ProviderConfig(id="o", name="o", wire_format="openai", endpoint="http://o", custom=False)

    assert limits_for(edge) == EDGE_LIMITS
    assert limits_for(openai) == OPENAI_LIMITS


def test_provider_segment_override() -> None:
    small = ProviderConfig(id="c", name="c", endpoint="http://c", max_segment=800)
    large = ProviderConfig(id="d", name="d", endpoint="http://d", max_segment=3000)

    assert limits_for(small).max_segment == 800
    assert limits_for(small).max_total == 2000
    assert limits_for(large).max_total == 3000
