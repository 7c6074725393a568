import pytest

from lrcsync.exceptions import NoSyncedLinesError, ValidationError
from lrcsync.lrc_parser import (
    LRCParser,
    LrcMetadata,
    SyncedLine,
    extract_plain_lyrics,
    generate_lrc,
    parse_lrc,
)


class TestParse:
    def test_basic_lines(self):
        lines = LRCParser.parse("[00:01.00]Hello\n[00:02.50]World")
        assert lines == [SyncedLine(1.0, "Hello"), SyncedLine(2.5, "World")]

    def test_decodes_minutes_seconds_and_fraction(self):
        lines = LRCParser.parse("[01:02.03]Hello World")
        assert len(lines) == 1
        assert lines[0].time == pytest.approx(62.03)
        assert lines[0].text == "Hello World"

    def test_zero_timestamp(self):
        lines = LRCParser.parse("[00:00.00]x")
        assert lines[0].time == 0.0
        assert lines[0].text == "x"

    def test_output_sorted_by_time(self):
        lines = LRCParser.parse("[00:05.00]c\n[00:01.00]a\n[00:03.00]b")
        assert [line.text for line in lines] == ["a", "b", "c"]

    def test_sort_is_stable_for_equal_times(self):
        lines = LRCParser.parse("[00:02.00]first\n[00:01.00]zero\n[00:02.00]second")
        assert [line.text for line in lines] == ["zero", "first", "second"]

    def test_non_lrc_input_gives_empty_list(self):
        assert LRCParser.parse("not lrc at all\nfoo bar") == []
        assert LRCParser.parse("") == []

    def test_metadata_lines_are_not_content(self):
        content = "[ti:Test]\n[AR:Someone]\n[al:Album]\n[by:me]\n[offset:+100]\n[00:01.00]Hi"
        assert LRCParser.parse(content) == [SyncedLine(1.0, "Hi")]

    def test_crlf_line_breaks(self):
        lines = LRCParser.parse("[00:01.00]a\r\n[00:02.00]b\r\n")
        assert [line.text for line in lines] == ["a", "b"]

    def test_text_is_trimmed(self):
        assert LRCParser.parse("   [00:01.00]   spaced out   ")[0].text == "spaced out"

    def test_empty_text_is_kept(self):
        lines = LRCParser.parse("[00:01.00]Hi\n[00:05.00]\n[00:07.00]   ")
        assert [(line.time, line.text) for line in lines] == [(1.0, "Hi"), (5.0, ""), (7.0, "")]

    def test_invalid_timecodes_are_dropped(self):
        content = "[0:1.00]bad\n[00:01.00x]bad\nword [00:02.00]\n[00:03.00]good"
        assert LRCParser.parse(content) == [SyncedLine(3.0, "good")]

    def test_text_is_taken_after_last_bracket(self):
        assert LRCParser.parse("[00:01.00]Hello [live] world")[0].text == "world"

    def test_multiple_tags_use_first_by_default(self):
        lines = LRCParser.parse("[00:01.00][00:05.00]Chorus")
        assert lines == [SyncedLine(1.0, "Chorus")]

    def test_multiple_tags_expanded(self):
        content = "[00:01.00][00:05.00]Chorus\n[00:03.00]Verse"
        lines = LRCParser.parse(content, expand_repeats=True)
        assert [(line.time, line.text) for line in lines] == [
            (1.0, "Chorus"),
            (3.0, "Verse"),
            (5.0, "Chorus"),
        ]

    def test_parse_or_raise(self):
        with pytest.raises(NoSyncedLinesError) as exc_info:
            LRCParser.parse_or_raise("[ti:Only metadata]\nplain text")
        assert isinstance(exc_info.value, ValidationError)
        assert "no synchronized lines" in str(exc_info.value)

        assert LRCParser.parse_or_raise("[00:01.00]ok") == [SyncedLine(1.0, "ok")]


class TestMetadata:
    def test_reads_all_tags(self):
        content = "[ti:Song]\n[ar:Artist]\n[al:Album]\n[by:Someone]\n[offset:+500]\n[00:01.00]x"
        meta = LRCParser.parse_metadata(content)
        assert meta == LrcMetadata(
            title="Song", artist="Artist", album="Album", author="Someone", offset_ms=500
        )

    def test_negative_offset(self):
        assert LRCParser.parse_metadata("[offset:-250]").offset_ms == -250

    def test_invalid_offset_is_ignored(self):
        assert LRCParser.parse_metadata("[offset:abc]").offset_ms == 0

    def test_no_tags(self):
        assert LRCParser.parse_metadata("[00:01.00]x") == LrcMetadata()


class TestGenerate:
    def test_writes_one_tag_per_line(self):
        lrc = LRCParser.generate([SyncedLine(1.5, "Line 1"), SyncedLine(2.0, "Line 2")])
        assert "[00:01.50]Line 1" in lrc
        assert lrc == "[00:01.50]Line 1\n[00:02.00]Line 2\n"

    def test_empty_input(self):
        assert LRCParser.generate([]) == ""

    def test_writes_title_and_artist_only(self):
        meta = LrcMetadata(title="Song", artist="Artist", album="Album", offset_ms=300)
        lrc = LRCParser.generate([SyncedLine(1.0, "x")], meta)
        assert lrc == "[ti:Song]\n[ar:Artist]\n[00:01.00]x\n"

    def test_does_not_reorder(self):
        lrc = LRCParser.generate([SyncedLine(5.0, "late"), SyncedLine(1.0, "early")])
        assert lrc.splitlines() == ["[00:05.00]late", "[00:01.00]early"]

    def test_truncates_below_hundredths(self):
        assert LRCParser.generate([SyncedLine(1.239, "x")]) == "[00:01.23]x\n"

    def test_parse_generated_output(self):
        written = [
            SyncedLine(0.0, "start"),
            SyncedLine(1.01, "one"),
            SyncedLine(12.34, "two"),
            SyncedLine(62.03, "three"),
            SyncedLine(125.5, "four"),
            SyncedLine(3599.99, "five"),
        ]
        parsed = LRCParser.parse(LRCParser.generate(written))
        assert [line.text for line in parsed] == [line.text for line in written]
        for got, expected in zip(parsed, written):
            assert got.time == pytest.approx(expected.time, abs=1e-9)


class TestExtractPlainText:
    def test_strips_timecodes_and_metadata(self):
        content = "[ti:Test]\n[00:01.00]Hello\n[00:02.00]World"
        assert LRCParser.extract_plain_text(content) == "Hello\nWorld"

    def test_accepts_any_bracket_prefix(self):
        content = "[bad]Text\nno brackets\n[00:01.00]\n[00:02.00]  Yes "
        assert LRCParser.extract_plain_text(content) == "Text\nYes"

    def test_plain_text_input_gives_empty_string(self):
        assert LRCParser.extract_plain_text("Hello\nWorld") == ""


def test_synced_line_helpers():
    line = SyncedLine(62.03, "Hello")
    assert str(line) == "[01:02.03]Hello"
    assert SyncedLine.from_dict(line.to_dict()) == line
    assert SyncedLine.from_dict({"time": "1.5"}) == SyncedLine(1.5, "")


def test_module_level_helpers():
    content = "[ti:T]\n[00:01.00]a"
    assert parse_lrc(content) == LRCParser.parse(content)
    assert generate_lrc([SyncedLine(1.0, "a")]) == "[00:01.00]a\n"
    assert extract_plain_lyrics(content) == "a"
