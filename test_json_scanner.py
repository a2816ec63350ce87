#!/usr/bin/env python3
"""
Tests for the incremental side-channel JSON scanner.
"""

from stream_relay.llm.streaming import IncrementalJSONScanner, ScannerState


def feed_all(scanner, deltas):
    """Feed deltas in order and collect every object the scanner reports."""
    found = []
    for delta in deltas:
        result = scanner.feed(delta)
        if result is not None:
            found.append(result)
    return found


class TestScannerBasics:
    """Single-delta extraction."""

    def test_extracts_object_after_prose(self):
        scanner = IncrementalJSONScanner()
        assert scanner.feed('Hello {"a":1} world') == {"a": 1}
        assert scanner.state is ScannerState.BALANCED
        assert scanner.emitted
        assert scanner.result == {"a": 1}

    def test_plain_text_never_emits(self):
        scanner = IncrementalJSONScanner()
        assert scanner.feed("no structured content here") is None
        assert scanner.state is ScannerState.SCANNING
        assert scanner.depth == 0

    def test_nested_objects(self):
        scanner = IncrementalJSONScanner()
        result = scanner.feed('{"outer": {"inner": {"x": [1, 2]}}} tail')
        assert result == {"outer": {"inner": {"x": [1, 2]}}}

    def test_braces_inside_strings_are_ignored(self):
        scanner = IncrementalJSONScanner()
        result = scanner.feed('{"text": "a } and { inside"}')
        assert result == {"text": "a } and { inside"}

    def test_escaped_quotes_keep_string_open(self):
        scanner = IncrementalJSONScanner()
        result = scanner.feed(r'{"q": "he said \"}\" loudly"}')
        assert result == {"q": 'he said "}" loudly'}

    def test_escaped_backslash_before_closing_quote(self):
        scanner = IncrementalJSONScanner()
        result = scanner.feed(r'{"path": "C:\\"}')
        assert result == {"path": "C:\\"}


class TestScannerIncremental:
    """Extraction across delta boundaries."""

    def test_object_split_across_deltas(self):
        scanner = IncrementalJSONScanner()
        found = feed_all(scanner, ["Hello ", '{"a":', "1} ", "world"])
        assert found == [{"a": 1}]

    def test_split_inside_string_and_escape(self):
        scanner = IncrementalJSONScanner()
        found = feed_all(scanner, ['{"s": "x\\', '"y', '}"', "}"])
        assert found == [{"s": 'x"y}'}]

    def test_state_tracks_string_between_deltas(self):
        scanner = IncrementalJSONScanner()
        scanner.feed('{"key": "val')
        assert scanner.state is ScannerState.IN_STRING
        scanner.feed("\\")
        assert scanner.state is ScannerState.ESCAPED
        scanner.feed('n"')
        assert scanner.state is ScannerState.SCANNING
        assert scanner.depth == 1

    def test_emits_at_most_once(self):
        scanner = IncrementalJSONScanner()
        found = feed_all(scanner, ['{"first": 1}', ' {"second": 2}', '{"third": 3}'])
        assert found == [{"first": 1}]
        assert scanner.result == {"first": 1}

    def test_unparseable_candidate_is_discarded(self):
        scanner = IncrementalJSONScanner()
        found = feed_all(scanner, ["{not json} then ", '{"ok": true}'])
        assert found == [{"ok": True}]
        assert scanner.candidates == 2

    def test_unbalanced_object_never_emits(self):
        scanner = IncrementalJSONScanner()
        found = feed_all(scanner, ['{"a": {"b": 1}', " still open"])
        assert found == []
        assert scanner.depth == 1
        assert not scanner.emitted

    def test_oversized_candidate_is_dropped(self):
        scanner = IncrementalJSONScanner(max_candidate_chars=16)
        found = feed_all(scanner, ['{"a": "' + "x" * 40, '" } ', '{"b": 1}'])
        assert found == [{"b": 1}]
        assert scanner.candidates == 2

    def test_unclosed_candidate_stays_bounded(self):
        scanner = IncrementalJSONScanner(max_candidate_chars=32)
        for _ in range(100):
            scanner.feed('{"k": [1, 2, 3, ')
        assert not scanner.emitted
        assert len(scanner._buffer) <= 32
