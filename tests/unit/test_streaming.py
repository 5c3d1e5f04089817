"""Tests for DeltaAccumulator and detect_json_boundary."""

from bubblestream.streaming import DeltaAccumulator, detect_json_boundary
from tests.conftest import chunked, doc, text


# ---------------------------------------------------------------------------
# DeltaAccumulator
# ---------------------------------------------------------------------------

class TestDeltaAccumulator:
    def test_empty(self):
        acc = DeltaAccumulator()
        assert acc.snapshot() == ""
        assert len(acc) == 0

    def test_concatenates_in_order(self):
        acc = DeltaAccumulator()
        for part in ["{", '"bub', 'bles"', ": ["]:
            acc.append(part)
        assert acc.snapshot() == '{"bubbles": ['
        assert len(acc) == len('{"bubbles": [')

    def test_snapshot_is_stable_across_calls(self):
        acc = DeltaAccumulator()
        acc.append("ab")
        acc.append("cd")
        assert acc.snapshot() == acc.snapshot() == "abcd"
        acc.append("e")
        assert acc.snapshot() == "abcde"

    def test_empty_delta_is_harmless(self):
        acc = DeltaAccumulator()
        acc.append("a")
        acc.append("")
        assert acc.snapshot() == "a"


# ---------------------------------------------------------------------------
# detect_json_boundary
# ---------------------------------------------------------------------------

class TestDetectJsonBoundary:
    def test_separator_in_delta(self):
        buffer = '{"bubbles": [{"messageType": "text", "content": "a"}, {'
        assert detect_json_boundary("}, {", buffer)

    def test_separator_split_across_single_characters(self):
        payload = doc(text("a"), text("b"))
        fired_at = []
        for i, delta in enumerate(chunked(payload, 1)):
            if detect_json_boundary(delta, payload[:i + 1]):
                fired_at.append(i)
        separator_end = payload.index("}, {") + len("}, {") - 1
        assert separator_end in fired_at

    def test_field_end_needs_both_keys(self):
        assert not detect_json_boundary('"}', '{"bubbles": [{"title": "x"}')
        buffer = '{"bubbles": [{"messageType": "text", "content": "x"}'
        assert detect_json_boundary('"}', buffer)

    def test_plain_text_delta_does_not_fire(self):
        buffer = '{"bubbles": [{"messageType": "text", "content": "Hello wor'
        assert not detect_json_boundary("wor", buffer)

    def test_empty_delta(self):
        assert not detect_json_boundary("", '{"bubbles": [{}, {')

    def test_fires_at_end_of_each_bubble(self):
        payload = doc(text("one"), text("two"))
        fired = [
            i for i, delta in enumerate(chunked(payload, 1))
            if detect_json_boundary(delta, payload[:i + 1])
        ]
        first_close = payload.index('"one"}') + len('"one"}') - 1
        assert first_close in fired
