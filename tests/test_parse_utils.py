# tests/test_parse_utils.py
"""Tests for lenient JSON decoding of oracle text."""


class TestParseJsonLike:
    def test_strict_json(self):
        from ledgerx.extraction.parse_utils import parse_json_like
        assert parse_json_like('{"identities": []}') == {"identities": []}

    def test_fenced_block_after_prose(self):
        from ledgerx.extraction.parse_utils import parse_json_like
        raw = 'Here is the record:\n```json\n{"ledgers": [1, 2]}\n```\nDone.'
        assert parse_json_like(raw) == {"ledgers": [1, 2]}

    def test_brace_span_in_prose(self):
        from ledgerx.extraction.parse_utils import parse_json_like
        assert parse_json_like('Result: {"a": 1} (end)') == {"a": 1}

    def test_python_literal(self):
        from ledgerx.extraction.parse_utils import parse_json_like
        assert parse_json_like("{'a': True, 'b': None}") == {"a": True, "b": None}

    def test_unparseable_returns_none(self):
        from ledgerx.extraction.parse_utils import parse_json_like
        assert parse_json_like("no json here") is None
        assert parse_json_like("") is None
        assert parse_json_like(None) is None


class TestIterJsonCandidates:
    def test_order_and_dedup(self):
        from ledgerx.extraction.parse_utils import iter_json_candidates
        raw = 'x ```\n{"a": 1}\n``` y'
        assert list(iter_json_candidates(raw)) == [raw, '{"a": 1}']
