"""Tests for start_time-masked dump digests."""

import base64

import pytest

from treekeep.hashing import content_digest, digest_text, mask_start_time


HEADER = '{{"version":"1","db_type":"sqlite","start_time":"{t}","db_info":{{"db_name":"x","doc_count":1}}}}\n'
BODY = '{"docs":[{"_id":"0","content":"hello"}]}\n{"seq":1}\n'


class TestMaskStartTime:

    def test_blanks_start_time(self):
        text = HEADER.format(t="2026-03-01T10:00:00+00:00")
        assert '"start_time":"","db_info"' in mask_start_time(text)

    def test_only_first_match_is_replaced(self):
        line1 = '{"start_time":"A","db_info":{}}\n'
        line2 = '{"start_time":"B","db_info":{}}\n'
        masked = mask_start_time(line1 + line2)
        assert masked == '{"start_time":"","db_info":{}}\n' + line2

    def test_text_without_header_is_unchanged(self):
        assert mask_start_time(BODY) == BODY


class TestDigest:

    def test_dumps_at_different_times_hash_equal(self):
        a = HEADER.format(t="2026-03-01T10:00:00+00:00") + BODY
        b = HEADER.format(t="2026-10-18T23:59:59+00:00") + BODY
        assert digest_text(a) == digest_text(b)

    def test_content_change_changes_digest(self):
        a = HEADER.format(t="t") + BODY
        b = HEADER.format(t="t") + BODY.replace("hello", "world")
        assert digest_text(a) != digest_text(b)

    def test_digest_is_base64_sha1(self):
        raw = base64.b64decode(digest_text("anything"), validate=True)
        assert len(raw) == 20

    def test_store_dumps_hash_equal(self, store, tmp_path):
        """Two real dumps of an unchanged store digest identically."""
        first = tmp_path / "one.dump"
        second = tmp_path / "two.dump"

        store._now = lambda: "2026-01-01T00:00:00+00:00"
        with open(first, "w", encoding="utf-8") as f:
            store.dump(f)
        store._now = lambda: "2026-06-30T12:34:56+00:00"
        with open(second, "w", encoding="utf-8") as f:
            store.dump(f)

        assert first.read_text() != second.read_text()
        assert content_digest(first) == content_digest(second)

    def test_missing_file_raises_oserror(self, tmp_path):
        with pytest.raises(OSError):
            content_digest(tmp_path / "nope.gko")

    def test_non_utf8_file(self, tmp_path):
        blob = tmp_path / "outline.gko"
        blob.write_bytes(b"PK\x03\x04\xff\xfe\x80 not text")
        digest = content_digest(blob)
        assert digest == digest_text("PK\x03\x04" + "\ufffd" * 3 + " not text")
