"""Tests for I/O-log sequence id allocation."""

import logging
import os
import sys

import pytest

from policyload.defs import SESSID_MAX
from policyload.iolog.sequence import (
    SEQ_FILENAME,
    SequenceAllocator,
    SequenceError,
    decode_sessid,
    encode_sessid,
    format_seq,
    iolog_nextid,
)

from conftest import FakeCounter


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

class TestEncoding:
    def test_format_seq_splits_into_three_levels(self):
        assert format_seq("A1B2C3") == "A1/B2/C3"
        assert format_seq("000001") == "00/00/01"

    def test_format_seq_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            format_seq("12345")

    def test_encode_is_base36_zero_padded(self):
        assert encode_sessid(1) == "000001"
        assert encode_sessid(36) == "000010"
        assert encode_sessid(SESSID_MAX - 1) == "ZZZZZZ"

    def test_encode_out_of_range(self):
        with pytest.raises(ValueError):
            encode_sessid(SESSID_MAX)

    def test_decode_accepts_lowercase(self):
        assert decode_sessid("00000z\n") == 35


# ---------------------------------------------------------------------------
# iolog_nextid
# ---------------------------------------------------------------------------

class TestNextId:
    def test_first_id_is_one(self, tmp_path):
        assert iolog_nextid(str(tmp_path)) == "000001"
        assert (tmp_path / SEQ_FILENAME).read_text() == "000001\n"

    def test_ids_increase(self, tmp_path):
        ids = [iolog_nextid(str(tmp_path)) for _ in range(3)]
        assert ids == ["000001", "000002", "000003"]

    def test_continues_from_existing_counter(self, tmp_path):
        (tmp_path / SEQ_FILENAME).write_text("0000ZZ\n")
        assert iolog_nextid(str(tmp_path)) == "000100"

    def test_wraps_past_maxseq(self, tmp_path):
        (tmp_path / SEQ_FILENAME).write_text("000004\n")
        assert iolog_nextid(str(tmp_path), maxseq=5) == "000005"
        assert iolog_nextid(str(tmp_path), maxseq=5) == "000001"
        assert iolog_nextid(str(tmp_path), maxseq=5) == "000002"

    def test_counter_past_lowered_maxseq_restarts(self, tmp_path):
        (tmp_path / SEQ_FILENAME).write_text("0000ZZ\n")
        assert iolog_nextid(str(tmp_path), maxseq=10) == "000001"

    def test_creates_missing_log_root(self, tmp_path):
        logdir = tmp_path / "sudo-io" / "alice"
        assert iolog_nextid(str(logdir)) == "000001"
        assert logdir.is_dir()

    def test_corrupt_counter_is_reset(self, tmp_path, caplog):
        (tmp_path / SEQ_FILENAME).write_text("not-a-number\n")
        with caplog.at_level(logging.WARNING, logger="policyload.iolog.sequence"):
            assert iolog_nextid(str(tmp_path)) == "000001"
        assert "bad sequence number" in caplog.text
        assert (tmp_path / SEQ_FILENAME).read_text() == "000001\n"

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need admin on Windows")
    def test_refuses_symlinked_counter(self, tmp_path):
        target = tmp_path / "elsewhere"
        target.write_text("000001\n")
        os.symlink(str(target), str(tmp_path / SEQ_FILENAME))
        with pytest.raises(SequenceError, match="symlink"):
            iolog_nextid(str(tmp_path))
        assert target.read_text() == "000001\n"

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need admin on Windows")
    def test_refuses_symlinked_log_root(self, tmp_path):
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        os.symlink(str(real), str(link))
        with pytest.raises(SequenceError):
            iolog_nextid(str(link))


# ---------------------------------------------------------------------------
# SequenceAllocator
# ---------------------------------------------------------------------------

class TestAllocator:
    def test_allocates_lazily(self):
        counter = FakeCounter()
        alloc = SequenceAllocator(counter)
        assert alloc.sessid is None
        assert counter.calls == []

    def test_caches_one_id(self):
        counter = FakeCounter()
        alloc = SequenceAllocator(counter)
        assert alloc.get("/logs") == "000001"
        assert alloc.get("/logs") == "000001"
        assert alloc.get("/other") == "000001"
        assert counter.calls == ["/logs"]

    def test_rejects_malformed_counter_output(self):
        alloc = SequenceAllocator(lambda logdir, maxseq: "12")
        with pytest.raises(SequenceError):
            alloc.get("/logs")
        assert alloc.sessid is None

    def test_separate_allocators_share_counter_file(self, tmp_path):
        first = SequenceAllocator().get(str(tmp_path))
        second = SequenceAllocator().get(str(tmp_path))
        assert (first, second) == ("000001", "000002")
