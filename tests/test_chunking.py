import time

import pytest

from takeboard.utils.chunking import chunked, chunked_fetch, unique_identifiers


def test_chunked_splits_evenly():
    assert list(chunked(range(5), 2)) == [[0, 1], [2, 3], [4]]


def test_chunked_rejects_bad_size():
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_unique_identifiers_drops_blanks_and_duplicates():
    assert unique_identifiers(["a", None, "", "b", "a"]) == ["a", "b"]


def test_fetch_uses_chunk_size_and_dedupes():
    calls = []

    def fetch(chunk):
        calls.append(list(chunk))
        # every chunk also returns a shared record
        return [{"id": i} for i in chunk] + [{"id": "shared"}]

    ids = [f"id{i}" for i in range(120)]
    records = chunked_fetch(ids, fetch, chunk_size=50, record_key=lambda r: r["id"])

    assert [len(c) for c in calls] == [50, 50, 20]
    assert len(records) == 121
    assert records[0] == {"id": "id0"}
    assert records[50] == {"id": "shared"}


def test_fetch_no_identifiers_skips_fetch():
    def fetch(chunk):
        raise AssertionError("should not be called")

    assert chunked_fetch([], fetch) == []
    assert chunked_fetch([None, ""], fetch) == []


def test_fetch_propagates_chunk_failure():
    def fetch(chunk):
        if "b" in chunk:
            raise RuntimeError("boom")
        return chunk

    with pytest.raises(RuntimeError):
        chunked_fetch(["a", "b"], fetch, chunk_size=1)


def test_parallel_fetch_merges_in_chunk_order(app):
    def fetch(chunk):
        # later chunks finish first
        time.sleep(0.01 * (10 - int(chunk[0])))
        return chunk

    ids = [str(i) for i in range(10)]
    assert chunked_fetch(ids, fetch, chunk_size=1, max_workers=4) == ids
