"""
Chunked batch lookups

Identifier lookups are split into parameterized IN (...) batches so no
single statement exceeds backend clause limits. Chunks may run on a small
worker pool; results are always merged in chunk order and de-duplicated,
so arrival order never changes the output.
"""

from concurrent.futures import ThreadPoolExecutor

from flask import current_app

LOOKUP_CHUNK_SIZE = 50


def chunked(items, size):
    """Yield successive lists of at most ``size`` items"""
    if size < 1:
        raise ValueError("chunk size must be positive")
    items = list(items)
    for i in range(0, len(items), size):
        yield items[i : i + size]


def unique_identifiers(identifiers):
    """Drop blanks and duplicates, keeping first-seen order"""
    return list(dict.fromkeys(i for i in identifiers if i is not None and i != ""))


def chunked_fetch(
    identifiers, fetch_chunk, chunk_size=LOOKUP_CHUNK_SIZE, max_workers=1, record_key=None
):
    """
    Fetch records for many identifiers in batches.

    Any chunk failure propagates, so callers get either the full result
    set or an exception, never a partial union.

    Args:
        identifiers: iterable of ids to look up
        fetch_chunk: callable taking a list of ids and returning records
        chunk_size: ids per statement
        max_workers: concurrent chunks (1 = sequential)
        record_key: callable giving a record's identity for de-duplication
    """
    ids = unique_identifiers(identifiers)
    if not ids:
        return []

    chunks = list(chunked(ids, chunk_size))

    if max_workers <= 1 or len(chunks) == 1:
        results = [list(fetch_chunk(chunk)) for chunk in chunks]
    else:
        app = current_app._get_current_object()

        def run(chunk):
            with app.app_context():
                return list(fetch_chunk(chunk))

        with ThreadPoolExecutor(max_workers=min(max_workers, len(chunks))) as pool:
            results = list(pool.map(run, chunks))

    merged = []
    seen = set()
    for batch in results:
        for record in batch:
            key = record_key(record) if record_key else record
            if key in seen:
                continue
            seen.add(key)
            merged.append(record)
    return merged
