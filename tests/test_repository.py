import pytest

from takeboard.services.repository import RecordRepository


@pytest.fixture
def many_takes(factory):
    """60 current takes plus one overwritten take on a single prop"""
    prop = factory.prop(prop_id="busy")
    current = [factory.take(prop, f"+1555{n:04d}", n, "won") for n in range(60)]
    old = factory.take(prop, "+15550000", 999, "won", status="overwritten")
    factory.commit()
    return {"current": current, "old": old}


def test_takes_by_identifiers_span_chunks(many_takes):
    repository = RecordRepository()
    wanted = [t.id for t in many_takes["current"]]

    takes = repository.find_takes_by_identifiers(list(reversed(wanted)))

    assert [t.id for t in takes] == sorted(wanted)


def test_overwritten_takes_are_opt_in(many_takes):
    repository = RecordRepository(chunk_size=7)
    old = many_takes["old"]
    wanted = [t.id for t in many_takes["current"][:10]] + [old.id]

    assert old.id not in [t.id for t in repository.find_takes_by_identifiers(wanted)]

    with_history = repository.find_takes_by_identifiers(wanted, include_overwritten=True)
    assert [t.id for t in with_history] == sorted(wanted)


def test_duplicate_and_unknown_identifiers(many_takes):
    repository = RecordRepository(chunk_size=2)
    first = many_takes["current"][0]

    takes = repository.find_takes_by_identifiers([first.id, first.id, 999999])

    assert [t.id for t in takes] == [first.id]


def test_no_identifiers(app):
    assert RecordRepository().find_takes_by_identifiers([]) == []
