"""
Take record normalization

Every data path (ORM rows, v_take_facts / join result rows, legacy
per-record field dicts) is reduced to a NormalizedTake before any
filtering or scoring happens, so the scoring code never needs to know
where a record came from.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

UNKNOWN_SUBJECT = "Unknown"

RESULT_ALIASES = {
    "won": "won",
    "win": "won",
    "lost": "lost",
    "loss": "lost",
    "pushed": "pushed",
    "push": "pushed",
    "pending": "pending",
}


@dataclass(frozen=True)
class NormalizedTake:
    record_id: object
    subject_key: str
    prop_id: str = None
    pack_refs: tuple = field(default_factory=tuple)
    points: int = 0
    result: str = "unknown"
    status: str = "latest"
    hidden: bool = False
    profile_ref: object = None
    prop_status: str = "open"
    pack_status: str = None


def coerce_points(value):
    """
    Convert a raw point value to an int.

    Lenient on purpose: a missing or malformed value is worth 0 points
    instead of failing the whole aggregation. Callers that need strict
    validation must validate before records reach the engine.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        # nan raises ValueError, +/-inf raises OverflowError
        return 0


def normalize_result(value):
    """Map a raw take result onto won/lost/pushed/pending/unknown"""
    return RESULT_ALIASES.get(str(value or "").strip().lower(), "unknown")


def normalize_status(value):
    status = str(value or "latest").strip().lower()
    return status or "latest"


def _first_link(value):
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _as_refs(*values):
    refs = []
    for value in values:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            refs.extend(v for v in value if v is not None)
        else:
            refs.append(value)
    return tuple(dict.fromkeys(refs))


def _from_legacy_fields(record):
    f = record.get("fields") or {}
    return NormalizedTake(
        record_id=record.get("id"),
        subject_key=f.get("takeMobile") or UNKNOWN_SUBJECT,
        prop_id=f.get("propID"),
        pack_refs=_as_refs(f.get("Packs")),
        points=coerce_points(f.get("takePTS")),
        result=normalize_result(f.get("takeResult")),
        status=normalize_status(f.get("takeStatus")),
        hidden=bool(f.get("takeHide")),
        profile_ref=_first_link(f.get("Profile")),
        prop_status=normalize_status(_first_link(f.get("propStatus")) or "open"),
        pack_status=_first_link(f.get("packStatus")),
    )


def _from_row_mapping(row):
    pack_status = row.get("pack_status")
    return NormalizedTake(
        record_id=row.get("take_id"),
        subject_key=row.get("take_mobile") or UNKNOWN_SUBJECT,
        prop_id=row.get("prop_id"),
        pack_refs=_as_refs(row.get("pack_id")),
        points=coerce_points(row.get("take_pts")),
        result=normalize_result(row.get("take_result")),
        status=normalize_status(row.get("take_status")),
        hidden=bool(row.get("take_hide")),
        profile_ref=row.get("profile_ref"),
        prop_status=normalize_status(row.get("prop_status") or "open"),
        pack_status=pack_status.lower() if pack_status else None,
    )


def _from_model(take):
    prop = take.prop
    pack = prop.pack if prop is not None else None
    pack_status = pack.pack_status if pack is not None else None
    return NormalizedTake(
        record_id=take.id,
        subject_key=take.take_mobile or UNKNOWN_SUBJECT,
        prop_id=take.prop_id,
        pack_refs=_as_refs(pack.pack_id if pack is not None else None),
        points=coerce_points(take.take_pts),
        result=normalize_result(take.take_result),
        status=normalize_status(take.take_status),
        hidden=bool(take.take_hide),
        profile_ref=take.profile_ref,
        prop_status=normalize_status(prop.prop_status if prop is not None else "open"),
        pack_status=pack_status.lower() if pack_status else None,
    )


def normalize_take(record):
    """Convert any supported raw take record into a NormalizedTake"""
    if isinstance(record, NormalizedTake):
        return record

    mapping = getattr(record, "_mapping", None)
    if mapping is not None:
        return _from_row_mapping(mapping)

    if isinstance(record, Mapping):
        if "fields" in record:
            return _from_legacy_fields(record)
        return _from_row_mapping(record)

    if getattr(record, "__tablename__", None) == "takes":
        return _from_model(record)

    raise TypeError(f"Unsupported take record: {type(record).__name__}")


def normalize_takes(records):
    return [normalize_take(record) for record in records]
