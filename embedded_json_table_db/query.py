from __future__ import annotations
import functools
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .errors import ValidationError
from .utils import canonical_json

Record = Dict[str, Any]
Predicate = Callable[[Any], bool]
Where = Mapping[str, Any]
Direction = Union[int, str]

_MISSING = object()


def matches(record: Record, where: Optional[Where]) -> bool:
    """
    True iff every predicate in `where` accepts the record's value at its field.

    A missing field is passed to its predicate as None. Entries whose value
    is not callable are satisfied vacuously; they never reject a record.
    An empty or missing `where` matches everything.
    """
    if not where:
        return True
    for field, predicate in where.items():
        if not callable(predicate):
            continue
        if not predicate(record.get(field)):
            return False
    return True


def _direction(value: Direction) -> int:
    if isinstance(value, str):
        v = value.lower()
        if v in ("asc", "ascending"):
            return 1
        if v in ("desc", "descending"):
            return -1
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        if value > 0:
            return 1
        if value < 0:
            return -1
    raise ValidationError(f"invalid sort direction: {value!r}")


def _rank(v: Any) -> tuple:
    # missing/null < bool and numbers < strings < arrays and objects
    if v is _MISSING or v is None:
        return (0, 0)
    if isinstance(v, (bool, int, float)):
        return (1, v)
    if isinstance(v, str):
        return (2, v)
    return (3, canonical_json(v))


def _compare(a: Any, b: Any) -> int:
    ka, kb = _rank(a), _rank(b)
    if ka == kb:
        return 0
    return -1 if ka < kb else 1


def sort_records(records: Sequence[Record], sort: Mapping[str, Direction]) -> List[Record]:
    """
    Stable multi-field sort. Fields are consulted in the order given; the
    first field on which two records differ decides their order.
    """
    spec = [(field, _direction(d)) for field, d in sort.items()]
    if not spec:
        return list(records)

    def cmp(a: Record, b: Record) -> int:
        for field, direction in spec:
            c = _compare(a.get(field, _MISSING), b.get(field, _MISSING))
            if c != 0:
                return c * direction
        return 0

    return sorted(records, key=functools.cmp_to_key(cmp))


def project(record: Record, fields: Sequence[str]) -> Record:
    """Keep only the named fields, in projection order. `_id` is not implied."""
    return {f: record[f] for f in fields if f in record}


def apply_options(
    records: Sequence[Record],
    *,
    sort: Optional[Mapping[str, Direction]] = None,
    skip: int = 0,
    limit: Optional[int] = None,
    fields: Optional[Sequence[str]] = None,
) -> List[Record]:
    """Sort, then skip, then limit, then project."""
    if skip is None:
        skip = 0
    if not isinstance(skip, int) or skip < 0:
        raise ValidationError(f"skip must be a non-negative integer, got {skip!r}")
    if limit is not None and (not isinstance(limit, int) or limit < 0):
        raise ValidationError(f"limit must be a non-negative integer, got {limit!r}")

    out = sort_records(records, sort) if sort else list(records)
    if limit is None:
        out = out[skip:]
    else:
        out = out[skip:skip + limit]
    if fields is not None:
        out = [project(r, fields) for r in out]
    return out


def has_options(
    sort: Optional[Mapping[str, Direction]],
    skip: int,
    limit: Optional[int],
    fields: Optional[Sequence[str]],
) -> bool:
    return bool(sort) or bool(skip) or limit is not None or fields is not None
