import pytest
from embedded_json_table_db import Database, ValidationError
from embedded_json_table_db.query import apply_options, matches, project, sort_records

def make_users():
    return [
        {"name": "Alice", "age": 25, "city": "Wien"},
        {"name": "Bob", "age": 10, "city": "Graz"},
        {"name": "Charlie", "age": 50, "city": "Wien"},
    ]

def test_where_is_a_conjunction():
    rec = {"name": "Tom", "age": 19}
    assert matches(rec, {"name": lambda v: v == "Tom", "age": lambda v: v > 18})
    assert not matches(rec, {"name": lambda v: v == "Tom", "age": lambda v: v > 20})
    assert matches(rec, {})
    assert matches(rec, None)

def test_where_short_circuits_on_first_false():
    calls = []

    def never(v):
        calls.append(v)
        return True

    assert not matches({"a": 1, "b": 2}, {"a": lambda v: False, "b": never})
    assert calls == []

def test_non_callable_predicate_passes():
    rec = {"name": "Tom"}
    assert matches(rec, {"name": "Bob"})
    assert matches(rec, {"name": None, "age": 42})

def test_missing_field_reaches_predicate_as_none():
    assert matches({"name": "Tom"}, {"age": lambda v: v is None})

def test_pipeline_sort_skip_limit():
    recs = [{"a": 3}, {"a": 1}, {"a": 2}]
    assert apply_options(recs, sort={"a": 1}, skip=1, limit=1) == [{"a": 2}]
    assert apply_options(recs, sort={"a": -1}) == [{"a": 3}, {"a": 2}, {"a": 1}]
    assert apply_options(recs, sort={"a": "desc"}, skip=2) == [{"a": 1}]
    assert apply_options(recs, limit=0) == []

def test_sort_tie_breaks_on_next_field_and_is_stable():
    recs = [
        {"n": "x", "g": 1, "s": 2},
        {"n": "y", "g": 0, "s": 5},
        {"n": "z", "g": 1, "s": 1},
        {"n": "w", "g": 1, "s": 2},
    ]
    got = sort_records(recs, {"g": "asc", "s": "desc"})
    assert [r["n"] for r in got] == ["y", "x", "w", "z"]

def test_sort_mixed_kinds():
    recs = [{"v": "b"}, {"v": 2}, {}, {"v": None}, {"v": [1]}, {"v": 1.5}]
    got = sort_records(recs, {"v": 1})
    assert got == [{}, {"v": None}, {"v": 1.5}, {"v": 2}, {"v": "b"}, {"v": [1]}]

def test_invalid_options():
    with pytest.raises(ValidationError):
        apply_options([{"a": 1}], sort={"a": "sideways"})
    with pytest.raises(ValidationError):
        apply_options([{"a": 1}], skip=-1)
    with pytest.raises(ValidationError):
        apply_options([{"a": 1}], limit=-5)

def test_projection_drops_unlisted_fields_including_id():
    assert project({"_id": "x", "name": "Tom", "age": 19}, ["name"]) == {"name": "Tom"}
    assert list(project({"a": 1, "b": 2, "c": 3}, ["c", "a"]).keys()) == ["c", "a"]

def test_projection_and_sorting(tmp_path):
    db = Database(str(tmp_path / "users.json"))
    db.create("users")
    db.insert("users", *make_users())

    lst = db.find("users", {"city": lambda c: c == "Wien"}, sort={"age": "desc"}, fields=["name"])
    assert lst == [{"name": "Charlie"}, {"name": "Alice"}]

    # Without options the table order is kept and records are complete
    lst = db.find("users")
    assert [r["name"] for r in lst] == ["Alice", "Bob", "Charlie"]
    assert set(lst[0].keys()) == {"_id", "name", "age", "city"}

def test_find_first_and_count(tmp_path):
    db = Database(str(tmp_path / "users.json"))
    db.create("users")
    db.insert("users", *make_users())

    first = db.find_first("users", {"city": lambda c: c == "Wien"})
    assert first is not None and first["name"] == "Alice"
    youngest = db.find_first("users", sort={"age": 1})
    assert youngest is not None and youngest["name"] == "Bob"
    assert db.find_first("users", {"age": lambda a: a > 100}) is None

    assert db.count("users") == 3
    assert db.count("users", {"age": lambda a: a >= 25}) == 2
    assert db.count("users", {"age": lambda a: a >= 25}, skip=1) == 1
    assert db.count("users", limit=2) == 2
