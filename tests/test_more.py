import datetime
import os
import stat
import pytest
from embedded_json_table_db import (
    Database,
    DatabaseOptions,
    DBError,
    StorageReadError,
    StorageWriteError,
    ValidationError,
)
from embedded_json_table_db.storage import FileStorage

def test_options_validation(tmp_path):
    with pytest.raises(ValidationError):
        Database(str(tmp_path / "db.txt"))
    with pytest.raises(ValidationError):
        Database(str(tmp_path / "db.json"), cache={"interval": 0})
    with pytest.raises(ValidationError):
        Database(str(tmp_path / "db.json"), spaces=-1)
    with pytest.raises(ValidationError):
        Database.from_options({"path": str(tmp_path / "db.json"), "colour": "red"})

def test_from_options_mapping(tmp_path):
    db = Database.from_options({
        "path": str(tmp_path / "db.json"),
        "cache": {"interval": 60_000},
        "json": {"spaces": 2},
    })
    assert db.cached
    assert db.options.spaces == 2
    assert db.options.cache.interval == 60_000
    db.close()

    opts = DatabaseOptions(path=str(tmp_path / "other.JSON"))
    db2 = Database.from_options(opts)
    assert not db2.cached
    assert db2.options.spaces is None

def test_malformed_json(tmp_path):
    db_path = tmp_path / "bad.json"
    db_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageReadError) as ei:
        Database(str(db_path))
    assert ei.value.path == str(db_path)
    assert isinstance(ei.value.__cause__, ValueError)

@pytest.mark.parametrize("content", ['[]', '{"users": {}}', '{"users": [1, 2]}'])
def test_wrong_document_shape(tmp_path, content):
    db_path = tmp_path / "bad.json"
    db_path.write_text(content, encoding="utf-8")
    with pytest.raises(StorageReadError):
        Database(str(db_path))
    with pytest.raises(StorageReadError):
        Database(str(db_path), cache={"interval": 1000})

def test_read_error_surfaces_on_operation(tmp_path):
    db_path = tmp_path / "db.json"
    db = Database(str(db_path))
    db.create("users")
    db_path.write_text("garbage", encoding="utf-8")
    with pytest.raises(StorageReadError):
        db.find("users")

def test_write_error(tmp_path):
    fs = FileStorage(str(tmp_path / "missing_dir" / "db.json"))
    with pytest.raises(StorageWriteError) as ei:
        fs.store({"t": []})
    assert isinstance(ei.value.__cause__, OSError)
    with pytest.raises(StorageReadError):
        fs.load()

def test_store_leaves_no_temp_files(tmp_path):
    fs = FileStorage(str(tmp_path / "db.json"))
    fs.store({"t": [{"a": 1}]}, 2)
    fs.store({"t": []})
    assert sorted(p.name for p in tmp_path.iterdir()) == ["db.json"]
    assert fs.load() == {"t": []}

def test_insert_rejects_non_mapping(tmp_path):
    db = Database(str(tmp_path / "db.json"))
    db.create("t")
    with pytest.raises(ValidationError):
        db.insert("t", {"a": 1}, ["not", "a", "record"])
    assert db.size("t") == 0

def test_closed_database(tmp_path):
    with Database(str(tmp_path / "db.json")) as db:
        db.create("t")
    assert db.closed
    db.close()
    with pytest.raises(DBError):
        db.find("t")
    with pytest.raises(DBError):
        db.create("u")

def test_predicate_error_propagates_without_partial_update(tmp_path):
    db = Database(str(tmp_path / "db.json"), cache={"interval": 60_000})
    db.create("t")
    db.insert("t", {"a": 1}, {"a": "x"})

    with pytest.raises(TypeError):
        db.update("t", {"a": lambda v: v + 1 > 0}, {"b": True})
    assert all("b" not in r for r in db.find("t"))
    db.close()

def test_non_json_values_rejected_without_cache(tmp_path):
    db_path = tmp_path / "db.json"
    db = Database(str(db_path))
    db.create("t")
    with pytest.raises(ValidationError):
        db.insert("t", {"when": datetime.date(2024, 1, 1)})
    with pytest.raises(ValidationError):
        db.insert("t", {"m": {"a": {2: "b"}}})
    with pytest.raises(ValidationError):
        db.insert("t", {1: "numeric field name"})
    with pytest.raises(ValidationError):
        db.update("t", None, {"x": float("inf")})
    assert db.size("t") == 0

def test_update_rejects_non_mapping_patch(tmp_path):
    db = Database(str(tmp_path / "db.json"))
    db.create("t")
    db.insert("t", {"a": 1})
    with pytest.raises(ValidationError):
        db.update("t", None, [("a", 2)])
    assert db.find_first("t")["a"] == 1

def test_store_keeps_file_permissions(tmp_path):
    db_path = tmp_path / "db.json"
    db_path.write_text("{}", encoding="utf-8")
    os.chmod(db_path, 0o644)
    db = Database(str(db_path))
    db.create("t")
    assert stat.S_IMODE(os.stat(db_path).st_mode) == 0o644

def test_library_is_quiet_by_default(tmp_path, capsys):
    db = Database(str(tmp_path / "db.json"), cache={"interval": 60_000})
    db.create("t")
    db.insert("t", {"a": 1})
    db.close()
    out, err = capsys.readouterr()
    assert out == ""
    assert err == ""
