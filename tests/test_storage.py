import json
import uuid
from datetime import timezone

import pytest

from geojson_api import storage
from geojson_api.errors import NotFoundError, StorageError
from geojson_api.storage import FileStore, is_valid_identifier


@pytest.fixture
def store(storage_dir):
    return FileStore(storage_dir)


def test_creates_root(tmp_path):
    root = tmp_path / "a" / "b"
    FileStore(root)
    assert root.is_dir()


def test_round_trip(store, feature_collection):
    stored = store.put(feature_collection)
    record = store.get(stored.identifier)

    assert json.loads(record.content) == feature_collection
    assert record.size == stored.size == len(record.content)
    assert record.modified.tzinfo == timezone.utc


def test_writes_pretty_json_named_by_identifier(store, point_feature):
    stored = store.put(point_feature)
    path = store.root / f"{stored.identifier}.geojson"

    assert path.read_bytes().startswith(b'{\n  "type": "Feature"')
    assert [p.name for p in store.root.iterdir()] == [path.name]


def test_keeps_non_ascii_text(store):
    document = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [-74.08, 4.6]},
        "properties": {"name": "Bogotá"},
    }
    stored = store.put(document)
    assert "Bogotá".encode("utf-8") in store.get(stored.identifier).content


def test_identifiers_are_unique(store, point_feature):
    identifiers = {store.put(point_feature).identifier for _ in range(20)}
    assert len(identifiers) == 20
    assert all(is_valid_identifier(identifier) for identifier in identifiers)


def test_get_unknown_identifier(store):
    with pytest.raises(NotFoundError):
        store.get(str(uuid.uuid4()))


@pytest.mark.parametrize(
    "identifier",
    [
        "../secret",
        "..",
        "",
        "not-an-id",
        str(uuid.uuid4()).upper(),
        str(uuid.uuid1()),
        "{%s}" % uuid.uuid4(),
        str(uuid.uuid4()).replace("-", ""),
    ],
)
def test_rejects_malformed_identifiers(store, identifier):
    with pytest.raises(NotFoundError):
        store.get(identifier)


def test_path_traversal_never_reads_outside_root(store, tmp_path):
    (tmp_path / "secret.geojson").write_text('{"type": "FeatureCollection", "features": []}')
    with pytest.raises(NotFoundError):
        store.get("../secret")


def test_failed_rename_leaves_nothing_behind(store, point_feature, monkeypatch):
    def broken_replace(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(storage.os, "replace", broken_replace)
    with pytest.raises(StorageError):
        store.put(point_feature)
    assert list(store.root.iterdir()) == []


def test_unserializable_document(store):
    document = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [float("nan"), 0]}}
    with pytest.raises(StorageError):
        store.put(document)
    assert list(store.root.iterdir()) == []


def test_storage_error_hides_detail():
    error = StorageError("Failed to write /var/data/x: permission denied")
    assert error.status_code == 500
    assert error.to_body() == {"error": "Internal error"}


def test_stream_reads_in_chunks(store):
    document = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [0, 0]},
        "properties": {"blob": "x" * (storage.CHUNK_SIZE * 2)},
    }
    stored = store.put(document)
    stream = store.stream(stored.identifier)

    chunks = list(stream.chunks)
    assert len(chunks) == 3
    assert stream.size == stored.size == sum(len(chunk) for chunk in chunks)
    assert json.loads(b"".join(chunks)) == document
    assert stream.modified.tzinfo == timezone.utc


@pytest.mark.parametrize("identifier", ["../secret", str(uuid.uuid4())])
def test_stream_missing_or_malformed(store, identifier):
    with pytest.raises(NotFoundError):
        store.stream(identifier)
