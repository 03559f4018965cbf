import pytest
from fastapi.testclient import TestClient

from geojson_api.config import Settings
from geojson_api.main import create_app


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def settings(storage_dir):
    return Settings(STORAGE_DIR=storage_dir, MAX_UPLOAD_BYTES=4096, CACHE_MAX_AGE=300)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def point_feature():
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [-79.38, 43.65]},
        "properties": {"name": "Toronto", "population": 2794356},
    }


@pytest.fixture
def feature_collection(point_feature):
    return {
        "type": "FeatureCollection",
        "features": [
            point_feature,
            {
                "type": "Feature",
                "geometry": {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
            },
        ],
    }
