# geojson_api/schemas.py

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

GeometryType = Literal[
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
    "GeometryCollection",
]


class GeoJSONGeometry(BaseModel):
    # Coordinates are accepted as-is; only the geometry kind is checked
    model_config = ConfigDict(extra="allow")

    type: GeometryType
    coordinates: Any = None


class GeoJSONFeature(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["Feature"]
    geometry: GeoJSONGeometry
    properties: Dict[str, Any] = Field(default_factory=dict)

    @property
    def feature_count(self) -> int:
        return 1


class GeoJSONFeatureCollection(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["FeatureCollection"]
    features: List[GeoJSONFeature]

    @property
    def feature_count(self) -> int:
        return len(self.features)


GeoJSONDocument = Annotated[
    Union[GeoJSONFeature, GeoJSONFeatureCollection],
    Field(discriminator="type"),
]

_document_adapter = TypeAdapter(GeoJSONDocument)


DOCUMENT_TYPE_MESSAGE = "type must be 'Feature' or 'FeatureCollection'"

# Document-level errors get a fixed text; pydantic's own can quote the offending value
_FIXED_MESSAGES = {
    "union_tag_invalid": DOCUMENT_TYPE_MESSAGE,
    "union_tag_not_found": DOCUMENT_TYPE_MESSAGE,
    "model_attributes_type": "document must be a JSON object",
}


def _issue_path(loc, tag) -> List[Union[str, int]]:
    """Strip the union tag pydantic prepends so paths start at the document root."""
    path = list(loc)
    if path and tag is not None and path[0] == tag:
        path = path[1:]
    return path


def validate_document(value: Any) -> Union[GeoJSONFeature, GeoJSONFeatureCollection]:
    """Narrow a decoded JSON value to a Feature or FeatureCollection.

    Raises ValidationError listing every violation as {"path", "message"}.
    """
    try:
        return _document_adapter.validate_python(value)
    except PydanticValidationError as exc:
        tag = value.get("type") if isinstance(value, dict) else None
        details = [
            {"path": _issue_path(err["loc"], tag), "message": _FIXED_MESSAGES.get(err["type"], err["msg"])}
            for err in exc.errors(include_url=False, include_input=False)
        ]
        raise ValidationError(details) from None


class UploadResponse(BaseModel):
    id: str
    url: str
    bytes: int


class HealthResponse(BaseModel):
    ok: bool = True
