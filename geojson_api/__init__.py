"""HTTP service that validates, stores and serves GeoJSON documents."""

__version__ = "1.0.0"
