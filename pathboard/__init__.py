"""Line of sight and shortest paths around polygonal obstacles on a 2-D board."""

from .board import Board, mesh_storage_policy, path_length
from .errors import (
    GeometryError,
    InvalidPolygonError,
    ParallelLinesError,
    TriangulationError,
)
from .polygon import Polygon, SimplePolygon, Triangle
from .types import BoardParams, Point, Segment

__all__ = [
    "Board",
    "BoardParams",
    "GeometryError",
    "InvalidPolygonError",
    "ParallelLinesError",
    "Point",
    "Polygon",
    "Segment",
    "SimplePolygon",
    "Triangle",
    "TriangulationError",
    "mesh_storage_policy",
    "path_length",
]
