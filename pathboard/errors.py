"""Exceptions raised by the geometry and board modules."""

from __future__ import annotations


class GeometryError(Exception):
    """Base class for geometry failures."""


class InvalidPolygonError(GeometryError, ValueError):
    """Vertex input cannot form the requested polygon."""


class TriangulationError(GeometryError):
    """Ear clipping ran a full rotation without finding an ear.

    Only happens for self-intersecting or otherwise non-simple input.
    """


class ParallelLinesError(GeometryError, ArithmeticError):
    """Two adjacent offset edges are parallel and cannot be intersected.

    Raised by ``Polygon.expanded``; callers can skip offsetting that
    obstacle instead of failing outright.
    """
