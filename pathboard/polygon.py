"""Polygon geometry: containment, triangulation, line blocking and offsetting.

The central question this module answers for ``board.py``: "does this
obstacle block the straight segment between two points?" Every visibility
test on a Board ends up in ``Polygon.does_intersect_line``, which works in
four stages:

  * **Boundary crossing** — any polygon edge properly crossing the segment
    blocks it. Shared endpoints do not count, so a segment may start or end
    on one of the obstacle's own corners.
  * **Corner to corner** — a segment joining two of the polygon's own
    vertices without crossing an edge is treated as not blocked (it runs
    along the outside of a concavity, or along an edge).
  * **Internal diagonals** — when the corner-to-corner shortcut is disabled,
    a segment lying exactly on one of the triangulation's internal
    diagonals is blocked.
  * **Interior** — otherwise the segment is blocked if it sits inside one
    of the ear-clipping triangles without crossing that triangle's edges,
    or if any stretch of it between the polygon vertices it touches has its
    midpoint strictly inside the polygon. The second check catches segments
    that cross internal diagonals, which no single triangle reports.

The polygon types form a closed set: ``Triangle`` and ``Polygon`` both
derive from ``SimplePolygon``, which owns the vertex ring and the derived
values shared by both (edges, perimeter, centroid, containment).

Derived values are computed on first access and cached for the life of the
object; polygons are immutable after construction.

Also provides ``Polygon.expanded``, which offsets every edge by a fixed
perpendicular distance and re-intersects neighbouring edges. Boards use it
to grow obstacles by a robot's radius so the robot can then be treated as a
point.
"""

from __future__ import annotations

import collections
import itertools
import logging
import math
from functools import cached_property
from typing import Iterable

import numpy as np
from shapely.geometry import LinearRing
from shapely.geometry import Polygon as ShapelyPolygon

from . import tolerance
from .errors import InvalidPolygonError, ParallelLinesError, TriangulationError
from .types import Point, Segment

logger = logging.getLogger(__name__)


def _clean_nodes(points: Iterable[Point | tuple[float, float]]) -> tuple[Point, ...]:
    """Coerce input points, collapsing repeats and an explicit closing vertex."""
    nodes: list[Point] = []
    for p in points:
        point = Point.coerce(p)
        if nodes and nodes[-1].isclose(point):
            continue
        nodes.append(point)
    while len(nodes) > 1 and nodes[0].isclose(nodes[-1]):
        nodes.pop()
    if len(nodes) < 3:
        raise InvalidPolygonError(
            f"a polygon needs at least 3 distinct vertices, got {len(nodes)}"
        )
    return tuple(nodes)


def _ring_is_ccw(nodes: tuple[Point, ...]) -> bool:
    return LinearRing([(p.x, p.y) for p in nodes]).is_ccw


def _ccw_grid(
    px: np.ndarray,
    py: np.ndarray,
    qx: np.ndarray,
    qy: np.ndarray,
    rx: np.ndarray,
    ry: np.ndarray,
) -> np.ndarray:
    return (ry - py) * (qx - px) > (qy - py) * (rx - px)


def _edge_array(edges: tuple[Segment, ...]) -> np.ndarray:
    arr = np.empty((len(edges), 4), dtype=np.float64)
    for i, e in enumerate(edges):
        arr[i] = (e.a.x, e.a.y, e.b.x, e.b.y)
    return arr


class SimplePolygon:
    """An ordered ring of at least three vertices.

    If the last input point repeats the first, the duplicate is dropped.
    Raises InvalidPolygonError when fewer than 3 distinct vertices remain.
    """

    def __init__(self, points: Iterable[Point | tuple[float, float]]) -> None:
        self._nodes = self._orient(_clean_nodes(points))

    @staticmethod
    def _orient(nodes: tuple[Point, ...]) -> tuple[Point, ...]:
        return nodes

    @property
    def nodes(self) -> tuple[Point, ...]:
        return self._nodes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SimplePolygon):
            return NotImplemented
        return type(self) is type(other) and self._nodes == other._nodes

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._nodes))

    def __repr__(self) -> str:
        verts = ", ".join(f"({p.x:g}, {p.y:g})" for p in self._nodes)
        return f"{type(self).__name__}([{verts}])"

    @cached_property
    def _node_set(self) -> frozenset[Point]:
        return frozenset(self._nodes)

    def has_node(self, point: Point) -> bool:
        return point in self._node_set

    @cached_property
    def edges(self) -> tuple[Segment, ...]:
        n = len(self._nodes)
        return tuple(
            Segment(self._nodes[i], self._nodes[(i + 1) % n]) for i in range(n)
        )

    @cached_property
    def perimeter(self) -> float:
        return sum(e.length for e in self.edges)

    @cached_property
    def centroid(self) -> Point:
        """Mean of the vertices (not the area-weighted centroid)."""
        n = len(self._nodes)
        return Point(
            sum(p.x for p in self._nodes) / n,
            sum(p.y for p in self._nodes) / n,
        )

    @cached_property
    def area(self) -> float:
        return self.to_shapely().area

    @cached_property
    def bounds(self) -> tuple[float, float, float, float]:
        xs = [p.x for p in self._nodes]
        ys = [p.y for p in self._nodes]
        return min(xs), min(ys), max(xs), max(ys)

    def to_shapely(self) -> ShapelyPolygon:
        return ShapelyPolygon([(p.x, p.y) for p in self._nodes])

    def contains_point_in_area(self, p: Point | tuple[float, float]) -> bool:
        """Ray-casting point-in-polygon test (ray cast towards +x).

        Points on the boundary, vertices included, count as contained.
        Non-horizontal edges are half-open: upward edges include their start
        and exclude their end, downward edges the reverse, so a ray passing
        exactly through a vertex is counted once.
        """
        p = Point.coerce(p)
        nodes = self._nodes
        n = len(nodes)
        inside = False
        for i in range(1, n + 1):
            p1 = nodes[i % n]
            p2 = nodes[i - 1]
            if p1.x < p.x and p2.x < p.x:
                # Edge is entirely left of p; the ray can't reach it
                continue
            if p2.isclose(p):
                return True
            if tolerance.is_equal(p1.y, p.y) and tolerance.is_equal(p2.y, p.y):
                # Horizontal edge level with p
                if min(p1.x, p2.x) <= p.x <= max(p1.x, p2.x):
                    return True
                continue
            if (p1.y > p.y and p2.y <= p.y) or (p2.y > p.y and p1.y <= p.y):
                det = (p1.x - p.x) * (p2.y - p.y) - (p1.y - p.y) * (p2.x - p.x)
                if tolerance.is_zero(det):
                    return True
                if p2.y < p1.y:
                    det = -det
                if det > 0:
                    inside = not inside
        return inside

    def does_intersect_polygon(self, other: SimplePolygon) -> bool:
        """True if any edge of self crosses any edge of other.

        Shared vertices count as crossings. Containment without any edge
        crossing does not.
        """
        a_min_x, a_min_y, a_max_x, a_max_y = self.bounds
        b_min_x, b_min_y, b_max_x, b_max_y = other.bounds
        if (
            a_max_x < b_min_x
            or b_max_x < a_min_x
            or a_max_y < b_min_y
            or b_max_y < a_min_y
        ):
            return False

        # Broadcast: (E_a, 1) vs (1, E_b) -> orientation tests over all pairs
        edges_a = _edge_array(self.edges)
        edges_b = _edge_array(other.edges)
        ax1 = edges_a[:, 0:1]
        ay1 = edges_a[:, 1:2]
        ax2 = edges_a[:, 2:3]
        ay2 = edges_a[:, 3:4]
        bx1 = edges_b[:, 0:1].T
        by1 = edges_b[:, 1:2].T
        bx2 = edges_b[:, 2:3].T
        by2 = edges_b[:, 3:4].T

        cross = (ax2 - ax1) * (by2 - by1) - (ay2 - ay1) * (bx2 - bx1)
        non_parallel = np.abs(cross) >= tolerance.EPSILON
        hits = (
            non_parallel
            & (
                _ccw_grid(ax1, ay1, bx1, by1, bx2, by2)
                != _ccw_grid(ax2, ay2, bx1, by1, bx2, by2)
            )
            & (
                _ccw_grid(ax1, ay1, ax2, ay2, bx1, by1)
                != _ccw_grid(ax1, ay1, ax2, ay2, bx2, by2)
            )
        )
        return bool(np.any(hits))

    def does_intersect_line(self, segment: Segment) -> bool:
        """Does this shape block the given segment?"""
        raise NotImplementedError(
            f"{type(self).__name__} does not define line blocking"
        )


class Triangle(SimplePolygon):
    """Three vertices, kept in the order given."""

    def __init__(
        self,
        a: Point | tuple[float, float],
        b: Point | tuple[float, float],
        c: Point | tuple[float, float],
    ) -> None:
        super().__init__((a, b, c))

    @cached_property
    def signed_area(self) -> float:
        """Shoelace area over the stored order; positive when CCW."""
        p, q, r = self._nodes
        return 0.5 * ((q.x - p.x) * (r.y - p.y) - (r.x - p.x) * (q.y - p.y))

    @cached_property
    def area(self) -> float:
        return abs(self.signed_area)

    @property
    def is_ccw(self) -> bool:
        # Collinear (zero-area) triangles count as CCW
        return self.signed_area >= 0

    def does_intersect_line(self, segment: Segment) -> bool:
        """True if the segment lies inside this triangle without crossing it.

        Note the polarity: a segment that crosses or touches any of the
        three edges gives False. Only a segment that stays clear of every
        edge and has its midpoint inside the triangle gives True.
        """
        for edge in self.edges:
            if edge.intersects(segment):
                return False
        return self.contains_point_in_area(segment.midpoint)


class Polygon(SimplePolygon):
    """A simple polygon obstacle, stored counter-clockwise.

    Clockwise input is reversed on construction. The polygon may be
    concave but must not self-intersect.
    """

    @staticmethod
    def _orient(nodes: tuple[Point, ...]) -> tuple[Point, ...]:
        if _ring_is_ccw(nodes):
            return nodes
        return nodes[::-1]

    @cached_property
    def triangles(self) -> tuple[Triangle, ...]:
        """Ear-clipping triangulation; n-2 triangles for an n-gon.

        Candidate (w[0], w[1], w[2]) of the working ring is an ear when it
        is CCW, the midpoint of w[0]-w[2] lies inside the polygon, and no
        other remaining vertex lies inside the candidate. Ears are emitted
        and w[1] dropped; otherwise the ring rotates by one.
        """
        work = collections.deque(self._nodes)
        result: list[Triangle] = []
        misses = 0
        while len(work) >= 3:
            t = Triangle(work[0], work[1], work[2])
            is_ear = (
                t.is_ccw
                and self.contains_point_in_area(
                    Segment(work[0], work[2]).midpoint
                )
                and not any(
                    t.contains_point_in_area(p)
                    for p in itertools.islice(work, 3, None)
                )
            )
            if is_ear:
                result.append(t)
                del work[1]
                misses = 0
            else:
                work.rotate(-1)
                misses += 1
                if misses > len(work):
                    raise TriangulationError(
                        f"no ear found among {len(work)} remaining vertices "
                        f"of {self!r}"
                    )
        logger.debug(
            "triangulated %d-gon into %d triangles",
            len(self._nodes),
            len(result),
        )
        return tuple(result)

    @cached_property
    def diagonal_edges(self) -> frozenset[Segment]:
        """Triangulation edges that are not boundary edges.

        Stored undirected (see ``Segment.normalized``).
        """
        boundary = {e.normalized() for e in self.edges}
        return frozenset(
            edge.normalized()
            for t in self.triangles
            for edge in t.edges
            if edge.normalized() not in boundary
        )

    def _bounds_miss(self, segment: Segment) -> bool:
        min_x, min_y, max_x, max_y = self.bounds
        eps = tolerance.EPSILON
        return (
            max(segment.a.x, segment.b.x) < min_x - eps
            or min(segment.a.x, segment.b.x) > max_x + eps
            or max(segment.a.y, segment.b.y) < min_y - eps
            or min(segment.a.y, segment.b.y) > max_y + eps
        )

    def does_intersect_line(
        self, segment: Segment, force_colinearity_test: bool = False
    ) -> bool:
        """True if this obstacle blocks the segment.

        With ``force_colinearity_test`` set, segments joining two of the
        polygon's own vertices are not waved through; they are checked
        against the internal diagonals and triangles like any other.
        """
        if self._bounds_miss(segment):
            return False

        for edge in self.edges:
            if edge.intersects(segment, endpoints=False):
                return True

        if (
            not force_colinearity_test
            and self.has_node(segment.a)
            and self.has_node(segment.b)
        ):
            return False

        if segment.normalized() in self.diagonal_edges:
            return True

        if any(t.does_intersect_line(segment) for t in self.triangles):
            return True
        return self._runs_through_interior(segment)

    def on_boundary(self, p: Point) -> bool:
        return any(_point_on_segment(p, e) for e in self.edges)

    def _runs_through_interior(self, segment: Segment) -> bool:
        """True if part of the segment lies strictly inside the polygon.

        Only valid once no boundary edge properly crosses the segment. The
        segment then changes between inside and outside only at polygon
        vertices lying on it, so each stretch between those vertices is
        tested once at its midpoint.
        """
        if tolerance.is_zero(segment.length):
            return False
        stops = [0.0, 1.0]
        for node in self._nodes:
            if _point_on_segment(node, segment):
                stops.append(min(1.0, max(0.0, _project(node, segment))))
        stops.sort()
        for t0, t1 in zip(stops, stops[1:]):
            if tolerance.is_equal(t0, t1):
                continue
            t = (t0 + t1) * 0.5
            mid = Point(
                segment.a.x + t * segment.dx, segment.a.y + t * segment.dy
            )
            if self.contains_point_in_area(mid) and not self.on_boundary(mid):
                return True
        return False

    def expanded(self, outset: float) -> Polygon:
        """Offset every edge by ``outset`` (outward if > 0, inward if < 0).

        Each edge contributes an anchor point, its midpoint pushed along the
        perpendicular, and its own slope. Consecutive anchor/slope lines are
        intersected as infinite lines to give the new vertices.

        Raises ParallelLinesError when two neighbouring edges have the same
        slope, and InvalidPolygonError when an inward offset collapses the
        shape.
        """
        anchors: list[Point] = []
        slopes: list[float] = []
        for edge in self.edges:
            # For a CCW ring the outward normal points towards +x exactly when
            # the edge travels upwards; the perpendicular from ``from_slope``
            # always has a non-negative x component.
            if tolerance.is_greater_than(edge.dy, 0.0):
                distance = outset
            else:
                distance = -outset
            perp = Segment.from_slope(
                edge.midpoint, edge.perpendicular_slope, distance
            )
            anchors.append(perp.b)
            slopes.append(edge.slope)

        n = len(anchors)
        nodes = [
            _line_intersection(
                anchors[i], slopes[i], anchors[(i + 1) % n], slopes[(i + 1) % n]
            )
            for i in range(n)
        ]
        return Polygon(nodes)


def _line_intersection(pa: Point, sa: float, pb: Point, sb: float) -> Point:
    """Intersect the infinite lines through pa (slope sa) and pb (slope sb)."""
    a_vertical = math.isinf(sa)
    b_vertical = math.isinf(sb)
    if (a_vertical and b_vertical) or (
        not a_vertical and not b_vertical and tolerance.is_equal(sa, sb)
    ):
        raise ParallelLinesError(
            f"lines through {pa} and {pb} are parallel (slope {sa})"
        )
    if a_vertical:
        return _vertical_intersection(pa, pb, sb)
    if b_vertical:
        return _vertical_intersection(pb, pa, sa)
    ba = pa.y - pa.x * sa
    bb = pb.y - pb.x * sb
    x = (bb - ba) / (sa - sb)
    return Point(x, sa * x + ba)


def _vertical_intersection(on_vertical: Point, p: Point, slope: float) -> Point:
    return Point(on_vertical.x, (on_vertical.x - p.x) * slope + p.y)


def _project(p: Point, segment: Segment) -> float:
    """Position of p's projection along segment; 0 at a, 1 at b."""
    return (
        (p.x - segment.a.x) * segment.dx + (p.y - segment.a.y) * segment.dy
    ) / (segment.length**2)


def _point_on_segment(p: Point, segment: Segment) -> bool:
    """True if p lies on the segment, endpoints included."""
    length = segment.length
    if tolerance.is_zero(length):
        return p.isclose(segment.a)
    cross = (p.x - segment.a.x) * segment.dy - (p.y - segment.a.y) * segment.dx
    if not tolerance.is_zero(cross / length):
        return False
    t = _project(p, segment)
    return tolerance.is_greater_or_equal(t, 0.0) and tolerance.is_less_or_equal(
        t, 1.0
    )
