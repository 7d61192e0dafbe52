"""Line of sight and shortest paths around fixed polygonal obstacles.

A Board is a mutable set of ``Polygon`` obstacles. It answers two questions:

  * ``is_visible(a, b)`` — can a point at ``a`` see ``b`` without the
    straight segment between them being blocked by any obstacle?
  * ``shortest_path(a, b)`` — the shortest sequence of points to travel from
    ``a`` to ``b`` without passing through an obstacle. Optimal paths bend
    only at obstacle corners, so the search runs over the board's vertices
    plus the destination.

Points are treated as infinitely small. To plan for a robot of radius r,
plan on ``board.expanded(r)`` instead.

Visibility results are cached in a navigation mesh split in two tiers:

  owned mesh    One adjacency map per obstacle vertex ("owned" node), built
                empty when the board's caches are rebuilt. Holds results
                where both endpoints are owned. Lives until the next
                mutation.

  unowned mesh  Adjacency maps for any other point that has been queried
                (path endpoints, probe points). A bounded LRU
                (``BoardParams.unowned_cache_size``); evicting from it only
                costs recomputation.

When an owned and an unowned node meet, the result is stored only on the
unowned side (see ``mesh_storage_policy``), so the long-lived owned mesh
never fills up with pairs involving throwaway query points.

Every mutation (add/remove/retain/clear) drops all derived state: edges,
nodes and both meshes. There is no incremental update; the next read
rebuilds everything lazily.
"""

from __future__ import annotations

import collections
import logging
from typing import Iterable, NamedTuple

from .errors import InvalidPolygonError, ParallelLinesError
from .polygon import Polygon
from .types import BoardParams, Point, Segment

logger = logging.getLogger(__name__)

_Adjacency = dict[Point, bool]
_PolygonLike = Polygon | Iterable[Point | tuple[float, float]]


def mesh_storage_policy(a_owned: bool, b_owned: bool) -> tuple[bool, bool]:
    """Which adjacency maps receive a freshly computed visibility result.

    Returns (store in a's map, store in b's map). Both owned or neither
    owned stores on both sides; otherwise only the unowned side stores.
    """
    return (not a_owned or b_owned, not b_owned or a_owned)


class _UnownedMesh:
    """LRU map from query point to its adjacency map."""

    def __init__(self, capacity: int | None) -> None:
        self._capacity = capacity
        self._entries: collections.OrderedDict[Point, _Adjacency] = (
            collections.OrderedDict()
        )

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, point: Point) -> _Adjacency | None:
        return self._entries.get(point)

    def get(self, point: Point) -> _Adjacency | None:
        entry = self._entries.get(point)
        if entry is not None:
            self._entries.move_to_end(point)
        return entry

    def create(self, point: Point) -> _Adjacency:
        entry: _Adjacency = {}
        self._entries[point] = entry
        if self._capacity is not None:
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("evicted %s from unowned mesh", evicted)
        return entry


class _PathRecord(NamedTuple):
    via: Point | None
    cost: float
    settled: bool


def path_length(start: Point, path: Iterable[Point]) -> float:
    """Total Euclidean length of travelling from start through path."""
    total = 0.0
    prev = Point.coerce(start)
    for p in path:
        p = Point.coerce(p)
        total += prev.distance(p)
        prev = p
    return total


def _as_polygon(p: _PolygonLike) -> Polygon:
    if isinstance(p, Polygon):
        return p
    return Polygon(p)


class Board:
    """A set of immovable polygon obstacles with cached visibility.

    Not safe for concurrent mutation; guard with a lock if shared between
    threads.
    """

    def __init__(
        self,
        polygons: Iterable[_PolygonLike] = (),
        params: BoardParams | None = None,
    ) -> None:
        self._params = params if params is not None else BoardParams()
        self._polygons: set[Polygon] = {_as_polygon(p) for p in polygons}
        self._mark_dirty()

    def __repr__(self) -> str:
        return f"Board({sorted(self._polygons, key=repr)!r})"

    @property
    def params(self) -> BoardParams:
        return self._params

    # -- Derived state --

    def _mark_dirty(self) -> None:
        self._edges: frozenset[Segment] | None = None
        self._nodes: frozenset[Point] | None = None
        self._owned_mesh: dict[Point, _Adjacency] | None = None
        self._unowned_mesh: _UnownedMesh | None = None

    @property
    def polygons(self) -> frozenset[Polygon]:
        return frozenset(self._polygons)

    @property
    def edges(self) -> frozenset[Segment]:
        """Every edge of every obstacle."""
        if self._edges is None:
            self._edges = frozenset(
                edge for polygon in self._polygons for edge in polygon.edges
            )
        return self._edges

    @property
    def nodes(self) -> frozenset[Point]:
        """Every vertex of every obstacle (the owned nodes)."""
        if self._nodes is None:
            self._nodes = frozenset(
                node for polygon in self._polygons for node in polygon.nodes
            )
        return self._nodes

    def _get_owned_mesh(self) -> dict[Point, _Adjacency]:
        if self._owned_mesh is None:
            mesh: dict[Point, _Adjacency] = {node: {} for node in self.nodes}
            logger.debug(
                "rebuilt owned mesh: %d nodes from %d polygons",
                len(mesh),
                len(self._polygons),
            )
            self._owned_mesh = mesh
        return self._owned_mesh

    def _get_unowned_mesh(self) -> _UnownedMesh:
        if self._unowned_mesh is None:
            self._unowned_mesh = _UnownedMesh(self._params.unowned_cache_size)
        return self._unowned_mesh

    def _mesh_entry(self, point: Point) -> _Adjacency:
        """Adjacency map for point: owned mesh, then unowned, else a new
        unowned entry."""
        entry = self._get_owned_mesh().get(point)
        if entry is None:
            unowned = self._get_unowned_mesh()
            entry = unowned.get(point)
            if entry is None:
                entry = unowned.create(point)
        return entry

    def clear_unowned_cache(self) -> None:
        """Forget visibility results involving non-obstacle points."""
        self._unowned_mesh = None

    def is_owned(self, point: Point | tuple[float, float]) -> bool:
        return Point.coerce(point) in self.nodes

    # -- Visibility --

    def _line_of_sight(self, a: Point, b: Point) -> bool:
        # Canonical direction keeps a/b and b/a answers identical after
        # cache eviction.
        segment = Segment(a, b).normalized()
        for polygon in self._polygons:
            if polygon.does_intersect_line(segment):
                return False
        return True

    def is_visible(
        self,
        a: Point | tuple[float, float],
        b: Point | tuple[float, float],
    ) -> bool:
        """True if nothing on the board blocks the segment a-b.

        A point is always visible to itself. A segment joining two vertices
        of the same obstacle is visible whenever it crosses none of that
        obstacle's edges, even if it runs through the obstacle's interior
        (a square's diagonal, for instance). Paths may therefore cut across
        an obstacle from corner to corner; ``Polygon.does_intersect_line``
        with ``force_colinearity_test=True`` is the stricter test.
        """
        a = Point.coerce(a)
        b = Point.coerce(b)
        if a.isclose(b):
            return True

        a_mesh = self._mesh_entry(a)
        b_mesh = self._mesh_entry(b)
        if b in a_mesh:
            return a_mesh[b]
        if a in b_mesh:
            return b_mesh[a]

        result = self._line_of_sight(a, b)

        store_a, store_b = mesh_storage_policy(
            self.is_owned(a), self.is_owned(b)
        )
        if store_a:
            a_mesh[b] = result
        if store_b:
            b_mesh[a] = result
        return result

    def cached_visibility(
        self,
        a: Point | tuple[float, float],
        b: Point | tuple[float, float],
    ) -> bool | None:
        """Cached answer for a-b, or None if it would need computing.

        Never computes or creates cache entries.
        """
        a = Point.coerce(a)
        b = Point.coerce(b)
        for src, dst in ((a, b), (b, a)):
            entry = None
            if self._owned_mesh is not None:
                entry = self._owned_mesh.get(src)
            if entry is None and self._unowned_mesh is not None:
                entry = self._unowned_mesh.peek(src)
            if entry is not None and dst in entry:
                return entry[dst]
        return None

    def visible_in(
        self,
        pov: Point | tuple[float, float],
        candidates: Iterable[Point | tuple[float, float]],
    ) -> set[Point]:
        """The candidates visible from pov."""
        pov = Point.coerce(pov)
        visible: set[Point] = set()
        for c in candidates:
            c = Point.coerce(c)
            if self.is_visible(pov, c):
                visible.add(c)
        return visible

    def visible_from(
        self,
        pov: Point | tuple[float, float],
        *extras: Point | tuple[float, float],
    ) -> set[Point]:
        """Board nodes visible from pov, plus any visible extras.

        Unlike ``cached_visibility`` this computes whatever is missing.
        """
        visible = self.visible_in(pov, extras)
        visible |= self.visible_in(pov, self.nodes)
        return visible

    # -- Path finding --

    def shortest_path(
        self,
        a: Point | tuple[float, float],
        b: Point | tuple[float, float],
    ) -> list[Point] | None:
        """Points to travel through from a to b, excluding a, including b.

        Returns None when no chain of mutually visible points connects a
        to b. Dijkstra over the board nodes plus b: each round relaxes the
        unsettled nodes visible from the current frontier, then settles the
        cheapest unsettled node and makes it the new frontier.
        """
        a = Point.coerce(a)
        b = Point.coerce(b)
        if self.is_visible(a, b):
            return [b]

        records: dict[Point, _PathRecord | None] = {
            node: None for node in self.nodes
        }
        records[b] = None
        if a in records:
            records[a] = _PathRecord(via=None, cost=0.0, settled=True)

        frontier = a
        frontier_cost = 0.0
        rounds = 0
        while True:
            rounds += 1
            for node, record in list(records.items()):
                if record is not None and record.settled:
                    continue
                if not self.is_visible(frontier, node):
                    continue
                cost = frontier_cost + frontier.distance(node)
                if record is None or cost < record.cost:
                    records[node] = _PathRecord(
                        via=frontier, cost=cost, settled=False
                    )

            best: Point | None = None
            best_cost = float("inf")
            for node, record in records.items():
                if record is None or record.settled:
                    continue
                if record.cost < best_cost:
                    best = node
                    best_cost = record.cost

            if best is None:
                logger.debug(
                    "no path from %s to %s after %d rounds", a, b, rounds
                )
                return None

            records[best] = records[best]._replace(settled=True)
            if best == b:
                path = self._trace_path(records, a, b)
                logger.debug(
                    "path from %s to %s: %d hops, cost %.6g, %d rounds",
                    a,
                    b,
                    len(path),
                    best_cost,
                    rounds,
                )
                return path

            frontier = best
            frontier_cost = best_cost

    @staticmethod
    def _trace_path(
        records: dict[Point, _PathRecord | None], a: Point, b: Point
    ) -> list[Point]:
        path: list[Point] = []
        node: Point | None = b
        while node != a:
            path.append(node)
            node = records[node].via
        path.reverse()
        return path

    # -- Obstacle set --

    def add(self, polygon: _PolygonLike) -> bool:
        """Add an obstacle; returns True if the board changed."""
        self._mark_dirty()
        polygon = _as_polygon(polygon)
        if polygon in self._polygons:
            return False
        self._polygons.add(polygon)
        return True

    def add_all(self, polygons: Iterable[_PolygonLike]) -> bool:
        self._mark_dirty()
        before = len(self._polygons)
        self._polygons.update(_as_polygon(p) for p in polygons)
        return len(self._polygons) != before

    def remove(self, polygon: _PolygonLike) -> bool:
        """Remove an obstacle; returns True if it was present."""
        self._mark_dirty()
        polygon = _as_polygon(polygon)
        if polygon not in self._polygons:
            return False
        self._polygons.remove(polygon)
        return True

    def remove_all(self, polygons: Iterable[_PolygonLike]) -> bool:
        self._mark_dirty()
        before = len(self._polygons)
        self._polygons.difference_update(_as_polygon(p) for p in polygons)
        return len(self._polygons) != before

    def retain_all(self, polygons: Iterable[_PolygonLike]) -> bool:
        """Keep only the given obstacles; returns True if any were dropped."""
        self._mark_dirty()
        before = len(self._polygons)
        self._polygons.intersection_update({_as_polygon(p) for p in polygons})
        return len(self._polygons) != before

    def clear(self) -> None:
        self._mark_dirty()
        self._polygons.clear()

    def contains_polygon(self, polygon: _PolygonLike) -> bool:
        return _as_polygon(polygon) in self._polygons

    def contains_point(self, point: Point | tuple[float, float]) -> bool:
        """True if point is a vertex of one of the obstacles."""
        return self.is_owned(point)

    def contains_segment(self, segment: Segment) -> bool:
        """True if segment is an obstacle edge, in either direction."""
        edges = self.edges
        return segment in edges or segment.reversed() in edges

    def is_empty(self) -> bool:
        return not self._polygons

    def polygon_count(self) -> int:
        return len(self._polygons)

    def node_count(self) -> int:
        return len(self.nodes)

    def edge_count(self) -> int:
        return len(self.edges)

    def expanded(self, outset: float, skip_failed: bool = False) -> Board:
        """A new board with every obstacle offset by outset.

        With ``skip_failed``, an obstacle that cannot be offset (parallel
        neighbouring edges, or collapsed by an inward offset) is copied
        unchanged and a warning is logged; otherwise the error propagates.
        """
        result: list[Polygon] = []
        for polygon in self._polygons:
            try:
                result.append(polygon.expanded(outset))
            except (ParallelLinesError, InvalidPolygonError) as e:
                if not skip_failed:
                    raise
                logger.warning(
                    "keeping %r un-offset (outset %g): %s", polygon, outset, e
                )
                result.append(polygon)
        return Board(result, params=self._params)
