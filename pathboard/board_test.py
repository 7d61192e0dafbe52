"""Tests for Board visibility caching, path finding and obstacle management."""

import logging
import math
from unittest.mock import patch

import numpy as np
import pytest

from pathboard.board import Board, mesh_storage_policy, path_length
from pathboard.errors import ParallelLinesError
from pathboard.polygon import Polygon
from pathboard.types import BoardParams, Point, Segment

P = Point

SQUARE = [(0, 0), (2, 0), (2, 2), (0, 2)]
BIG_SQUARE = [(0, 0), (4, 0), (4, 4), (0, 4)]
U_SHAPE = [(0, 0), (6, 0), (6, 6), (4, 6), (4, 2), (2, 2), (2, 6), (0, 6)]
# Collinear bottom vertex: cannot be offset
FLAT_BOTTOM = [(0, 0), (1, 0), (2, 0), (2, 2), (0, 2)]


def _square(x0=0.0, y0=0.0, size=2.0):
    return Polygon(
        [(x0, y0), (x0 + size, y0), (x0 + size, y0 + size), (x0, y0 + size)]
    )


def _square_board(**kwargs):
    return Board([Polygon(SQUARE)], **kwargs)


class TestEmptyBoard:
    def test_everything_visible(self):
        board = Board()
        assert board.is_visible((0, 0), (10, 10))
        assert board.is_visible((-5, 3), (7, -2))

    def test_direct_path(self):
        assert Board().shortest_path((0, 0), (10, 10)) == [P(10, 10)]

    def test_empty(self):
        board = Board()
        assert board.is_empty()
        assert board.polygon_count() == 0
        assert board.node_count() == 0
        assert board.edge_count() == 0

    def test_point_visible_to_itself(self):
        board = _square_board()
        assert board.is_visible((1, 1), (1, 1))
        assert board.is_visible((1, 1), (1 + 1e-9, 1))
        assert board.shortest_path((1, 1), (1, 1)) == [P(1, 1)]


class TestSquareObstacle:
    def test_blocked(self):
        assert not _square_board().is_visible((-1, 1), (3, 1))

    def test_corners_visible_from_outside(self):
        board = _square_board()
        assert board.is_visible((-1, 1), (0, 0))
        assert board.is_visible((-1, 1), (0, 2))
        assert board.is_visible((2, 0), (3, 1))
        assert not board.is_visible((0, 0), (3, 1))
        assert not board.is_visible((-1, 1), (2, 0))

    def test_edges_visible(self):
        board = _square_board()
        for edge in Polygon(SQUARE).edges:
            assert board.is_visible(edge.a, edge.b)

    def test_path_around(self):
        board = _square_board()
        path = board.shortest_path((-1, 1), (3, 1))
        assert path is not None
        assert len(path) == 3
        assert path[-1] == P(3, 1)
        assert path[:2] in ([P(0, 0), P(2, 0)], [P(0, 2), P(2, 2)])

    def test_path_length(self):
        board = _square_board()
        path = board.shortest_path((-1, 1), (3, 1))
        total = path_length((-1, 1), path)
        assert total == pytest.approx(2 + 2 * math.sqrt(2))
        assert total > P(-1, 1).distance(P(3, 1))

    def test_path_from_a_corner(self):
        board = _square_board()
        assert board.shortest_path((0, 0), (3, 1)) == [P(2, 0), P(3, 1)]

    def test_path_hops_are_visible(self):
        board = _square_board()
        start = P(-1, 1)
        prev = start
        for p in board.shortest_path(start, (3, 1)):
            assert board.is_visible(prev, p)
            prev = p


class TestConcaveObstacle:
    def test_out_of_the_notch(self):
        board = Board([Polygon(U_SHAPE)])
        a, b = P(3, 4), P(3, -1)
        assert not board.is_visible(a, b)
        path = board.shortest_path(a, b)
        assert path is not None
        assert path[-1] == b
        assert len(path) >= 2
        for p in path[:-1]:
            assert board.contains_point(p)
        prev = a
        for p in path:
            assert board.is_visible(prev, p)
            prev = p
        assert path_length(a, path) > a.distance(b)

    def test_inside_notch_visible(self):
        board = Board([Polygon(U_SHAPE)])
        assert board.is_visible((3, 3), (3, 5.5))
        assert board.is_visible((3, 5), (2, 6))


class TestInteriorQueries:
    def _board(self):
        return Board([BIG_SQUARE])

    def test_segment_inside_obstacle_is_blocked(self):
        board = self._board()
        assert not board.is_visible((0.5, 1), (3.5, 1.2))
        assert not board.is_visible((4, 0), (1, 3))

    def test_goal_inside_obstacle(self):
        assert self._board().shortest_path((-1, -1), (1, 3)) is None

    def test_start_inside_obstacle(self):
        assert self._board().shortest_path((2, 1), (10, 10)) is None

    def test_corner_to_corner_chord_is_passable(self):
        board = self._board()
        assert not board.is_visible((-1, -1), (5, 5))
        assert board.is_visible((0, 0), (4, 4))
        assert board.shortest_path((-1, -1), (5, 5)) == [
            P(0, 0),
            P(4, 4),
            P(5, 5),
        ]


class TestNoPath:
    def test_nothing_visible(self):
        board = _square_board()
        with patch.object(board, "_line_of_sight", return_value=False):
            assert board.shortest_path((-1, 1), (3, 1)) is None

    def test_nothing_visible_from_a_corner(self):
        board = _square_board()
        with patch.object(board, "_line_of_sight", return_value=False):
            assert board.shortest_path((0, 0), (3, 1)) is None


class TestSymmetry:
    def _points(self):
        rng = np.random.default_rng(3)
        board = self._board()
        pts = [P(float(x), float(y)) for x, y in rng.uniform(-2, 12, (12, 2))]
        return pts + sorted(board.nodes)

    def _board(self):
        return Board([Polygon(U_SHAPE), _square(8, 8), _square(8, -1, 1.5)])

    def test_fresh_boards(self):
        pts = self._points()
        polygons = self._board().polygons
        for i, p in enumerate(pts):
            for q in pts[i + 1 :]:
                forward = Board(polygons).is_visible(p, q)
                backward = Board(polygons).is_visible(q, p)
                assert forward == backward, (p, q)

    def test_shared_cache(self):
        pts = self._points()
        board = self._board()
        reference = self._board()
        for p in pts:
            for q in pts:
                assert board.is_visible(p, q) == reference.is_visible(q, p)


class TestIdempotence:
    def test_repeat_query(self):
        board = _square_board()
        first = board.is_visible((-1, 1), (3, 1))
        owned = {k: dict(v) for k, v in board._owned_mesh.items()}
        assert board.is_visible((-1, 1), (3, 1)) == first
        assert {k: dict(v) for k, v in board._owned_mesh.items()} == owned

    def test_repeat_path(self):
        board = Board([Polygon(U_SHAPE)])
        first = board.shortest_path((3, 4), (3, -1))
        assert board.shortest_path((3, 4), (3, -1)) == first

    def test_cache_hit_skips_computation(self):
        board = _square_board()
        with patch.object(
            board, "_line_of_sight", wraps=board._line_of_sight
        ) as spy:
            board.is_visible((-1, 1), (0, 0))
            board.is_visible((-1, 1), (0, 0))
            board.is_visible((0, 0), (-1, 1))
            assert spy.call_count == 1


class TestInvalidation:
    A = P(0, 1)
    B = P(4, 1)

    def _spy(self, board):
        return patch.object(board, "_line_of_sight", wraps=board._line_of_sight)

    def test_add_then_remove(self):
        board = Board()
        wall = _square(1, 0)
        with self._spy(board) as spy:
            assert board.is_visible(self.A, self.B)
            assert board.is_visible(self.A, self.B)
            assert spy.call_count == 1
            board.add(wall)
            assert not board.is_visible(self.A, self.B)
            assert spy.call_count == 2
            board.remove(wall)
            assert board.is_visible(self.A, self.B)
            assert spy.call_count == 3

    def test_clear(self):
        board = Board([_square(1, 0)])
        with self._spy(board) as spy:
            assert not board.is_visible(self.A, self.B)
            board.clear()
            assert board.is_visible(self.A, self.B)
            assert spy.call_count == 2

    def test_every_mutator_invalidates(self):
        wall = _square(1, 0)
        other = _square(10, 10)
        mutations = [
            lambda b: b.add(wall),
            lambda b: b.add_all([other]),
            lambda b: b.remove(other),
            lambda b: b.remove_all([other]),
            lambda b: b.retain_all([wall]),
            lambda b: b.clear(),
        ]
        for mutate in mutations:
            board = Board([wall])
            with self._spy(board) as spy:
                board.is_visible(self.A, self.B)
                mutate(board)
                board.is_visible(self.A, self.B)
                assert spy.call_count == 2

    def test_no_op_mutation_still_invalidates(self):
        wall = _square(1, 0)
        board = Board([wall])
        with self._spy(board) as spy:
            board.is_visible(self.A, self.B)
            assert board.add(_square(1, 0)) is False
            board.is_visible(self.A, self.B)
            assert spy.call_count == 2

    def test_derived_state_rebuilt(self):
        board = Board([_square()])
        assert board.node_count() == 4
        assert board.edge_count() == 4
        board.add(_square(5, 5))
        assert board.node_count() == 8
        assert board.edge_count() == 8
        assert board.is_owned((5, 5))
        board.remove(_square())
        assert not board.is_owned((0, 0))
        assert set(board._get_owned_mesh()) == board.nodes


class TestStoragePolicy:
    def test_table(self):
        assert mesh_storage_policy(True, True) == (True, True)
        assert mesh_storage_policy(True, False) == (False, True)
        assert mesh_storage_policy(False, True) == (True, False)
        assert mesh_storage_policy(False, False) == (True, True)

    def test_owned_pair(self):
        board = _square_board()
        board.is_visible((0, 0), (2, 0))
        assert board._owned_mesh[P(0, 0)] == {P(2, 0): True}
        assert board._owned_mesh[P(2, 0)] == {P(0, 0): True}

    def test_mixed_pair(self):
        for a, b in (((-1, 1), (0, 0)), ((0, 0), (-1, 1))):
            board = _square_board()
            board.is_visible(a, b)
            assert board._owned_mesh[P(0, 0)] == {}
            assert board._unowned_mesh.peek(P(-1, 1)) == {P(0, 0): True}

    def test_unowned_pair(self):
        board = _square_board()
        board.is_visible((-1, 1), (3, 1))
        assert board._unowned_mesh.peek(P(-1, 1)) == {P(3, 1): False}
        assert board._unowned_mesh.peek(P(3, 1)) == {P(-1, 1): False}
        assert all(entry == {} for entry in board._owned_mesh.values())

    def test_owned_mesh_seeded_with_nodes(self):
        board = _square_board()
        board.is_visible((-1, 1), (3, 1))
        assert set(board._owned_mesh) == board.nodes


class TestCachedVisibility:
    def test_unknown(self):
        board = _square_board()
        assert board.cached_visibility((-1, 1), (0, 0)) is None
        assert board._owned_mesh is None
        assert board._unowned_mesh is None

    def test_known_either_order(self):
        board = _square_board()
        board.is_visible((-1, 1), (3, 1))
        board.is_visible((0, 0), (-1, 1))
        assert board.cached_visibility((-1, 1), (3, 1)) is False
        assert board.cached_visibility((3, 1), (-1, 1)) is False
        assert board.cached_visibility((0, 0), (-1, 1)) is True
        assert board.cached_visibility((-1, 1), (0, 0)) is True

    def test_clear_unowned_cache(self):
        board = _square_board()
        board.is_visible((0, 0), (2, 0))
        board.is_visible((-1, 1), (0, 0))
        board.clear_unowned_cache()
        assert board.cached_visibility((-1, 1), (0, 0)) is None
        assert board.cached_visibility((0, 0), (2, 0)) is True


class TestUnownedEviction:
    QUERIES = [P(-1, 1), P(-1, 0.5), P(-1, 1.5)]

    def test_capacity_respected(self):
        board = _square_board(params=BoardParams(unowned_cache_size=2))
        for q in self.QUERIES:
            board.is_visible(q, (0, 0))
        assert len(board._unowned_mesh) == 2
        assert board._unowned_mesh.peek(self.QUERIES[0]) is None
        assert board.cached_visibility(self.QUERIES[0], (0, 0)) is None
        assert board.cached_visibility(self.QUERIES[2], (0, 0)) is True

    def test_recently_used_survives(self):
        board = _square_board(params=BoardParams(unowned_cache_size=2))
        board.is_visible(self.QUERIES[0], (0, 0))
        board.is_visible(self.QUERIES[1], (0, 0))
        board.is_visible(self.QUERIES[0], (0, 0))  # touch
        board.is_visible(self.QUERIES[2], (0, 0))
        assert board._unowned_mesh.peek(self.QUERIES[0]) is not None
        assert board._unowned_mesh.peek(self.QUERIES[1]) is None

    def test_evicted_result_recomputed(self):
        board = _square_board(params=BoardParams(unowned_cache_size=1))
        with patch.object(
            board, "_line_of_sight", wraps=board._line_of_sight
        ) as spy:
            first = board.is_visible(self.QUERIES[0], (0, 0))
            board.is_visible(self.QUERIES[1], (0, 0))
            assert board.is_visible(self.QUERIES[0], (0, 0)) == first
            assert spy.call_count == 3

    def test_zero_capacity(self):
        board = _square_board(params=BoardParams(unowned_cache_size=0))
        assert not board.is_visible((-1, 1), (3, 1))
        assert board.shortest_path((-1, 1), (3, 1))[-1] == P(3, 1)
        assert len(board._unowned_mesh) == 0

    def test_unbounded(self):
        board = _square_board(params=BoardParams(unowned_cache_size=None))
        for i in range(50):
            board.is_visible((-1, i), (0, 0))
        assert len(board._unowned_mesh) == 50

    def test_params_from_dict(self):
        params = BoardParams.from_dict({"unowned_cache_size": 2})
        board = _square_board(params=params)
        assert board.params.unowned_cache_size == 2


class TestVisibleFrom:
    def test_nodes(self):
        board = _square_board()
        assert board.visible_from((-1, 1)) == {P(0, 0), P(0, 2)}

    def test_extras(self):
        board = _square_board()
        seen = board.visible_from((-1, 1), (3, 1), (-2, 1))
        assert seen == {P(0, 0), P(0, 2), P(-2, 1)}

    def test_visible_in(self):
        board = _square_board()
        assert board.visible_in((-1, 1), [(3, 1), (0, 0)]) == {P(0, 0)}


class TestMembership:
    def test_add_and_remove(self):
        board = Board()
        assert board.add(_square()) is True
        assert board.add(_square()) is False
        assert board.polygon_count() == 1
        assert board.contains_polygon(_square())
        assert board.remove(_square(5, 5)) is False
        assert board.remove(_square()) is True
        assert board.is_empty()

    def test_add_vertex_list(self):
        board = Board()
        board.add(SQUARE)
        assert board.contains_polygon(Polygon(SQUARE))

    def test_remove_vertex_list(self):
        board = Board([SQUARE, BIG_SQUARE])
        assert board.contains_polygon(BIG_SQUARE)
        assert board.remove(list(reversed(SQUARE))) is True
        assert board.remove(SQUARE) is False
        assert board.polygons == frozenset({Polygon(BIG_SQUARE)})

    def test_bulk_vertex_lists(self):
        board = Board([SQUARE, BIG_SQUARE, U_SHAPE])
        assert board.remove_all([U_SHAPE]) is True
        assert board.retain_all([BIG_SQUARE]) is True
        assert board.polygons == frozenset({Polygon(BIG_SQUARE)})

    def test_bulk(self):
        a, b, c = _square(), _square(5, 5), _square(10, 0)
        board = Board()
        assert board.add_all([a, b, c]) is True
        assert board.add_all([a]) is False
        assert board.remove_all([c, _square(20, 20)]) is True
        assert board.retain_all([a]) is True
        assert board.retain_all([a]) is False
        assert board.polygons == frozenset({a})

    def test_contains_point(self):
        board = _square_board()
        assert board.contains_point((2, 2))
        assert not board.contains_point((1, 1))
        assert not board.contains_point((3, 1))

    def test_contains_segment(self):
        board = _square_board()
        edge = Segment(P(0, 0), P(2, 0))
        assert board.contains_segment(edge)
        assert board.contains_segment(edge.reversed())
        assert not board.contains_segment(Segment(P(0, 0), P(2, 2)))

    def test_counts(self):
        board = Board([_square(), Polygon(U_SHAPE)])
        assert board.polygon_count() == 2
        # (0, 0) and (2, 2) are vertices of both obstacles
        assert board.node_count() == len(
            set(_square().nodes) | set(Polygon(U_SHAPE).nodes)
        )
        assert board.edge_count() == 12


class TestExpandedBoard:
    def test_offsets_every_polygon(self):
        board = Board([_square(0, 0, 1), _square(10, 10, 1)])
        grown = board.expanded(1.0)
        assert grown is not board
        assert grown.polygon_count() == 2
        assert sorted(p.area for p in grown.polygons) == pytest.approx([9, 9])
        assert board.contains_polygon(_square(0, 0, 1))
        assert grown.params is board.params

    def test_grown_obstacle_blocks_more(self):
        board = _square_board()
        assert board.is_visible((-2, -0.5), (4, -0.5))
        assert not board.expanded(1.0).is_visible((-2, -0.5), (4, -0.5))

    def test_failure_propagates(self):
        board = Board([Polygon(FLAT_BOTTOM), _square(10, 10)])
        with pytest.raises(ParallelLinesError):
            board.expanded(1.0)

    def test_skip_failed(self, caplog):
        board = Board([Polygon(FLAT_BOTTOM), _square(10, 10)])
        with caplog.at_level(logging.WARNING, logger="pathboard.board"):
            grown = board.expanded(1.0, skip_failed=True)
        assert grown.polygon_count() == 2
        assert grown.contains_polygon(Polygon(FLAT_BOTTOM))
        assert not grown.contains_polygon(_square(10, 10))
        assert any("un-offset" in r.getMessage() for r in caplog.records)


class TestPathLength:
    def test_sum(self):
        assert path_length((0, 0), [(3, 4), (3, 0)]) == pytest.approx(9.0)

    def test_empty(self):
        assert path_length((1, 1), []) == 0.0
