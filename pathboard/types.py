"""Value types shared by the polygon and board modules."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

from . import tolerance


@dataclass(frozen=True, order=True)
class Point:
    """Immutable 2-D coordinate.

    ``==`` and ``hash`` are exact, so points work as set members and dict
    keys. Use ``isclose`` when values may carry rounding noise.
    """

    x: float
    y: float

    @staticmethod
    def coerce(value: Point | tuple[float, float]) -> Point:
        if isinstance(value, Point):
            return value
        x, y = value
        return Point(float(x), float(y))

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def distance(self, other: Point) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def isclose(self, other: Point) -> bool:
        return tolerance.is_equal(self.x, other.x) and tolerance.is_equal(
            self.y, other.y
        )


def _ccw(a: Point, b: Point, c: Point) -> bool:
    return (c.y - a.y) * (b.x - a.x) > (b.y - a.y) * (c.x - a.x)


@dataclass(frozen=True)
class Segment:
    """A directed line segment from ``a`` to ``b``.

    Not an infinite line: intersection tests only consider the points
    between the two endpoints.
    """

    a: Point
    b: Point

    @staticmethod
    def from_slope(start: Point, slope: float, distance: float) -> Segment:
        """Segment leaving ``start`` along ``slope`` for a signed distance.

        A positive distance ends to the right of ``start``, a negative one
        to the left. Vertical slopes (+/-inf) move straight up or down.
        """
        angle = math.atan(slope)
        end = Point(
            start.x + distance * math.cos(angle),
            start.y + distance * math.sin(angle),
        )
        return Segment(start, end)

    @property
    def dx(self) -> float:
        return self.b.x - self.a.x

    @property
    def dy(self) -> float:
        return self.b.y - self.a.y

    @property
    def length(self) -> float:
        return self.a.distance(self.b)

    @property
    def midpoint(self) -> Point:
        return Point((self.a.x + self.b.x) * 0.5, (self.a.y + self.b.y) * 0.5)

    @property
    def slope(self) -> float:
        """dy/dx, or +inf/-inf for a vertical segment travelling up/down."""
        if tolerance.is_zero(self.dx):
            return math.inf if self.dy > 0 else -math.inf
        return self.dy / self.dx

    @property
    def perpendicular_slope(self) -> float:
        """-dx/dy, or +inf/-inf for a horizontal segment travelling right/left."""
        if tolerance.is_zero(self.dy):
            return math.inf if self.dx > 0 else -math.inf
        return -self.dx / self.dy

    def reversed(self) -> Segment:
        return Segment(self.b, self.a)

    def normalized(self) -> Segment:
        """Same segment with endpoints in (x, y) order; ignores direction."""
        if self.b < self.a:
            return Segment(self.b, self.a)
        return self

    def intersects(self, other: Segment, endpoints: bool = True) -> bool:
        """True if the two segments cross.

        Parallel segments (collinear ones included) never intersect. With
        ``endpoints=False``, segments sharing an endpoint are not counted
        as intersecting.
        """
        if tolerance.is_equal(self.dx * other.dy, self.dy * other.dx):
            return False
        a, b, c, d = self.a, self.b, other.a, other.b
        if _ccw(a, c, d) == _ccw(b, c, d) or _ccw(a, b, c) == _ccw(a, b, d):
            return False
        if endpoints:
            return True
        return not (
            a.isclose(c) or a.isclose(d) or b.isclose(c) or b.isclose(d)
        )

    def isclose(self, other: Segment) -> bool:
        """Tolerant equality, accepting either endpoint order."""
        return (self.a.isclose(other.a) and self.b.isclose(other.b)) or (
            self.a.isclose(other.b) and self.b.isclose(other.a)
        )


@dataclass
class BoardParams:
    """Tuning knobs for a Board's caches."""

    # Max number of non-obstacle points kept in the visibility cache.
    # None keeps every queried point until the board is next mutated.
    unowned_cache_size: int | None = 4096

    def __post_init__(self) -> None:
        if self.unowned_cache_size is not None and self.unowned_cache_size < 0:
            raise ValueError(
                "unowned_cache_size must be >= 0 or None, got "
                f"{self.unowned_cache_size}"
            )

    @staticmethod
    def from_dict(d: dict | None) -> BoardParams:
        if not d:
            return BoardParams()
        return BoardParams(
            unowned_cache_size=d.get("unowned_cache_size", 4096),
        )

    def to_dict(self) -> dict:
        return {"unowned_cache_size": self.unowned_cache_size}
