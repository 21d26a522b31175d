"""
Neighbor Resolver
=================

Adjacent cells of a geohash at the same precision.

For each direction there is one neighbor table and one border table per
parity of the cell length. The neighbor table maps the last character to
the character of the adjacent cell; the border table marks last
characters that sit on the edge of their parent cell. Crossing a border
means the parent itself must move one step in the same direction, which
can cascade up to the first character.

The cascade is resolved with a loop over the characters, right to left,
instead of recursion on the parent.

Known limitation:
    No wraparound policy exists for the poles or the antimeridian. At the
    top level the tables wrap: east of the 180th meridian yields cells
    near -180 (geographically adjacent), while north of the north pole
    yields cells at the south pole (not adjacent). Callers must not assume
    spatial continuity for cells touching latitude +/-90.
"""

from enum import Enum
from typing import Dict, List, NamedTuple, Tuple

from geocrowd.geo.codec import BASE32, char_index


class Direction(str, Enum):
    """Cardinal directions for adjacency."""

    NORTH = "N"
    SOUTH = "S"
    EAST = "E"
    WEST = "W"


# Neighbor strings for even-length cells; odd-length cells use the
# transposed direction (north <-> east, south <-> west)
_NEIGHBOR_EVEN = {
    Direction.EAST: "bc01fg45238967deuvhjyznpkmstqrwx",
    Direction.WEST: "238967debc01fg45kmstqrwxuvhjyznp",
    Direction.NORTH: "p0r21436x8zb9dcf5h7kjnmqesgutwvy",
    Direction.SOUTH: "14365h7k9dcfesgujnmqp0r2twvyx8zb",
}

_BORDER_EVEN = {
    Direction.EAST: "bcfguvyz",
    Direction.WEST: "0145hjnp",
    Direction.NORTH: "prxz",
    Direction.SOUTH: "028b",
}

_TRANSPOSE = {
    Direction.EAST: Direction.NORTH,
    Direction.WEST: Direction.SOUTH,
    Direction.NORTH: Direction.EAST,
    Direction.SOUTH: Direction.WEST,
}

EVEN = 0
ODD = 1


def _build_neighbor_table(neighbor_string: str) -> Tuple[int, ...]:
    # The character at position p of the neighbor string moves to BASE32[p]
    table = [0] * len(BASE32)
    for position, char in enumerate(neighbor_string):
        table[BASE32.index(char)] = position
    return tuple(table)


def _build_border_table(border_string: str) -> Tuple[bool, ...]:
    return tuple(char in border_string for char in BASE32)


# NEIGHBOR[direction][parity][alphabet index] -> alphabet index
NEIGHBOR: Dict[Direction, Tuple[Tuple[int, ...], Tuple[int, ...]]] = {
    d: (
        _build_neighbor_table(_NEIGHBOR_EVEN[d]),
        _build_neighbor_table(_NEIGHBOR_EVEN[_TRANSPOSE[d]]),
    )
    for d in Direction
}

# BORDER[direction][parity][alphabet index] -> on parent edge
BORDER: Dict[Direction, Tuple[Tuple[bool, ...], Tuple[bool, ...]]] = {
    d: (
        _build_border_table(_BORDER_EVEN[d]),
        _build_border_table(_BORDER_EVEN[_TRANSPOSE[d]]),
    )
    for d in Direction
}


class Neighbors(NamedTuple):
    """The 8 cells around a center cell."""

    n: str
    s: str
    e: str
    w: str
    ne: str
    nw: str
    se: str
    sw: str


def adjacent(cell: str, direction: Direction) -> str:
    """
    Cell adjacent to `cell` in one direction, at the same precision.

    Args:
        cell: Geohash string
        direction: Direction to step

    Returns:
        Adjacent geohash string of the same length

    Raises:
        ValueError: If the cell is empty
        InvalidCellChar: If a character is outside the alphabet
    """
    if not cell:
        raise ValueError("cell must not be empty")
    direction = Direction(direction)

    chars = list(cell)
    position = len(chars) - 1
    while position >= 0:
        parity = ODD if (position + 1) % 2 else EVEN
        idx = char_index(cell, chars[position])
        crosses_border = BORDER[direction][parity][idx]
        chars[position] = BASE32[NEIGHBOR[direction][parity][idx]]
        if not crosses_border:
            break
        position -= 1

    return "".join(chars)


def neighbors(cell: str) -> Neighbors:
    """
    All 8 neighbors of a cell.

    Diagonals are derived from the north and south neighbors stepped
    east and west.
    """
    north = adjacent(cell, Direction.NORTH)
    south = adjacent(cell, Direction.SOUTH)
    return Neighbors(
        n=north,
        s=south,
        e=adjacent(cell, Direction.EAST),
        w=adjacent(cell, Direction.WEST),
        ne=adjacent(north, Direction.EAST),
        nw=adjacent(north, Direction.WEST),
        se=adjacent(south, Direction.EAST),
        sw=adjacent(south, Direction.WEST),
    )


def neighbor_list(cell: str) -> List[str]:
    """Neighbors as a list in N, S, E, W, NE, NW, SE, SW order."""
    return list(neighbors(cell))
