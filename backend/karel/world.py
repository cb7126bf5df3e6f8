"""Grid world and robot state driven by the Karel interpreter.

The grid is stored flat and addressed as if it were a 2D array with
`index = height * row + col`. Cell values:

- `-1`: wall
- `0`: empty tile
- `n > 0`: `n` items lie on the tile

The world is pure data plus primitive mutators and queries; it has no control
flow of its own. Every operation either succeeds or raises one of the errors
from `backend.karel.errors`.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import (
    ItemLimitExceeded,
    ItemOnGround,
    KarelIsHere,
    MoveIntoWall,
    MoveOutOfBounds,
    NoItemHere,
    OutOfBounds,
)

logger = logging.getLogger("karel.world")
logger.addHandler(logging.NullHandler())

WALL = -1
EMPTY = 0

Coord = Tuple[int, int]


class Direction(Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"


class Action(Enum):
    MOVE = "move"
    PLACE_ITEM = "put"
    REMOVE_ITEM = "take"
    TURN_LEFT = "turn-left"


class Query(Enum):
    WALL_AHEAD = "wall"
    ITEM_HERE = "beeper"


# (row, col) offset of one step in each direction
STEP = {
    Direction.NORTH: (0, -1),
    Direction.SOUTH: (0, 1),
    Direction.WEST: (1, 0),
    Direction.EAST: (-1, 0),
}

LEFT_OF = {
    Direction.NORTH: Direction.WEST,
    Direction.WEST: Direction.SOUTH,
    Direction.SOUTH: Direction.EAST,
    Direction.EAST: Direction.NORTH,
}

GLYPHS = {
    Direction.WEST: "◀",
    Direction.NORTH: "▲",
    Direction.SOUTH: "▼",
    Direction.EAST: "▶",
}


@dataclass
class Config:
    width: int = 10
    height: int = 10
    max_items: int = 8

    def __post_init__(self):
        if self.width < 1 or self.height < 1:
            raise ValueError("grid width and height must be positive")
        if self.max_items < 0:
            raise ValueError("max_items must not be negative")

    @classmethod
    def from_settings(cls, settings: Optional[Mapping[str, Any]]) -> "Config":
        """Build a config from a plain settings mapping, keeping defaults for missing keys."""
        settings = settings or {}
        defaults = cls()
        return cls(
            width=int(settings.get("width", defaults.width)),
            height=int(settings.get("height", defaults.height)),
            max_items=int(settings.get("max_items", defaults.max_items)),
        )


class World:
    """The grid plus Karel's position and orientation.

    Karel starts at `(0, 0)` facing north on an empty grid.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.cells: List[int] = [EMPTY] * (self.config.width * self.config.height)
        self.position: Coord = (0, 0)
        self.orientation = Direction.NORTH

    # --- grid access -------------------------------------------------------

    def _index(self, coord: Coord) -> int:
        row, col = coord
        if not (0 <= row < self.config.width and 0 <= col < self.config.height):
            raise OutOfBounds(f"Coordinate {coord} is outside the {self.config.width}x{self.config.height} grid.")
        return self.config.height * row + col

    def get(self, coord: Coord) -> int:
        return self.cells[self._index(coord)]

    def set(self, coord: Coord, value: int) -> None:
        self.cells[self._index(coord)] = value

    def toggle_wall(self, coord: Coord) -> None:
        """Build a wall on an empty tile, or tear an existing one down."""
        value = self.get(coord)
        if value > 0:
            raise ItemOnGround()
        if coord == self.position:
            raise KarelIsHere()
        self.set(coord, EMPTY if value == WALL else WALL)
        logger.debug("toggled wall at %s", coord)

    # --- robot -------------------------------------------------------------

    def robot(self) -> Tuple[Coord, Direction]:
        return self.position, self.orientation

    def ahead(self) -> Coord:
        """Coordinate one step ahead of Karel; raises OutOfBounds off the grid."""
        d_row, d_col = STEP[self.orientation]
        coord = (self.position[0] + d_row, self.position[1] + d_col)
        self._index(coord)
        return coord

    def query(self, query: Union[Query, Direction]) -> bool:
        """Answer a question about Karel's surroundings.

        `query` is `Query.WALL_AHEAD`, `Query.ITEM_HERE`, or a `Direction`
        meaning "is Karel facing this direction".
        """
        if isinstance(query, Direction):
            return query is self.orientation
        if query is Query.ITEM_HERE:
            return self.get(self.position) > 0
        if query is Query.WALL_AHEAD:
            try:
                coord = self.ahead()
            except OutOfBounds:
                raise OutOfBounds() from None
            return self.get(coord) == WALL
        raise ValueError(f"Unknown query: {query!r}")

    def act(self, action: Action) -> None:
        if action is Action.MOVE:
            try:
                blocked = self.query(Query.WALL_AHEAD)
            except OutOfBounds:
                raise MoveOutOfBounds() from None
            if blocked:
                raise MoveIntoWall()
            self.position = self.ahead()
        elif action is Action.PLACE_ITEM:
            count = self.get(self.position)
            if count >= self.config.max_items:
                raise ItemLimitExceeded()
            self.set(self.position, count + 1)
        elif action is Action.REMOVE_ITEM:
            count = self.get(self.position)
            if count <= 0:
                raise NoItemHere()
            self.set(self.position, count - 1)
        elif action is Action.TURN_LEFT:
            self.orientation = LEFT_OF[self.orientation]
        else:
            raise ValueError(f"Unknown action: {action!r}")

    # --- read-only views ---------------------------------------------------

    def rows(self) -> List[List[int]]:
        h = self.config.height
        return [self.cells[r * h:(r + 1) * h] for r in range(self.config.width)]

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready copy of the world state."""
        row, col = self.position
        return {
            "width": self.config.width,
            "height": self.config.height,
            "max_items": self.config.max_items,
            "robot": {"row": row, "col": col, "orientation": self.orientation.value},
            "grid": self.rows(),
        }

    def render(self) -> str:
        """Render the grid as text, one line per row.

        `.` empty, `#` wall, digits for items, an arrow for Karel.
        """
        out = []
        for r, cells in enumerate(self.rows()):
            chars = []
            for c, value in enumerate(cells):
                if (r, c) == self.position:
                    chars.append(GLYPHS[self.orientation])
                elif value == WALL:
                    chars.append("#")
                elif value == EMPTY:
                    chars.append(".")
                else:
                    chars.append(str(value))
            out.append("".join(chars))
        return "\n".join(out) + "\n"
