"""
Garden layout state and share-link encoding.

A share link carries the whole layout in its ``garden`` query parameter, so
no server round-trip is needed to create or open one.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from urllib.parse import parse_qs, urlencode, urlparse

from backend.utils.errors import ValidationError

DEFAULT_GARDEN_NAME = "My First Garden"
DEFAULT_GRID_SIZE = 8
MAX_GRID_SIZE = 32
HISTORY_LIMIT = 50
EXPORT_VERSION = "1.0"
SHARE_PARAM = "garden"


@dataclass(frozen=True)
class Placement:
    plant_id: str
    x: int
    y: int

    @property
    def cell(self):
        return (self.x, self.y)


def validate_grid_size(size) -> int:
    if isinstance(size, bool) or not isinstance(size, int) or not 1 <= size <= MAX_GRID_SIZE:
        raise ValidationError(f"Grid size must be an integer between 1 and {MAX_GRID_SIZE}")
    return size


def validate_placements(placements: Iterable[Placement], grid_size: int) -> List[Placement]:
    """Reject placements outside the grid or sharing a cell."""
    seen = set()
    result = []
    for placement in placements:
        if not placement.plant_id:
            raise ValidationError("Plant id required")
        if not (0 <= placement.x < grid_size and 0 <= placement.y < grid_size):
            raise ValidationError(f"Position ({placement.x}, {placement.y}) is outside the {grid_size}x{grid_size} grid")
        if placement.cell in seen:
            raise ValidationError(f"Position ({placement.x}, {placement.y}) is already occupied")
        seen.add(placement.cell)
        result.append(placement)
    return result


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(token: str) -> bytes:
    padding = "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(token + padding)


@dataclass
class GardenState:
    """
    Client-held layout for the active garden, with bounded undo/redo.

    Placing a plant in an occupied cell replaces it, which keeps cells
    unique without any check at the storage layer.
    """

    name: str = DEFAULT_GARDEN_NAME
    grid_size: int = DEFAULT_GRID_SIZE
    placements: List[Placement] = field(default_factory=list)
    _history: List[List[Placement]] = field(default_factory=list, repr=False)
    _history_index: int = field(default=-1, repr=False)

    def _commit(self, placements: List[Placement]) -> None:
        history = self._history[: self._history_index + 1]
        history.append(list(placements))
        if len(history) > HISTORY_LIMIT:
            history.pop(0)
        self._history = history
        self._history_index = len(history) - 1
        self.placements = list(placements)

    def place_plant(self, plant_id: str, x: int, y: int) -> None:
        if not (0 <= x < self.grid_size and 0 <= y < self.grid_size):
            raise ValidationError(f"Position ({x}, {y}) is outside the grid")
        placements = [p for p in self.placements if p.cell != (x, y)]
        index = next((i for i, p in enumerate(self.placements) if p.cell == (x, y)), len(placements))
        placements.insert(index, Placement(plant_id, x, y))
        self._commit(placements)

    def remove_plant(self, x: int, y: int) -> None:
        self._commit([p for p in self.placements if p.cell != (x, y)])

    def clear(self) -> None:
        self._commit([])

    def set_grid_size(self, size: int) -> None:
        # Resizing drops the layout and its history
        self.grid_size = validate_grid_size(size)
        self.placements = []
        self._history = []
        self._history_index = -1

    def can_undo(self) -> bool:
        return self._history_index > 0

    def can_redo(self) -> bool:
        return self._history_index < len(self._history) - 1

    def undo(self) -> None:
        if self.can_undo():
            self._history_index -= 1
            self.placements = list(self._history[self._history_index])

    def redo(self) -> None:
        if self.can_redo():
            self._history_index += 1
            self.placements = list(self._history[self._history_index])

    # Sharing

    def share_token(self) -> str:
        payload = {
            "n": self.name,
            "s": self.grid_size,
            "p": [[p.plant_id, p.x, p.y] for p in self.placements],
        }
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
        return _b64encode(raw.encode("utf-8"))

    def get_share_url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/?{urlencode({SHARE_PARAM: self.share_token()})}"

    @classmethod
    def decode_share_token(cls, token: Optional[str]) -> "GardenState":
        if not token:
            raise ValidationError("Share token required")
        try:
            payload = json.loads(_b64decode(token).decode("utf-8"))
            name = payload["n"]
            size = payload["s"]
            placements = [Placement(str(plant_id), int(x), int(y)) for plant_id, x, y in payload["p"]]
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise ValidationError("Malformed share link") from e

        state = cls(name=str(name), grid_size=validate_grid_size(size))
        state._commit(validate_placements(placements, state.grid_size))
        return state

    @classmethod
    def from_share_url(cls, url: str) -> "GardenState":
        values = parse_qs(urlparse(url).query).get(SHARE_PARAM)
        return cls.decode_share_token(values[0] if values else None)

    # Backup

    def export_json(self) -> str:
        return json.dumps(
            {
                "name": self.name,
                "size": self.grid_size,
                "plants": [
                    {"id": f"{p.plant_id}-{p.x}-{p.y}", "plantId": p.plant_id, "x": p.x, "y": p.y}
                    for p in self.placements
                ],
                "exportedAt": datetime.now(timezone.utc).isoformat(),
                "version": EXPORT_VERSION,
            },
            indent=2,
        )

    def import_json(self, raw: str) -> bool:
        """Replace the layout from an export. Returns False and leaves state untouched on bad input."""
        try:
            data = json.loads(raw)
            plants = data.get("plants")
            if not isinstance(plants, list):
                return False
            size = validate_grid_size(data.get("size") or DEFAULT_GRID_SIZE)
            placements = validate_placements(
                [Placement(str(p["plantId"]), int(p["x"]), int(p["y"])) for p in plants],
                size,
            )
        except (ValueError, KeyError, TypeError, AttributeError, ValidationError):
            return False

        self.name = data.get("name") or "Imported Garden"
        self.grid_size = size
        self._history = [list(placements)]
        self._history_index = 0
        self.placements = list(placements)
        return True
