"""Encoding and decoding of warehouse cell locations.

Locations are stored on ``Item.location`` as a short string::

    A1                 cell only
    A1:BoxName1        named box in the cell
    A1:BoxName1(/2/3)  box 2 of 3 named ``BoxName1``
    B2:red1            colour group ``red`` number 1

The grid is fixed at rows A-C and columns 1-6.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterator, Optional


GRID_ROWS = ("A", "B", "C")
GRID_COLUMNS = (1, 2, 3, 4, 5, 6)

_CELL_PATTERN = re.compile(r"^[A-C][1-6]$")
_COLOR_PATTERN = re.compile(r"^([a-z]+)([0-9]+)$")
_BOX_PATTERN = re.compile(r"^([A-Za-z0-9]+)(?:\(/([0-9]+)/([0-9]+)\))?$")


@dataclass(frozen=True)
class DecodedLocation:
    cell: Optional[str]
    box_name: Optional[str] = None
    color: Optional[str] = None
    group_number: Optional[int] = None
    box_number: Optional[int] = None

    @property
    def in_grid(self) -> bool:
        return is_grid_cell(self.cell)

    def as_dict(self) -> dict[str, object]:
        return {
            "cell": self.cell,
            "box_name": self.box_name,
            "color": self.color,
            "group_number": self.group_number,
            "box_number": self.box_number,
        }


def is_grid_cell(cell: str | None) -> bool:
    if not cell:
        return False
    return bool(_CELL_PATTERN.match(cell))


def grid_cells() -> Iterator[str]:
    for row in GRID_ROWS:
        for column in GRID_COLUMNS:
            yield f"{row}{column}"


def decode_location(value: str | None) -> DecodedLocation:
    """Split a stored location string into its cell and sub-tag.

    Decoding never fails: an unrecognised sub-tag is kept verbatim as the box
    name, and callers check :attr:`DecodedLocation.in_grid` for the cell.
    """

    if value is None:
        return DecodedLocation(cell=None)
    text = str(value).strip()
    if not text:
        return DecodedLocation(cell=None)

    if ":" not in text:
        return DecodedLocation(cell=text)

    cell, tag = text.split(":", 1)

    color_match = _COLOR_PATTERN.match(tag)
    if color_match:
        color, group_raw = color_match.groups()
        return DecodedLocation(cell=cell, color=color, group_number=int(group_raw))

    box_match = _BOX_PATTERN.match(tag)
    if box_match:
        box_name, box_number_raw, _total_boxes = box_match.groups()
        box_number = int(box_number_raw) if box_number_raw is not None else None
        return DecodedLocation(cell=cell, box_name=box_name, box_number=box_number)

    return DecodedLocation(cell=cell, box_name=tag)


def encode_location(
    cell: str,
    *,
    box_name: str | None = None,
    color: str | None = None,
    group_number: int | None = None,
    box_number: int | None = None,
    total_boxes: int | None = None,
) -> str:
    """Build the stored location string for a cell and optional sub-tag."""

    cell = (cell or "").strip()
    if not cell:
        raise ValueError("A cell identifier is required.")

    has_color = color is not None or group_number is not None
    if has_color and box_name is not None:
        raise ValueError("A location holds either a box name or a colour group, not both.")

    if has_color:
        if not color or group_number is None:
            raise ValueError("Colour groups need both a colour and a group number.")
        if not _COLOR_PATTERN.match(f"{color}{group_number}"):
            raise ValueError("Colours are lowercase letters and group numbers are non-negative.")
        return f"{cell}:{color}{group_number}"

    if box_name is None:
        if box_number is not None or total_boxes is not None:
            raise ValueError("Box numbering requires a box name.")
        return cell

    box_name = box_name.strip()
    if not box_name:
        raise ValueError("Box names cannot be blank.")

    if box_number is None and total_boxes is None:
        return f"{cell}:{box_name}"
    if box_number is None or total_boxes is None:
        raise ValueError("Box numbering needs both the box number and the total.")
    return f"{cell}:{box_name}(/{box_number}/{total_boxes})"
