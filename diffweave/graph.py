from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Any, Iterable, Iterator, Union

# LinkLine bits, same layout as sapling-renderdag.
VERT_PARENT = 1 << 2
VERT_ANCESTOR = 1 << 3
LEFT_FORK_PARENT = 1 << 4
LEFT_FORK_ANCESTOR = 1 << 5
RIGHT_FORK_PARENT = 1 << 6
RIGHT_FORK_ANCESTOR = 1 << 7
LEFT_MERGE_PARENT = 1 << 8
LEFT_MERGE_ANCESTOR = 1 << 9
RIGHT_MERGE_PARENT = 1 << 10
RIGHT_MERGE_ANCESTOR = 1 << 11

NODE_LINE_VALUES = {"Blank", "Ancestor", "Parent", "Node"}
PAD_LINE_VALUES = {"Blank", "Ancestor", "Parent"}
LANE_VALUES = {"Parent", "Ancestor"}

COL_WIDTH = 18
NODE_R = 5
STROKE_W = 2
PARENT_COLOR = "#94a3b8"
ANCESTOR_COLOR = "#cbd5e1"

# (merge bit, dx, ancestor?) drawn from this column toward column i+dx.
MERGE_DIAGONALS = (
    (LEFT_MERGE_PARENT, -1, False),
    (LEFT_MERGE_ANCESTOR, -1, True),
    (RIGHT_MERGE_PARENT, 1, False),
    (RIGHT_MERGE_ANCESTOR, 1, True),
)

# (fork bit, dx, matching merge bit on column i+dx, ancestor?). A fork and
# the neighbour's matching merge describe the same edge; only the merge draws.
FORK_DIAGONALS = (
    (RIGHT_FORK_PARENT, 1, LEFT_MERGE_PARENT, False),
    (RIGHT_FORK_ANCESTOR, 1, LEFT_MERGE_ANCESTOR, True),
    (LEFT_FORK_PARENT, -1, RIGHT_MERGE_PARENT, False),
    (LEFT_FORK_ANCESTOR, -1, RIGHT_MERGE_ANCESTOR, True),
)


@dataclass(frozen=True)
class GraphRow:
    node: str
    node_line: tuple[str, ...]
    pad_lines: tuple[str, ...] = ()
    link_line: tuple[int, ...] | None = None
    term_line: tuple[bool, ...] | None = None
    glyph: str = ""
    merge: bool = False


@dataclass(frozen=True)
class SvgLine:
    x1: float
    y1: str
    x2: float
    y2: str
    stroke: str
    dashed: bool

    @property
    def is_diagonal(self) -> bool:
        return self.x1 != self.x2


@dataclass(frozen=True)
class SvgCircle:
    cx: float
    cy: str
    r: int
    fill: str


SvgElement = Union[SvgLine, SvgCircle]


def _lane_value(raw: Any, allowed: set[str]) -> str:
    value = str(raw)
    return value if value in allowed else "Blank"


def _mask_value(raw: Any) -> int:
    try:
        return int(raw) & 0xFFFF
    except (TypeError, ValueError):
        return 0


def graph_row_from_dict(raw: dict[str, Any]) -> GraphRow:
    link_line = raw.get("link_line")
    term_line = raw.get("term_line")
    return GraphRow(
        node=str(raw.get("node", "")),
        glyph=str(raw.get("glyph", "")),
        merge=bool(raw.get("merge", False)),
        node_line=tuple(_lane_value(value, NODE_LINE_VALUES) for value in raw.get("node_line") or []),
        pad_lines=tuple(_lane_value(value, PAD_LINE_VALUES) for value in raw.get("pad_lines") or []),
        link_line=None if link_line is None else tuple(_mask_value(value) for value in link_line),
        term_line=None if term_line is None else tuple(bool(value) for value in term_line),
    )


def pair_with_previous_pads(rows: Iterable[GraphRow]) -> Iterator[tuple[GraphRow, tuple[str, ...] | None]]:
    previous: tuple[str, ...] | None = None
    for row in rows:
        yield row, previous
        previous = row.pad_lines


def column_x(col: int) -> float:
    return col * COL_WIDTH + COL_WIDTH / 2


def _is_lane(lanes: tuple[str, ...] | None, index: int) -> bool:
    if lanes is None or index < 0 or index >= len(lanes):
        return False
    return lanes[index] in LANE_VALUES


def _link_at(row: GraphRow, index: int) -> int:
    if row.link_line is None or index < 0 or index >= len(row.link_line):
        return 0
    return row.link_line[index]


def _stroke(ancestor: bool) -> str:
    return ANCESTOR_COLOR if ancestor else PARENT_COLOR


def _node_line_elements(row: GraphRow, prev_pad_lines: tuple[str, ...] | None) -> list[SvgElement]:
    elements: list[SvgElement] = []
    for i, col in enumerate(row.node_line):
        x = column_x(i)
        if col in LANE_VALUES:
            ancestor = col == "Ancestor"
            y2 = "100%" if _is_lane(row.pad_lines, i) else "60%"
            elements.append(SvgLine(x, "0%", x, y2, _stroke(ancestor), ancestor))
        elif col == "Node":
            has_above = _is_lane(prev_pad_lines, i)
            has_below_pad = _is_lane(row.pad_lines, i)
            has_below_diag = not has_below_pad and _link_at(row, i) != 0
            bottom = "100%" if has_below_pad else ("60%" if has_below_diag else "50%")
            if has_above:
                elements.append(SvgLine(x, "0%", x, bottom, PARENT_COLOR, False))
            elif has_below_pad or has_below_diag:
                elements.append(SvgLine(x, "50%", x, bottom, PARENT_COLOR, False))
    return elements


def _link_line_elements(row: GraphRow, prev_pad_lines: tuple[str, ...] | None) -> list[SvgElement]:
    elements: list[SvgElement] = []
    if row.link_line is None:
        return elements
    for i, bits in enumerate(row.link_line):
        if bits == 0:
            continue
        x = column_x(i)
        node_col = row.node_line[i] if i < len(row.node_line) else "Blank"

        if bits & (VERT_PARENT | VERT_ANCESTOR) and node_col == "Blank":
            ancestor = not bits & VERT_PARENT
            has_above = _is_lane(prev_pad_lines, i)
            has_below = _is_lane(row.pad_lines, i)
            if has_above or has_below:
                y1 = "0%" if has_above else "60%"
                y2 = "100%" if has_below else "60%"
                elements.append(SvgLine(x, y1, x, y2, _stroke(ancestor), ancestor))

        for flag, dx, ancestor in MERGE_DIAGONALS:
            if bits & flag:
                elements.append(SvgLine(x, "60%", column_x(i + dx), "100%", _stroke(ancestor), ancestor))

        for flag, dx, merge_flag, ancestor in FORK_DIAGONALS:
            if bits & flag and not _link_at(row, i + dx) & merge_flag:
                elements.append(SvgLine(column_x(i + dx), "60%", x, "100%", _stroke(ancestor), ancestor))
    return elements


def compute_graph_elements(row: GraphRow, prev_pad_lines: Iterable[str] | None = None) -> list[SvgElement]:
    """Drawing primitives for one commit row.

    `prev_pad_lines` is the previous row's pad_lines (None for the first
    row). Lines come first and node circles last so nodes paint on top.
    """
    prev = None if prev_pad_lines is None else tuple(prev_pad_lines)
    elements = _node_line_elements(row, prev)
    elements.extend(_link_line_elements(row, prev))

    for i, terminated in enumerate(row.term_line or ()):
        if terminated:
            x = column_x(i)
            elements.append(SvgLine(x, "85%", x, "100%", PARENT_COLOR, True))

    for i, col in enumerate(row.node_line):
        if col == "Node":
            elements.append(SvgCircle(column_x(i), "50%", NODE_R, PARENT_COLOR))
    return elements


def graph_width(rows: Iterable[GraphRow]) -> int:
    return max([1, *(len(row.node_line) for row in rows)]) * COL_WIDTH


def element_to_dict(element: SvgElement) -> dict[str, Any]:
    if isinstance(element, SvgCircle):
        return {"type": "circle", "cx": element.cx, "cy": element.cy, "r": element.r, "fill": element.fill}
    return {
        "type": "line",
        "x1": element.x1,
        "y1": element.y1,
        "x2": element.x2,
        "y2": element.y2,
        "stroke": element.stroke,
        "dashed": element.dashed,
    }


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def render_row_svg(row: GraphRow, prev_pad_lines: Iterable[str] | None = None, *, height: int = 40) -> str:
    if not row.node_line:
        return ""
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{len(row.node_line) * COL_WIDTH}" '
        f'height="{height}" overflow="visible">'
    ]
    for element in compute_graph_elements(row, prev_pad_lines):
        if isinstance(element, SvgCircle):
            parts.append(
                f'<circle cx="{_format_number(element.cx)}" cy="{element.cy}" r="{element.r}" '
                f'fill="{escape(element.fill)}"/>'
            )
            continue
        dash = ' stroke-dasharray="3 3"' if element.dashed else ""
        parts.append(
            f'<line x1="{_format_number(element.x1)}" y1="{element.y1}" '
            f'x2="{_format_number(element.x2)}" y2="{element.y2}" '
            f'stroke="{escape(element.stroke)}" stroke-width="{STROKE_W}"{dash}/>'
        )
    parts.append("</svg>")
    return "".join(parts)


def render_graph_html(
    rows: list[GraphRow],
    *,
    labels: dict[str, str] | None = None,
    title: str = "Commit graph",
    row_height: int = 40,
) -> str:
    labels = labels or {}
    width = graph_width(rows)
    body: list[str] = []
    for row, prev in pair_with_previous_pads(rows):
        label = labels.get(row.node, row.node)
        body.append(
            '<div class="row">'
            f'<div class="lane" style="width:{width}px">{render_row_svg(row, prev, height=row_height)}</div>'
            f'<div class="label"><code>{escape(row.node[:8])}</code> {escape(label)}</div>'
            "</div>"
        )
    return (
        "<!DOCTYPE html>\n"
        '<html><head><meta charset="utf-8">'
        f"<title>{escape(title)}</title>"
        "<style>"
        "body{font-family:sans-serif;margin:16px;}"
        f".row{{display:flex;align-items:stretch;height:{row_height}px;}}"
        ".lane{flex-shrink:0;}"
        ".label{padding:0 8px;display:flex;align-items:center;gap:6px;}"
        "</style></head><body>"
        f"<h1>{escape(title)}</h1>" + "".join(body) + "</body></html>\n"
    )
