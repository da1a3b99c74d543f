from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from rich.console import Console

from .graph import compute_graph_elements, element_to_dict, pair_with_previous_pads, render_graph_html
from .viewer_core import load_graph, resolve_input_path
from .viewer_render import render_graph_rows


def parse_graph_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render commit graph rows as drawing primitives.")
    parser.add_argument("path", help="Path to graph JSON (array of rows or {\"graph\": [...]})")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Output primitives per row as JSON")
    parser.add_argument("--html", dest="html_out", help="Write a standalone HTML page with inline SVG lanes")
    parser.add_argument("--title", default="Commit graph", help="Title for --html output")
    parser.add_argument("--row-height", type=int, default=40, help="Row height in pixels for --html (default: 40)")
    return parser.parse_args(argv)


def graph_payload(rows) -> list[dict]:
    payload = []
    for row, prev in pair_with_previous_pads(rows):
        payload.append(
            {
                "node": row.node,
                "elements": [element_to_dict(element) for element in compute_graph_elements(row, prev)],
            }
        )
    return payload


def run_graph(argv: list[str]) -> int:
    args = parse_graph_args(argv)
    if args.row_height < 1:
        print("[error] --row-height must be >= 1", file=sys.stderr)
        return 2

    path = resolve_input_path(Path(args.path), search_roots=[Path(__file__).resolve().parents[1]])
    try:
        rows, labels = load_graph(path)
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    if args.html_out:
        output = Path(args.html_out)
        html = render_graph_html(rows, labels=labels, title=args.title, row_height=args.row_height)
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(html, encoding="utf-8")
        except OSError as error:
            print(f"[error] {error}", file=sys.stderr)
            return 1
        print(f"Wrote: {output}")
        return 0

    if args.as_json:
        print(json.dumps(graph_payload(rows), ensure_ascii=False, indent=2))
        return 0

    render_graph_rows(Console(), rows, labels)
    return 0
