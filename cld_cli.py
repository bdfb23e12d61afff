"""
Command line entry point for causal loop diagrams.

Usage:
  python cld_cli.py loops map.json [--json] [--svg out.svg]
  python cld_cli.py generate --prompt "..." [--background-file bg.txt] [--model llama3.1:8b]
                             [--out map.json] [--svg out.svg] [--debug-dir debug/]
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from causal_map import CausalMap, MapDecodeError
from chat_client import DEFAULT_MODEL, DEFAULT_RETRIES, ChatClientError, OllamaChatClient, preflight
from cld_render import RenderError, render_svg
from diagrammer import DEFAULT_MAX_TOKENS, CausalLoopDiagrammer
from response_schema import SCHEMA_VARIANTS


def summarize(causal_map: CausalMap) -> Dict[str, Any]:
    return {
        "title": causal_map.title,
        "explanation": causal_map.explanation,
        "variables": causal_map.variables().to_list(),
        "loops": causal_map.loops(),
    }


def print_summary(causal_map: CausalMap, as_json: bool) -> None:
    summary = summarize(causal_map)
    if as_json:
        print(json.dumps(summary, indent=2, ensure_ascii=False))
        return
    print("=" * 60)
    print(summary["title"] or "(untitled)")
    print("=" * 60)
    print(f"Variables ({len(summary['variables'])}):")
    for v in summary["variables"]:
        print(f"  - {v}")
    print(f"Loops ({len(summary['loops'])}):")
    for loop in summary["loops"]:
        print("  " + " -> ".join(loop))


def write_svg(causal_map: CausalMap, path: str) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(render_svg(causal_map))
    print(f"SVG written to {out}")


def cmd_loops(args: argparse.Namespace) -> int:
    causal_map = CausalMap.from_json(Path(args.file).read_text(encoding="utf-8"))
    print_summary(causal_map, args.json)
    if args.svg:
        write_svg(causal_map, args.svg)
    return 0


def cmd_generate(args: argparse.Namespace) -> int:
    background = ""
    if args.background_file:
        background = Path(args.background_file).read_text(encoding="utf-8").strip()

    client = OllamaChatClient(args.model, args.host, retries=args.retries, debug_dir=args.debug_dir)
    if not args.skip_preflight:
        preflight(client)

    diagrammer = CausalLoopDiagrammer(
        client,
        schema_variant=args.schema_variant,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
    )
    causal_map = diagrammer.generate(args.prompt, background)

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(causal_map.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"Map written to {out}")

    print_summary(causal_map, args.json)
    if args.svg:
        write_svg(causal_map, args.svg)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build causal loop diagrams and list their feedback loops.")
    parser.add_argument("--log-level", type=str, default=os.environ.get("CLD_LOG_LEVEL", "WARNING"))
    sub = parser.add_subparsers(dest="command", required=True)

    p_loops = sub.add_parser("loops", help="List variables and feedback loops of a map JSON file.")
    p_loops.add_argument("file", type=str)
    p_loops.add_argument("--json", action="store_true", help="Print a JSON summary.")
    p_loops.add_argument("--svg", type=str, default=None, help="Also render the diagram to this SVG file.")
    p_loops.set_defaults(func=cmd_loops)

    p_gen = sub.add_parser("generate", help="Ask an Ollama model for a causal loop diagram.")
    p_gen.add_argument("--prompt", type=str, required=True)
    p_gen.add_argument("--background-file", type=str, default=None)
    p_gen.add_argument("--model", type=str, default=DEFAULT_MODEL)
    p_gen.add_argument("--host", type=str, default=os.environ.get("OLLAMA_HOST"))
    p_gen.add_argument("--schema-variant", type=str, choices=sorted(SCHEMA_VARIANTS), default="causal_chains")
    p_gen.add_argument("--max-tokens", type=int, default=DEFAULT_MAX_TOKENS)
    p_gen.add_argument("--temperature", type=float, default=None)
    p_gen.add_argument("--retries", type=int, default=DEFAULT_RETRIES)
    p_gen.add_argument("--debug-dir", type=str, default=None, help="Keep request.json/response.json here.")
    p_gen.add_argument("--out", type=str, default=None, help="Write the decoded map JSON here.")
    p_gen.add_argument("--json", action="store_true", help="Print a JSON summary.")
    p_gen.add_argument("--svg", type=str, default=None, help="Also render the diagram to this SVG file.")
    p_gen.add_argument(
        "--skip-preflight",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Skip checking that the Ollama server is reachable (default: False).",
    )
    p_gen.set_defaults(func=cmd_generate)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (MapDecodeError, ChatClientError, RenderError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
