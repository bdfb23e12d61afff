"""
Loop translation evaluation: can a model recover known feedback loops from text?

Each case lays out a few synthetic feedback loops over nonsense variable names
(so the model cannot lean on world knowledge), renders them as plain English
background text, and asks the model to find all causal relationships. The
decoded map is scored against the expected map on variables and loops.

Usage:
  python loop_translation_eval.py --model llama3.1:8b --out-dir results
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from tqdm import tqdm

from causal_map import CausalMap, MapDecodeError, Polarity, Relationship
from chat_client import DEFAULT_MODEL, DEFAULT_RETRIES, ChatClientError, OllamaChatClient, preflight
from diagrammer import CausalLoopDiagrammer
from response_schema import SCHEMA_VARIANTS

PROMPT = "Please find all causal relationships in the background information."

NOUNS = [
    "frimbulator", "whatajig", "balack", "whoziewhat", "funkado", "maxabizer",
    "marticatene", "reflupper", "exeminte", "oc", "proptimatire", "priary",
    "houtal", "poval", "auspong", "dominitoxing", "outrance", "illigent",
    "yelb", "traze", "pablanksill", "posistorather", "crypteral", "oclate",
    "reveforly", "yoffa", "buwheal", "geyflorrin", "ih", "aferraron",
    "paffling", "pershipfulty", "copyring", "dickstonyx", "bellignorance",
    "hashtockle", "succupserva", "relity", "hazmick", "ku", "obvia",
    "unliescatice", "gissorm", "phildiscals", "loopnova", "hoza",
    "arinterpord", "burgination", "perstablintome", "memostorer", "baxtoy",
    "hensologic", "estintant", "perfecton", "raez", "younjuring",
]


@dataclass(frozen=True)
class LoopDef:
    polarity: Polarity
    length: int

    def __str__(self) -> str:
        return f"{{{self.polarity} len:{self.length}}}"


@dataclass(frozen=True)
class EvalCase:
    name: str
    background: str
    expected: CausalMap


def _loops(*defs: Tuple[str, int]) -> List[LoopDef]:
    return [LoopDef(Polarity(p), n) for p, n in defs]


DEFAULT_LAYOUTS: List[List[LoopDef]] = [
    _loops(("+", 3), ("+", 6)),
    _loops(("-", 3), ("+", 6)),
    _loops(("+", 5), ("+", 2), ("-", 4)),
    _loops(("-", 5), ("-", 2), ("+", 4)),
    _loops(("-", 3), ("+", 5), ("+", 6), ("+", 2), ("-", 6)),
    _loops(("-", 3), ("+", 5), ("+", 6), ("-", 2), ("-", 6)),
]


def generate_causal_relationship(
    from_var: str,
    to_var: str,
    polarity: Polarity,
    start_positive: bool,
) -> Tuple[str, Relationship]:
    if polarity.is_positive():
        from_mod, to_mod = ("more", "more") if start_positive else ("less", "less")
    else:
        from_mod, to_mod = ("more", "less") if start_positive else ("less", "more")

    english = f"The {from_mod} {from_var} there is, the {to_mod} {to_var} there is."
    return english, Relationship(from_var=from_var, to_var=to_var, polarity=polarity)


def generate_feedback_loop(names: Sequence[str], loop_polarity: Polarity) -> Tuple[str, List[Relationship]]:
    """Link `names` into a closed loop with the requested overall polarity.

    Every link is positive except the first link of a balancing (negative)
    loop, so the product of link signs equals `loop_polarity`.
    """
    lines: List[str] = []
    relationships: List[Relationship] = []
    for i, from_var in enumerate(names):
        to_var = names[(i + 1) % len(names)]
        polarity = Polarity.NEGATIVE if (i == 0 and not loop_polarity.is_positive()) else Polarity.POSITIVE
        english, relationship = generate_causal_relationship(from_var, to_var, polarity, i % 2 > 0)
        lines.append(english)
        relationships.append(relationship)
    return "\n".join(lines), relationships


def build_case(loop_defs: Sequence[LoopDef], nouns: Sequence[str] = NOUNS) -> EvalCase:
    """Lay out loops so that each one shares exactly one variable with the next."""
    texts: List[str] = []
    relationships: List[Relationship] = []
    n = 0
    for ld in loop_defs:
        if ld.length < 1:
            raise ValueError(f"loop length must be positive: {ld}")
        names = list(nouns[n : n + ld.length])
        if len(names) < ld.length:
            raise ValueError(f"not enough nouns for layout {[str(d) for d in loop_defs]}")
        n += ld.length - 1

        text, rels = generate_feedback_loop(names, ld.polarity)
        texts.append(text)
        relationships.extend(rels)

    name = "[" + " ".join(str(d) for d in loop_defs) + "]"
    return EvalCase(
        name=name,
        background="\n".join(texts),
        expected=CausalMap.from_relationships(relationships, title=name),
    )


def sanitize_dir_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]+", "_", name).strip("_")


def evaluate_case(diagrammer: CausalLoopDiagrammer, case: EvalCase) -> Dict[str, Any]:
    expected_vars = case.expected.variables()
    expected_loops = case.expected.loops()
    row: Dict[str, Any] = {
        "case": case.name,
        "expected_variables": len(expected_vars),
        "expected_loops": len(expected_loops),
        "found_variables": 0,
        "found_loops": 0,
        "variables_match": False,
        "loops_match": False,
        "error": "",
    }
    try:
        result = diagrammer.generate(PROMPT, case.background)
    except (ChatClientError, MapDecodeError) as e:
        row["error"] = str(e)
        return row

    found_vars = result.variables()
    found_loops = result.loops()
    row.update(
        {
            "found_variables": len(found_vars),
            "found_loops": len(found_loops),
            "variables_match": found_vars == expected_vars,
            "loops_match": found_loops == expected_loops,
            "map": result.to_dict(),
        }
    )
    return row


def _atomic_write_csv(path: Path, df: pd.DataFrame) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(tmp, index=False, encoding="utf-8")
    os.replace(tmp, path)


def run_cases(
    cases: Sequence[EvalCase],
    *,
    model: str,
    host: Optional[str],
    out_dir: Path,
    schema_variant: str,
    retries: int,
) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for case in tqdm(cases, desc="Loop translation", ncols=100):
        debug_dir = out_dir / "translation" / sanitize_dir_name(case.name)
        client = OllamaChatClient(model, host, retries=retries, debug_dir=debug_dir)
        diagrammer = CausalLoopDiagrammer(client, schema_variant=schema_variant)

        row = evaluate_case(diagrammer, case)
        result_map = row.pop("map", None)
        if result_map is not None:
            (debug_dir / "result.json").write_text(
                json.dumps(result_map, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        row["model"] = model
        rows.append(row)

    return pd.DataFrame(rows)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Score a model on recovering synthetic feedback loops.")
    parser.add_argument("--model", type=str, default=DEFAULT_MODEL)
    parser.add_argument("--host", type=str, default=os.environ.get("OLLAMA_HOST"))
    parser.add_argument("--out-dir", type=str, default=os.environ.get("CLD_OUT_DIR", "results"))
    parser.add_argument("--schema-variant", type=str, choices=sorted(SCHEMA_VARIANTS), default="causal_chains")
    parser.add_argument("--retries", type=int, default=DEFAULT_RETRIES)
    parser.add_argument("--max-cases", type=int, default=0, help="0 = all cases")
    parser.add_argument("--log-level", type=str, default="WARNING")
    parser.add_argument(
        "--skip-preflight",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Skip checking `ollama list` (default: False).",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    if not args.skip_preflight:
        preflight(OllamaChatClient(args.model, args.host))

    cases = [build_case(layout) for layout in DEFAULT_LAYOUTS]
    if args.max_cases and args.max_cases > 0:
        cases = cases[: args.max_cases]

    out_dir = Path(args.out_dir) / sanitize_dir_name(args.model.replace(":", "_"))
    df = run_cases(
        cases,
        model=args.model,
        host=args.host,
        out_dir=out_dir,
        schema_variant=args.schema_variant,
        retries=args.retries,
    )
    details_csv = out_dir / "translation_details.csv"
    _atomic_write_csv(details_csv, df)

    total = len(df)
    loops_ok = int(df["loops_match"].sum()) if total else 0
    vars_ok = int(df["variables_match"].sum()) if total else 0
    errors = int((df["error"] != "").sum()) if total else 0
    print(f"[Translation] loops match: {loops_ok}/{total}, variables match: {vars_ok}/{total}, errors: {errors}")
    print(f"[Translation] details -> {details_csv}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
