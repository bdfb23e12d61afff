"""
Graphviz output for causal maps.

to_dot() only builds text; render_svg() shells out to the `dot` binary, which
must be installed separately (e.g. `apt install graphviz`).
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import List

from causal_map import CausalMap, normalize_variable

logger = logging.getLogger(__name__)


class RenderError(RuntimeError):
    pass


def _quote(name: str) -> str:
    # JSON string escaping is valid DOT quoting for our purposes
    return json.dumps(name, ensure_ascii=False)


def to_dot(causal_map: CausalMap) -> str:
    lines: List[str] = ["digraph {", "\toverlap=false", "\tmode=KK"]
    for r in causal_map.edges():
        lines.append(
            f"\t{_quote(normalize_variable(r.from_var))} -> {_quote(normalize_variable(r.to_var))}"
            f" [label={_quote(r.polarity.value)}]"
        )
    lines.append("}")
    return "\n".join(lines) + "\n"


def render_svg(
    causal_map: CausalMap,
    *,
    engine: str = "sfdp",
    dot_binary: str = "dot",
    timeout_s: float = 60,
) -> bytes:
    cmd = [dot_binary, "-Tsvg", f"-K{engine}"]
    logger.debug("rendering %r with %s", causal_map.title, " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            input=to_dot(causal_map).encode("utf-8"),
            capture_output=True,
            timeout=timeout_s,
            check=True,
        )
    except FileNotFoundError as e:
        raise RenderError(f"{dot_binary} not found; install Graphviz to render diagrams") from e
    except subprocess.TimeoutExpired as e:
        raise RenderError(f"{dot_binary} timed out after {timeout_s}s") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
        raise RenderError(f"{dot_binary} exited with {e.returncode}: {stderr}") from e
    return proc.stdout
