"""
Causal map data model for causal loop diagrams (CLDs).

A map is decoded from a schema-constrained LLM response and comes in two
shapes:

- flat:   {"title", "explanation", "relationships": [{"from", "to", ...}]}
- chains: {"title", "explanation", "causal_chains": [{"initial_variable",
           "relationships": [{"variable", ...}], "reasoning"}]}

Both shapes collapse into one edge list; variables are compared by their
normalized name (trimmed and case-folded), so "Tax Burden" and " tax burden"
are the same node.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Tuple

import networkx as nx

from loop_finder import close_and_sort, find_cycles

logger = logging.getLogger(__name__)


class MapDecodeError(ValueError):
    """Raised when a response body cannot be decoded into a CausalMap."""


def normalize_variable(name: str) -> str:
    return name.strip().casefold()


class VariableSet:
    """Set of variable names whose only observable order is sorted order."""

    def __init__(self, elements: Iterable[str] = ()):
        self._elements: set = set()
        for element in elements:
            self.add(element)

    def add(self, element: str) -> None:
        self._elements.add(element)

    def contains(self, element: str) -> bool:
        return element in self._elements

    def to_list(self) -> List[str]:
        return sorted(self._elements)

    def __contains__(self, element: object) -> bool:
        return element in self._elements

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_list())

    def __len__(self) -> int:
        return len(self._elements)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, VariableSet):
            return self._elements == other._elements
        if isinstance(other, (set, frozenset)):
            return self._elements == other
        return NotImplemented

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"VariableSet({self.to_list()!r})"


class Polarity(str, Enum):
    POSITIVE = "+"
    NEGATIVE = "-"

    def is_positive(self) -> bool:
        return self is Polarity.POSITIVE

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Relationship:
    from_var: str
    to_var: str
    polarity: Polarity = Polarity.POSITIVE
    reasoning: str = ""
    polarity_reasoning: str = ""


@dataclass(frozen=True)
class RelationshipEntry:
    variable: str
    polarity: Polarity = Polarity.POSITIVE
    polarity_reasoning: str = ""


@dataclass(frozen=True)
class CausalChain:
    initial_variable: str
    relationships: Tuple[RelationshipEntry, ...] = ()
    reasoning: str = ""


def relationship_edges(relationships: Iterable[Relationship]) -> List[Relationship]:
    return list(relationships)


def chain_edges(causal_chains: Iterable[CausalChain]) -> List[Relationship]:
    """Expand each chain into one edge per entry.

    initial -> e0, e0 -> e1, ..., e(n-2) -> e(n-1). Edges carry the entry
    polarity and the chain-level reasoning.
    """
    edges: List[Relationship] = []
    for chain in causal_chains:
        prev = chain.initial_variable
        for entry in chain.relationships:
            edges.append(
                Relationship(
                    from_var=prev,
                    to_var=entry.variable,
                    polarity=entry.polarity,
                    reasoning=chain.reasoning,
                    polarity_reasoning=entry.polarity_reasoning,
                )
            )
            prev = entry.variable
    return edges


@dataclass(frozen=True)
class CausalMap:
    title: str = ""
    explanation: str = ""
    relationships: Tuple[Relationship, ...] = field(default=())
    causal_chains: Tuple[CausalChain, ...] = field(default=())

    # ===== construction =====

    @classmethod
    def from_relationships(
        cls,
        relationships: Iterable[Relationship],
        title: str = "",
        explanation: str = "",
    ) -> "CausalMap":
        """Build the chain-based equivalent of a flat relationship list."""
        chains = tuple(
            CausalChain(
                initial_variable=r.from_var,
                relationships=(RelationshipEntry(r.to_var, r.polarity, r.polarity_reasoning),),
                reasoning=r.reasoning,
            )
            for r in relationships
        )
        return cls(title=title, explanation=explanation, causal_chains=chains)

    @classmethod
    def from_json(cls, text: str | bytes) -> "CausalMap":
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise MapDecodeError(f"invalid JSON: {e}") from e
        except RecursionError as e:
            raise MapDecodeError("invalid JSON: nesting too deep") from e
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> "CausalMap":
        if not isinstance(data, dict):
            raise MapDecodeError(f"$: expected object, got {type(data).__name__}")

        title = _require_str(data, "title", "$")
        explanation = _require_str(data, "explanation", "$")

        if "causal_chains" in data:
            if "relationships" in data:
                logger.warning("%r has both causal_chains and relationships; ignoring relationships", title)
            chains = tuple(
                _decode_chain(item, f"$.causal_chains[{i}]")
                for i, item in enumerate(_require_list(data, "causal_chains", "$"))
            )
            return cls(title=title, explanation=explanation, causal_chains=chains)

        if "relationships" in data:
            relationships = tuple(
                _decode_relationship(item, f"$.relationships[{i}]")
                for i, item in enumerate(_require_list(data, "relationships", "$"))
            )
            return cls(title=title, explanation=explanation, relationships=relationships)

        raise MapDecodeError("$: expected 'causal_chains' or 'relationships'")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"title": self.title, "explanation": self.explanation}
        if self.causal_chains or not self.relationships:
            out["causal_chains"] = [
                {
                    "initial_variable": c.initial_variable,
                    "relationships": [
                        {
                            "variable": e.variable,
                            "polarity": e.polarity.value,
                            "polarity_reasoning": e.polarity_reasoning,
                        }
                        for e in c.relationships
                    ],
                    "reasoning": c.reasoning,
                }
                for c in self.causal_chains
            ]
        if self.relationships:
            out["relationships"] = [
                {
                    "from": r.from_var,
                    "to": r.to_var,
                    "polarity": r.polarity.value,
                    "reasoning": r.reasoning,
                    "polarityReasoning": r.polarity_reasoning,
                }
                for r in self.relationships
            ]
        return out

    # ===== derived views =====

    def edges(self) -> Tuple[Relationship, ...]:
        return tuple(relationship_edges(self.relationships) + chain_edges(self.causal_chains))

    def outgoing_edges(self) -> Dict[str, List[str]]:
        """Adjacency over normalized names.

        Keys appear in the order their vertex first shows up as an edge
        source; destinations keep edge order and are not deduplicated.
        """
        outgoing: Dict[str, List[str]] = {}
        for r in self.edges():
            outgoing.setdefault(normalize_variable(r.from_var), []).append(normalize_variable(r.to_var))
        return outgoing

    def variables(self) -> VariableSet:
        names = VariableSet()
        for r in self.edges():
            names.add(normalize_variable(r.from_var))
            names.add(normalize_variable(r.to_var))
        return names

    def loops(self) -> List[List[str]]:
        """All feedback loops, each closed (first == last) and sorted by length then name."""
        loops = close_and_sort(find_cycles(self.outgoing_edges()))
        logger.debug("found %d loops in %r", len(loops), self.title)
        return loops

    def to_networkx(self) -> nx.MultiDiGraph:
        G = nx.MultiDiGraph()
        for r in self.edges():
            G.add_edge(
                normalize_variable(r.from_var),
                normalize_variable(r.to_var),
                polarity=r.polarity.value,
                reasoning=r.reasoning,
                polarity_reasoning=r.polarity_reasoning,
            )
        return G


# ===== decoding helpers =====

def _require_str(obj: Dict[str, Any], key: str, path: str) -> str:
    if key not in obj:
        raise MapDecodeError(f"{path}.{key}: missing")
    value = obj[key]
    if not isinstance(value, str):
        raise MapDecodeError(f"{path}.{key}: expected string, got {type(value).__name__}")
    return value


def _require_list(obj: Dict[str, Any], key: str, path: str) -> list:
    if key not in obj:
        raise MapDecodeError(f"{path}.{key}: missing")
    value = obj[key]
    if not isinstance(value, list):
        raise MapDecodeError(f"{path}.{key}: expected array, got {type(value).__name__}")
    return value


def _require_object(value: Any, path: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise MapDecodeError(f"{path}: expected object, got {type(value).__name__}")
    return value


def _decode_polarity(obj: Dict[str, Any], path: str) -> Polarity:
    raw = _require_str(obj, "polarity", path)
    try:
        return Polarity(raw.strip())
    except ValueError as e:
        raise MapDecodeError(f"{path}.polarity: expected '+' or '-', got {raw!r}") from e


def _decode_relationship(item: Any, path: str) -> Relationship:
    obj = _require_object(item, path)
    return Relationship(
        from_var=_require_str(obj, "from", path),
        to_var=_require_str(obj, "to", path),
        polarity=_decode_polarity(obj, path),
        reasoning=_require_str(obj, "reasoning", path),
        polarity_reasoning=_require_str(obj, "polarityReasoning", path),
    )


def _decode_entry(item: Any, path: str) -> RelationshipEntry:
    obj = _require_object(item, path)
    return RelationshipEntry(
        variable=_require_str(obj, "variable", path),
        polarity=_decode_polarity(obj, path),
        polarity_reasoning=_require_str(obj, "polarity_reasoning", path),
    )


def _decode_chain(item: Any, path: str) -> CausalChain:
    obj = _require_object(item, path)
    entries = tuple(
        _decode_entry(e, f"{path}.relationships[{i}]")
        for i, e in enumerate(_require_list(obj, "relationships", path))
    )
    return CausalChain(
        initial_variable=_require_str(obj, "initial_variable", path),
        relationships=entries,
        reasoning=_require_str(obj, "reasoning", path),
    )


__all__ = [
    "MapDecodeError",
    "normalize_variable",
    "VariableSet",
    "Polarity",
    "Relationship",
    "RelationshipEntry",
    "CausalChain",
    "relationship_edges",
    "chain_edges",
    "CausalMap",
]
