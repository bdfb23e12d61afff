"""
JSON Schemas handed to the model as its response format.

Two shapes exist: the older flat relationship list and the causal-chain list.
Both decode into causal_map.CausalMap.
"""

from __future__ import annotations

from typing import Any, Dict

SCHEMA_URL = "http://json-schema.org/draft-07/schema#"

POLARITY_DESCRIPTION = (
    "There are two possible kinds of relationships. Relationships with positive polarity are "
    "represented with a + symbol: a change in the cause leads to a change in the same direction "
    "in the effect (a decrease in the cause leads to a decrease in the effect). Relationships with "
    "negative polarity are represented with a - symbol: a change in the cause leads to a change in "
    "the opposite direction in the effect (an increase in the cause leads to a decrease in the effect)."
)

_TITLE = {
    "type": "string",
    "description": "A highly descriptive 7 word max title describing your explanation.",
}
_EXPLANATION = {
    "type": "string",
    "description": (
        "Concisely explain your reasoning for each change you made to the old CLD to create the new CLD. "
        "Speak in plain English, don't reference json specifically. Don't reiterate the request or any "
        "of these instructions."
    ),
}
_POLARITY = {"type": "string", "enum": ["+", "-"], "description": POLARITY_DESCRIPTION}


RELATIONSHIPS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "$schema": SCHEMA_URL,
    "type": "object",
    "properties": {
        "explanation": _EXPLANATION,
        "title": _TITLE,
        "relationships": {
            "type": "array",
            "description": (
                "The list of relationships you think are appropriate to satisfy my request based on all "
                "of the information I have given you"
            ),
            "items": {
                "type": "object",
                "description": (
                    "A relationship between two variables, from and to (from is the cause, to is the effect). "
                    "The polarity describes how a change in the from variable impacts the to variable"
                ),
                "properties": {
                    "from": {
                        "type": "string",
                        "description": "The variable which causes the to variable; the equivalent of a cause.",
                    },
                    "to": {
                        "type": "string",
                        "description": "The variable which is impacted by the from variable; the equivalent of an effect.",
                    },
                    "polarity": _POLARITY,
                    "reasoning": {
                        "type": "string",
                        "description": "An explanation for why this relationship exists",
                    },
                    "polarityReasoning": {
                        "type": "string",
                        "description": "The reason why the polarity for this relationship was chosen",
                    },
                },
                "required": ["from", "to", "polarity", "reasoning", "polarityReasoning"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["explanation", "title", "relationships"],
    "additionalProperties": False,
}


CAUSAL_CHAINS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "$schema": SCHEMA_URL,
    "type": "object",
    "properties": {
        "explanation": _EXPLANATION,
        "title": _TITLE,
        "causal_chains": {
            "type": "array",
            "description": (
                "The causal chains you think are appropriate to satisfy my request. Each chain starts at "
                "an initial variable and follows cause to effect, one variable at a time"
            ),
            "items": {
                "type": "object",
                "properties": {
                    "initial_variable": {
                        "type": "string",
                        "description": "The first cause in this chain",
                    },
                    "relationships": {
                        "type": "array",
                        "description": (
                            "The variables this chain passes through, in order. Each one is caused by the "
                            "variable before it (the initial variable for the first entry)"
                        ),
                        "items": {
                            "type": "object",
                            "properties": {
                                "variable": {
                                    "type": "string",
                                    "description": "The effect of the previous variable in the chain",
                                },
                                "polarity": _POLARITY,
                                "polarity_reasoning": {
                                    "type": "string",
                                    "description": "The reason why the polarity for this link was chosen",
                                },
                            },
                            "required": ["variable", "polarity", "polarity_reasoning"],
                            "additionalProperties": False,
                        },
                    },
                    "reasoning": {
                        "type": "string",
                        "description": "An explanation for why this chain of relationships exists",
                    },
                },
                "required": ["initial_variable", "relationships", "reasoning"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["explanation", "title", "causal_chains"],
    "additionalProperties": False,
}


SCHEMA_VARIANTS: Dict[str, Dict[str, Any]] = {
    "relationships": RELATIONSHIPS_RESPONSE_SCHEMA,
    "causal_chains": CAUSAL_CHAINS_RESPONSE_SCHEMA,
}


def schema_for(variant: str) -> Dict[str, Any]:
    try:
        return SCHEMA_VARIANTS[variant]
    except KeyError:
        raise ValueError(
            f"unknown schema variant {variant!r}; expected one of {sorted(SCHEMA_VARIANTS)}"
        ) from None
