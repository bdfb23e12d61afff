"""
Tests for the causal map data model: normalization, variable sets, both
response shapes, and loop extraction on whole maps.
"""

import json
import threading

import pytest

from causal_map import (
    CausalChain,
    CausalMap,
    MapDecodeError,
    Polarity,
    Relationship,
    RelationshipEntry,
    VariableSet,
    chain_edges,
    normalize_variable,
)


def _rel(frm, to, polarity="+"):
    return Relationship(from_var=frm, to_var=to, polarity=Polarity(polarity))


AMERICAN_REVOLUTION = CausalMap(
    title="American Revolution Onset",
    explanation="Based on historical context and user input,",
    relationships=(
        Relationship("Tax Burden", "Tensions", Polarity.POSITIVE,
                     "The British government imposed various taxes.",
                     "An increase in Tax Burden led to an increase in Tensions."),
        Relationship("Tax Burden", "Resistance", Polarity.POSITIVE,
                     "High taxes fueled protests and boycotts.",
                     "An increase in Tax Burden led to an increase in Resistance."),
        Relationship("Tensions", "Clashes", Polarity.POSITIVE,
                     "Escalating tensions raised the probability of violent confrontations.",
                     "Rising Tensions increased the likelihood of Clashes."),
        Relationship("Resistance", "Clashes", Polarity.POSITIVE,
                     "Increased resistance heightened the risk of confrontations.",
                     "As Resistance grew, so did the likelihood of Clashes."),
        Relationship("Clashes", "Tensions", Polarity.POSITIVE,
                     "Violent encounters intensified hostility and mistrust.",
                     "An increase in Clashes increased Tensions further."),
        Relationship("Clashes", "Resistance", Polarity.POSITIVE,
                     "Each clash galvanized support for independence.",
                     "An increase in Clashes also increased Resistance."),
        Relationship("Tensions", "Tax Burden", Polarity.POSITIVE,
                     "Britain responded with stricter enforcement and additional taxation.",
                     "Increased Tensions led to increased Tax Burden."),
    ),
)

ROAD_RAGE_CHAINS = """{
  "title": "Societal Factors Fueling Road Rage Cycles",
  "explanation": "Stress, aggression and perceived injustice on roadways fuel escalating anger.",
  "causal_chains": [
    {
      "initial_variable": "Traffic Congestion",
      "relationships": [
        {"variable": "Stress Levels", "polarity": "+", "polarity_reasoning": "Traffic leads to frustration."},
        {"variable": "Road Rage Incidents", "polarity": "+", "polarity_reasoning": "Stress exacerbates reactions."},
        {"variable": "Aggressive Driving Behaviors", "polarity": "+", "polarity_reasoning": "Incidents set a precedent."},
        {"variable": "Road Rage Incidents", "polarity": "+", "polarity_reasoning": "Aggressive driving provokes others."}
      ],
      "reasoning": "Congestion stresses drivers, and road rage feeds on itself."
    },
    {
      "initial_variable": "Poor Traffic Laws Enforcement",
      "relationships": [
        {"variable": "aggressive driving behaviors ", "polarity": "+", "polarity_reasoning": "Few consequences."}
      ],
      "reasoning": "Lack of enforcement makes risky driving more common."
    }
  ]
}"""


# ===== normalization and the variable set =====

def test_normalize_variable_trims_and_casefolds():
    assert normalize_variable("  Tax Burden ") == "tax burden"
    assert normalize_variable("TENSIONS") == normalize_variable("tensions")
    assert normalize_variable("") == ""


def test_variable_set_is_idempotent_and_sorted():
    s = VariableSet()
    for name in ["b", "a", "c", "a", "b"]:
        s.add(name)

    assert len(s) == 3
    assert s.to_list() == ["a", "b", "c"]
    assert list(s) == ["a", "b", "c"]
    assert s.contains("a")
    assert "z" not in s


def test_variable_set_equality_ignores_insertion_order():
    assert VariableSet(["x", "y", "z"]) == VariableSet(["z", "x", "y", "x"])
    assert VariableSet(["x"]) != VariableSet(["x", "y"])
    assert VariableSet(["x", "y"]) == {"y", "x"}


# ===== variables =====

def test_variables_are_normalized_endpoints():
    vars_ = AMERICAN_REVOLUTION.variables()
    assert vars_ == VariableSet(["tax burden", "resistance", "clashes", "tensions"])


def test_spelling_variants_collapse_to_one_variable():
    m = CausalMap(relationships=(_rel("Birth Rate", "Population"), _rel(" population", "birth rate ")))
    assert m.variables().to_list() == ["birth rate", "population"]
    assert m.loops() == [["birth rate", "population", "birth rate"]]


def test_empty_map_has_no_variables_or_loops():
    m = CausalMap()
    assert len(m.variables()) == 0
    assert m.loops() == []


def test_blank_names_are_literal_empty_vertices():
    m = CausalMap(relationships=(_rel("", "a"), _rel("a", "  ")))
    assert m.variables().to_list() == ["", "a"]
    assert m.loops() == [["", "a", ""]]


# ===== loops on whole maps =====

def test_american_revolution_loops():
    loops = AMERICAN_REVOLUTION.loops()
    assert loops == [
        ["clashes", "resistance", "clashes"],
        ["clashes", "tensions", "clashes"],
        ["tax burden", "tensions", "tax burden"],
        ["clashes", "tensions", "tax burden", "resistance", "clashes"],
    ]


def test_loops_are_idempotent():
    assert AMERICAN_REVOLUTION.loops() == AMERICAN_REVOLUTION.loops()


def test_loops_ignore_relationship_order():
    reordered = CausalMap(relationships=tuple(reversed(AMERICAN_REVOLUTION.relationships)))
    assert reordered.loops() == AMERICAN_REVOLUTION.loops()


def test_loops_from_concurrent_callers_agree():
    expected = AMERICAN_REVOLUTION.loops()
    results = []

    def worker():
        results.append(AMERICAN_REVOLUTION.loops())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == [expected] * 8


def test_acyclic_map_has_no_loops():
    m = CausalMap(relationships=(_rel("a", "b"), _rel("b", "c"), _rel("a", "c")))
    assert len(m.variables()) == 3
    assert m.loops() == []


# ===== chains =====

def test_chain_of_n_entries_yields_n_edges():
    chain = CausalChain(
        initial_variable="A",
        relationships=(
            RelationshipEntry("B", Polarity.POSITIVE, "ab"),
            RelationshipEntry("C", Polarity.NEGATIVE, "bc"),
            RelationshipEntry("D", Polarity.POSITIVE, "cd"),
        ),
        reasoning="chain reasoning",
    )
    edges = chain_edges([chain])

    assert [(e.from_var, e.to_var) for e in edges] == [("A", "B"), ("B", "C"), ("C", "D")]
    assert [e.polarity for e in edges] == [Polarity.POSITIVE, Polarity.NEGATIVE, Polarity.POSITIVE]
    assert all(e.reasoning == "chain reasoning" for e in edges)
    assert edges[1].polarity_reasoning == "bc"


def test_chain_with_no_entries_yields_no_edges():
    m = CausalMap(causal_chains=(CausalChain("lonely"),))
    assert m.edges() == ()
    assert len(m.variables()) == 0


def test_decode_chain_shape():
    m = CausalMap.from_json(ROAD_RAGE_CHAINS)

    assert m.title == "Societal Factors Fueling Road Rage Cycles"
    assert m.relationships == ()
    assert len(m.causal_chains) == 2
    assert len(m.edges()) == 5
    assert m.variables().to_list() == [
        "aggressive driving behaviors",
        "poor traffic laws enforcement",
        "road rage incidents",
        "stress levels",
        "traffic congestion",
    ]
    assert m.loops() == [["aggressive driving behaviors", "road rage incidents", "aggressive driving behaviors"]]


def test_outgoing_edges_keep_multi_edges_and_source_order():
    m = CausalMap.from_json(ROAD_RAGE_CHAINS)
    outgoing = m.outgoing_edges()

    assert list(outgoing) == [
        "traffic congestion",
        "stress levels",
        "road rage incidents",
        "aggressive driving behaviors",
        "poor traffic laws enforcement",
    ]
    assert outgoing["aggressive driving behaviors"] == ["road rage incidents"]

    doubled = CausalMap(relationships=(_rel("a", "b"), _rel("A", "B", "-")))
    assert doubled.outgoing_edges() == {"a": ["b", "b"]}


def test_from_relationships_builds_equivalent_chain_map():
    m = CausalMap.from_relationships(AMERICAN_REVOLUTION.relationships, title="x")

    assert m.relationships == ()
    assert len(m.causal_chains) == len(AMERICAN_REVOLUTION.relationships)
    assert m.edges() == AMERICAN_REVOLUTION.edges()
    assert m.variables() == AMERICAN_REVOLUTION.variables()
    assert m.loops() == AMERICAN_REVOLUTION.loops()


# ===== decoding =====

def test_decode_flat_shape():
    doc = {
        "title": "t",
        "explanation": "e",
        "relationships": [
            {"from": "A", "to": "B", "polarity": "-", "reasoning": "r", "polarityReasoning": "pr"},
        ],
    }
    m = CausalMap.from_json(json.dumps(doc))

    assert m.relationships == (Relationship("A", "B", Polarity.NEGATIVE, "r", "pr"),)
    assert m.causal_chains == ()


@pytest.mark.parametrize(
    "m",
    [AMERICAN_REVOLUTION, CausalMap.from_json(ROAD_RAGE_CHAINS), CausalMap(title="empty")],
    ids=["flat", "chains", "empty"],
)
def test_to_dict_round_trips(m):
    assert CausalMap.from_dict(json.loads(json.dumps(m.to_dict()))) == m


@pytest.mark.parametrize(
    "text, where",
    [
        ("{not json", "invalid JSON"),
        ("[" * 200000, "invalid JSON"),
        ("[]", "$: expected object"),
        ('{"title": "t", "explanation": "e"}', "causal_chains"),
        ('{"explanation": "e", "relationships": []}', "$.title: missing"),
        ('{"title": 1, "explanation": "e", "relationships": []}', "$.title: expected string"),
        ('{"title": "t", "explanation": "e", "relationships": {}}', "$.relationships: expected array"),
        ('{"title": "t", "explanation": "e", "relationships": ["x"]}', "$.relationships[0]: expected object"),
        (
            '{"title": "t", "explanation": "e", "relationships": '
            '[{"from": "a", "to": "b", "polarity": "?", "reasoning": "", "polarityReasoning": ""}]}',
            "$.relationships[0].polarity",
        ),
        (
            '{"title": "t", "explanation": "e", "causal_chains": '
            '[{"initial_variable": "a", "relationships": [{"variable": "b", "polarity": "+"}], "reasoning": ""}]}',
            "$.causal_chains[0].relationships[0].polarity_reasoning: missing",
        ),
    ],
)
def test_decode_errors_name_the_offending_path(text, where):
    with pytest.raises(MapDecodeError) as excinfo:
        CausalMap.from_json(text)
    assert where in str(excinfo.value)


def test_decode_error_is_a_value_error():
    with pytest.raises(ValueError):
        CausalMap.from_json("")


def test_decode_prefers_chains_and_warns_when_both_shapes_are_present(caplog):
    doc = {
        "title": "both",
        "explanation": "",
        "causal_chains": [{
            "initial_variable": "A",
            "relationships": [{"variable": "B", "polarity": "+", "polarity_reasoning": ""}],
            "reasoning": "",
        }],
        "relationships": [
            {"from": "X", "to": "Y", "polarity": "-", "reasoning": "", "polarityReasoning": ""},
        ],
    }

    with caplog.at_level("WARNING", logger="causal_map"):
        m = CausalMap.from_dict(doc)

    assert m.relationships == ()
    assert m.variables().to_list() == ["a", "b"]
    assert "ignoring relationships" in caplog.text


# ===== exports =====

def test_to_networkx_keeps_multi_edges_and_attributes():
    m = CausalMap(relationships=(
        Relationship("A", "B", Polarity.POSITIVE, "first"),
        Relationship("a", "b", Polarity.NEGATIVE, "second"),
        Relationship("B", "C"),
    ))
    G = m.to_networkx()

    assert sorted(G.nodes) == ["a", "b", "c"]
    assert G.number_of_edges() == 3
    assert G.number_of_edges("a", "b") == 2
    assert sorted(d["polarity"] for _, _, d in G.edges("a", data=True)) == ["+", "-"]


def test_polarity_helpers():
    assert Polarity("+") is Polarity.POSITIVE
    assert Polarity.POSITIVE.is_positive()
    assert not Polarity.NEGATIVE.is_positive()
    assert str(Polarity.NEGATIVE) == "-"
