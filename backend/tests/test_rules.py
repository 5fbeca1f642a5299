import json

import pytest

from rendezvous.agent.rules import (
    DEFAULT_RULE,
    AllRule,
    AnyRule,
    AttendanceGroup,
    GroupAnyRule,
    InvalidRuleError,
    KOfNRule,
    RequiredPlusKRule,
    dump_rule,
    parse_rule,
)

def test_parse_strict_documents():
    assert parse_rule({"version": 2, "type": "ANY"}) == AnyRule()
    assert parse_rule({"version": 2, "type": "ALL", "participants": ["u:a", "u:b"]}) == AllRule(participants=["u:a", "u:b"])
    assert parse_rule({"version": 2, "type": "K_OF_N", "participants": ["a", "b", "c"], "k": 2}).k == 2
    rule = parse_rule({"version": 2, "type": "REQUIRED_PLUS_K", "required": ["a"], "optional": ["b", "c"], "quorum": 1})
    assert rule == RequiredPlusKRule(required=["a"], optional=["b", "c"], quorum=1)
    rule = parse_rule({"version": 2, "type": "GROUP_ANY", "groups": [{"id": "eng", "members": ["a", "b"]}]})
    assert rule == GroupAnyRule(groups=[AttendanceGroup(id="eng", members=["a", "b"])])

def test_defaults_for_k_and_quorum():
    assert parse_rule({"version": 2, "type": "K_OF_N", "participants": ["a"]}).k == 1
    assert parse_rule({"version": 2, "type": "REQUIRED_PLUS_K", "required": ["a"]}).quorum == 1

def test_legacy_grab_bag_documents_are_upgraded():
    rule = parse_rule({
        "version": 1,
        "type": "K_OF_N",
        "participants": ["u:a", "u:b", "e:c"],
        "k": 2,
        "required": ["ignored"],
        "groups": [],
    })
    assert rule == KOfNRule(participants=["u:a", "u:b", "e:c"], k=2)

    assert parse_rule({"version": 1, "type": "ANY", "participants": []}) == AnyRule()

def test_legacy_zero_k_and_quorum_mean_default():
    assert parse_rule({"version": 1, "type": "K_OF_N", "participants": ["a"], "k": 0}).k == 1
    assert parse_rule({"version": 1, "type": "REQUIRED_PLUS_K", "required": ["a"], "quorum": 0}).quorum == 1

def test_parse_json_text():
    assert parse_rule('{"version": 2, "type": "ALL", "participants": ["a"]}') == AllRule(participants=["a"])

@pytest.mark.parametrize("document", [
    {"type": "ANY"},
    {"version": 3, "type": "ANY"},
    {"version": 1, "type": "EXPRESSION", "expression": "a && b"},
    {"version": 2, "type": "MAJORITY"},
    {"version": 2, "type": "K_OF_N", "participants": ["a"], "k": 0},
    {"version": 2, "type": "ALL"},
    {"version": 2, "type": "ANY", "participants": ["a"]},
    {"version": 2, "type": "REQUIRED_PLUS_K", "quorum": -1},
    "not json",
    42,
])
def test_uninterpretable_documents_raise(document):
    with pytest.raises(InvalidRuleError):
        parse_rule(document)

def test_invalid_rule_error_is_a_value_error():
    assert issubclass(InvalidRuleError, ValueError)

def test_dump_always_writes_the_strict_version():
    upgraded = parse_rule({"version": 1, "type": "REQUIRED_PLUS_K", "required": ["a"], "optional": ["b"]})

    document = dump_rule(upgraded)

    assert document == {"version": 2, "type": "REQUIRED_PLUS_K", "required": ["a"], "optional": ["b"], "quorum": 1}
    assert parse_rule(json.loads(json.dumps(document))) == upgraded

def test_default_rule_is_any():
    assert DEFAULT_RULE.type == "ANY"

@pytest.mark.parametrize("document, expected", [
    ({"version": 1, "type": "ALL", "participants": []}, AllRule(participants=[])),
    ({"version": 1, "type": "ALL"}, AllRule(participants=[])),
    ({"version": 1, "type": "K_OF_N", "participants": [], "k": 2}, KOfNRule(participants=[], k=2)),
    ({"version": 1, "type": "K_OF_N"}, KOfNRule(participants=[])),
])
def test_legacy_documents_with_empty_pools_stay_readable(document, expected):
    rule = parse_rule(document)

    assert rule == expected
    assert parse_rule(dump_rule(rule)) == rule
