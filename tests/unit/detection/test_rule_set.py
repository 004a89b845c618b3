"""Unit tests for DetectionRuleSet loading and ordering."""

import pytest

from app.services.detection.contracts import DetectionRule, RuleType
from app.services.detection.rule_set import DetectionRuleSet
from tests.fakes import FakeStore


def _rule(rule_id, company_id, value, priority, is_active=True, rule_type=RuleType.KEYWORD):
    return DetectionRule(
        id=rule_id,
        company_id=company_id,
        rule_type=rule_type,
        rule_value=value,
        priority=priority,
        is_active=is_active,
    )


def test_rules_are_sorted_by_priority_and_inactive_rules_dropped():
    rule_set = DetectionRuleSet(
        [
            _rule("1", "A", "a", 10),
            _rule("2", "B", "b", 90),
            _rule("3", "C", "c", 50, is_active=False),
            _rule("4", "D", "d", 90),
        ]
    )

    assert [rule.id for rule in rule_set] == ["2", "4", "1"]
    assert rule_set.companies() == ["B", "D", "A"]


def test_aliases_exclude_pattern_rules():
    rule_set = DetectionRuleSet(
        [
            _rule("1", "A", "エー商事", 100),
            _rule("2", "A", r"A\d+", 90, rule_type=RuleType.PATTERN),
            _rule("3", "A", "A-LOGO", 80, rule_type=RuleType.LOGO_TEXT),
        ]
    )

    assert rule_set.aliases_for("A") == ["エー商事", "A-LOGO"]


@pytest.mark.asyncio
async def test_load_without_source_uses_defaults():
    rule_set = await DetectionRuleSet.load(None)

    assert rule_set.origin == "default"
    assert "NOHARA_G" in rule_set.companies()


@pytest.mark.asyncio
async def test_load_from_store():
    store = FakeStore(rules=[_rule("1", "JUTEC", "ジューテック", 100)])

    rule_set = await DetectionRuleSet.load(store)

    assert rule_set.origin == "store"
    assert rule_set.companies() == ["JUTEC"]


@pytest.mark.asyncio
async def test_empty_store_is_not_replaced_by_defaults():
    rule_set = await DetectionRuleSet.load(FakeStore(rules=[]))

    assert rule_set.origin == "store"
    assert len(rule_set) == 0
