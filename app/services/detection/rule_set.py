"""Detection rule set loading with built-in fallback."""

from typing import Iterable, Iterator, List, Optional, Tuple

from app.services.detection.constants import DEFAULT_DETECTION_RULES, LITERAL_RULE_TYPES
from app.services.detection.contracts import DetectionRule
from app.services.store import DetectionRuleSource
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

ORIGIN_STORE = "store"
ORIGIN_DEFAULT = "default"


class DetectionRuleSet:
    """Immutable, priority-ordered collection of active detection rules."""

    def __init__(self, rules: Iterable[DetectionRule], origin: str = ORIGIN_STORE):
        active = [rule for rule in rules if rule.is_active]
        # sorted() is stable, so equal priorities keep their source order.
        self._rules: Tuple[DetectionRule, ...] = tuple(
            sorted(active, key=lambda rule: rule.priority, reverse=True)
        )
        self.origin = origin

    @classmethod
    def default(cls) -> "DetectionRuleSet":
        return cls(DEFAULT_DETECTION_RULES, origin=ORIGIN_DEFAULT)

    @classmethod
    async def load(cls, source: Optional[DetectionRuleSource]) -> "DetectionRuleSet":
        """Load active rules from the store, falling back to the built-in set.

        Args:
            source: Rule source, or None when no store is configured

        Returns:
            DetectionRuleSet: Rules from the store, or the defaults if the
            store is missing or the read fails
        """
        if source is None:
            LOGGER.info("No detection rule source configured, using default rules")
            return cls.default()

        try:
            rules = await source.list_active_rules()
        except Exception as e:
            LOGGER.warning(
                "Failed to load detection rules, using default rules",
                extra={"error": str(e)},
            )
            return cls.default()

        rule_set = cls(rules, origin=ORIGIN_STORE)
        if not rule_set:
            LOGGER.warning("Detection rule store returned no active rules")
        else:
            LOGGER.info(
                "Loaded detection rules",
                extra={"rule_count": len(rule_set), "origin": rule_set.origin},
            )
        return rule_set

    @property
    def rules(self) -> Tuple[DetectionRule, ...]:
        return self._rules

    def __iter__(self) -> Iterator[DetectionRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def companies(self) -> List[str]:
        """Company ids covered by the rules, in priority order of first appearance."""
        seen: List[str] = []
        for rule in self._rules:
            if rule.company_id not in seen:
                seen.append(rule.company_id)
        return seen

    def aliases_for(self, company_id: str) -> List[str]:
        """Literal rule values for a company, used to describe it in prompts."""
        return [
            rule.rule_value
            for rule in self._rules
            if rule.company_id == company_id and rule.rule_type in LITERAL_RULE_TYPES
        ]
