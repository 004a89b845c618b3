"""Company detection constants and built-in rules.

The built-in rule set is only used when the rule store is unavailable.
"""

from app.services.detection.contracts import DetectionRule, RuleType

# AI confidence at or above this skips the rule pass.
SHORT_CIRCUIT_THRESHOLD = 0.85

# Rule confidence = min(score / RULE_SCORE_NORMALIZER, RULE_CONFIDENCE_CAP)
RULE_SCORE_NORMALIZER = 200.0
RULE_CONFIDENCE_CAP = 0.95

# A single matched rule at this priority saturates the normalizer, which
# makes it a confirmed identifier for its company.
CONFIRMED_RULE_PRIORITY = 200

# Rule types matched as literal substrings of the extracted text.
LITERAL_RULE_TYPES = frozenset({RuleType.KEYWORD, RuleType.ADDRESS, RuleType.LOGO_TEXT})

DEFAULT_DETECTION_RULES = [
    DetectionRule(
        id="default-nohara-g-legal-name",
        company_id="NOHARA_G",
        rule_type=RuleType.KEYWORD,
        rule_value="野原グループ株式会社",
        priority=CONFIRMED_RULE_PRIORITY,
    ),
    DetectionRule(
        id="default-nohara-g-1",
        company_id="NOHARA_G",
        rule_type=RuleType.KEYWORD,
        rule_value="野原G住環境",
        priority=100,
    ),
    DetectionRule(
        id="default-nohara-g-2",
        company_id="NOHARA_G",
        rule_type=RuleType.KEYWORD,
        rule_value="野原G",
        priority=90,
    ),
    DetectionRule(
        id="default-nohara-g-3",
        company_id="NOHARA_G",
        rule_type=RuleType.KEYWORD,
        rule_value="野原グループ",
        priority=80,
    ),
    DetectionRule(
        id="default-katoubeniya-misawa-1",
        company_id="KATOUBENIYA_IKEBUKURO_MISAWA",
        rule_type=RuleType.KEYWORD,
        rule_value="加藤ベニヤ",
        priority=100,
    ),
    DetectionRule(
        id="default-katoubeniya-misawa-2",
        company_id="KATOUBENIYA_IKEBUKURO_MISAWA",
        rule_type=RuleType.KEYWORD,
        rule_value="ミサワホーム",
        priority=100,
    ),
    DetectionRule(
        id="default-katoubeniya-misawa-3",
        company_id="KATOUBENIYA_IKEBUKURO_MISAWA",
        rule_type=RuleType.KEYWORD,
        rule_value="加藤ベニヤ池袋",
        priority=95,
    ),
]
