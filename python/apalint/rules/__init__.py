from apalint.rules.engine import ComplianceEngine, Rule, ValidationCache, default_rules
from apalint.rules.scoring import compliance_score, severity_counts

__all__ = [
    "ComplianceEngine",
    "Rule",
    "ValidationCache",
    "default_rules",
    "compliance_score",
    "severity_counts",
]
