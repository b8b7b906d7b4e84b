from typing import Dict, Iterable, Optional

from apalint.config import SeverityWeights
from apalint.models import Issue, Severity


def severity_counts(issues: Iterable[Issue]) -> Dict[str, int]:
    counts = {severity.value: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity.value] += 1
    return counts


def compliance_score(issues: Iterable[Issue], weights: Optional[SeverityWeights] = None) -> int:
    """
    100 minus the weighted issue count, clamped to 0..100.
    """
    weights = weights or SeverityWeights()
    counts = severity_counts(issues)
    penalty = (
        weights.critical * counts[Severity.CRITICAL.value]
        + weights.major * counts[Severity.MAJOR.value]
        + weights.minor * counts[Severity.MINOR.value]
    )
    return max(0, min(100, round(100 - penalty)))
