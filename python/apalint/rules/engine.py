"""
Rule registry and validation cache.
"""

import hashlib
import json
from collections import OrderedDict
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence

import structlog

from apalint.config import EngineSettings
from apalint.models import Issue
from apalint.rules.citations import check_citations
from apalint.rules.formatting import check_formatting
from apalint.rules.quotations import check_quotations
from apalint.rules.references import check_references
from apalint.rules.statistics import check_statistics
from apalint.rules.structure import check_structure
from apalint.rules.tables_figures import check_tables_and_figures

logger = structlog.get_logger(__name__)

RuleCheck = Callable[[str, Optional[Dict[str, Any]], Optional[Dict[str, Any]]], List[Issue]]


class Rule(NamedTuple):
    name: str
    check: RuleCheck


def default_rules(settings: EngineSettings) -> List[Rule]:
    return [
        Rule("citations", check_citations),
        Rule("references", check_references),
        Rule("tables_figures", check_tables_and_figures),
        Rule("quotations", partial(check_quotations, targets=settings.targets)),
        Rule("formatting", partial(check_formatting, targets=settings.targets)),
        Rule("structure", check_structure),
        Rule("statistics", check_statistics),
    ]


def cache_key(text: str, structure: Optional[Dict[str, Any]], formatting: Optional[Dict[str, Any]]) -> str:
    digest = hashlib.sha256(text.encode("utf-8"))
    for part in (structure, formatting):
        digest.update(b"\x00")
        digest.update(json.dumps(part, sort_keys=True, default=str).encode("utf-8"))
    return digest.hexdigest()


class ValidationCache:
    """
    Bounded LRU of validation results. Stores and returns deep copies so a
    caller mutating its issues cannot affect later hits.
    """

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self._entries: "OrderedDict[str, List[Issue]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[List[Issue]]:
        issues = self._entries.get(key)
        if issues is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return [issue.model_copy(deep=True) for issue in issues]

    def put(self, key: str, issues: Iterable[Issue]):
        if self.capacity <= 0:
            return
        self._entries[key] = [issue.model_copy(deep=True) for issue in issues]
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def clear(self):
        self._entries.clear()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key: str):
        return key in self._entries


class ComplianceEngine:
    """
    Runs every enabled rule over (text, structure, formatting) and
    concatenates their issues in registration order.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        rules: Optional[Sequence[Rule]] = None,
        disabled: Iterable[str] = (),
        cache: Optional[ValidationCache] = None,
    ):
        self.settings = settings or EngineSettings()
        self.disabled = set(self.settings.disabled_rules) | set(disabled)
        all_rules = list(rules) if rules is not None else default_rules(self.settings)
        self.rules = [rule for rule in all_rules if rule.name not in self.disabled]
        self.cache = cache if cache is not None else ValidationCache(self.settings.cache_capacity)

    @property
    def rule_names(self) -> List[str]:
        return [rule.name for rule in self.rules]

    def validate(
        self,
        text: str,
        structure: Optional[Dict[str, Any]] = None,
        formatting: Optional[Dict[str, Any]] = None,
    ) -> List[Issue]:
        text = text or ""
        key = cache_key(text, structure, formatting)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Validation cache hit", issues=len(cached))
            return cached

        issues: List[Issue] = []
        for rule in self.rules:
            found = rule.check(text, structure, formatting)
            logger.debug("Rule finished", rule=rule.name, issues=len(found))
            issues.extend(found)

        self.cache.put(key, issues)
        logger.info("Validated document", rules=len(self.rules), issues=len(issues))
        return issues
