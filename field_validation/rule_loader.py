"""
Rule Loader - Rule Catalog Lookup

Resolves rule names found in a rule pipeline ("required|email|between:1:10")
to rule definitions declared in the rule catalog (rule-catalog.yaml by
default, see ConfigLoader).

## Catalog Entry Format

```yaml
rules:
  between_len:
    kind: regex                    # regex | conditionalDate | conditionalNumber | match
    pattern: '^(.|[\\r\\n]){$1,$2}$'  # $1 / $2 filled from the rule's params
    message: INVALID_BETWEEN_CHAR  # translation key
    params: 2                      # arity, or [min, max]
    param_type: integer            # text | integer | number | date
  date_iso_min:
    kind: conditionalDate
    pattern: '...'                 # well-formedness check run before comparing
    date_format: ISO
    condition: '>='                # one operator, or a pair for range rules
    message: INVALID_DATE_ISO_MIN
    params: 1

aliases:
  between: between_num
```

## How It Works

1. Parser hands over a rule name (e.g. "between")
2. Catalog resolves aliases ("between" -> "between_num")
3. Entry is turned into an immutable RuleDefinition
4. Definition is cached by the name it was asked for
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import UnknownRule

logger = logging.getLogger(__name__)


class ValidatorKind(Enum):
    """How a rule compares the field value."""

    REGEX = "regex"
    CONDITIONAL_DATE = "conditionalDate"
    CONDITIONAL_NUMBER = "conditionalNumber"
    MATCH = "match"


# Param type each kind falls back to when the catalog entry declares none
_DEFAULT_PARAM_TYPES = {
    ValidatorKind.REGEX: "text",
    ValidatorKind.CONDITIONAL_DATE: "date",
    ValidatorKind.CONDITIONAL_NUMBER: "number",
    ValidatorKind.MATCH: "text",
}


Condition = Union[str, Tuple[str, str], None]


@dataclass(frozen=True)
class RuleDefinition:
    """One rule as declared in the catalog."""

    name: str
    kind: ValidatorKind
    message_key: str
    pattern: Optional[str] = None
    condition: Condition = None
    date_format: Optional[str] = None
    min_params: int = 0
    max_params: int = 0
    param_type: str = "text"

    def build_pattern(self, params: Sequence[str]) -> Optional[str]:
        """Fill the $1/$2 placeholders of the pattern with escaped params."""
        if self.pattern is None:
            return None
        pattern = self.pattern
        for i, param in enumerate(params, start=1):
            pattern = pattern.replace(f"${i}", re.escape(param))
        return pattern


class RuleCatalog:
    """Looks up rule definitions by name"""

    def __init__(self, catalog: Dict[str, Any]):
        """
        Initialize rule catalog.

        Args:
            catalog: Rule catalog document (already schema-checked by ConfigLoader)
        """
        self.rules = catalog.get("rules", {})
        self.aliases = catalog.get("aliases") or {}
        self.loaded_rules: Dict[str, RuleDefinition] = {}  # Cache: name -> definition

    @classmethod
    def from_config(cls, config_loader) -> "RuleCatalog":
        """Build a catalog from the document a ConfigLoader points at."""
        return cls(config_loader.get_rule_catalog())

    def lookup(self, rule_name: str) -> RuleDefinition:
        """
        Resolve a rule name to its definition.

        Args:
            rule_name: Rule name or alias (e.g. "min_len", "between")

        Returns:
            RuleDefinition for the rule

        Raises:
            UnknownRule: If neither a rule nor an alias has that name
        """
        if rule_name in self.loaded_rules:
            return self.loaded_rules[rule_name]

        canonical = self.aliases.get(rule_name, rule_name)
        entry = self.rules.get(canonical)
        if entry is None:
            raise UnknownRule(
                f"Unknown validation rule: {rule_name!r}. "
                f"Known rules: {', '.join(self.names())}"
            )

        definition = self._build_definition(canonical, entry)
        self.loaded_rules[rule_name] = definition
        return definition

    def names(self) -> List[str]:
        """All rule names and aliases, sorted."""
        return sorted(set(self.rules) | set(self.aliases))

    def _build_definition(self, name: str, entry: Dict[str, Any]) -> RuleDefinition:
        arity = entry.get("params", 0)
        if isinstance(arity, list):
            min_params, max_params = arity
        else:
            min_params = max_params = arity

        kind = ValidatorKind(entry["kind"])
        condition = entry.get("condition")
        if isinstance(condition, list):
            condition = tuple(condition)

        logger.debug(f"Loaded rule definition {name}", extra={"rule": name})
        return RuleDefinition(
            name=name,
            kind=kind,
            message_key=entry["message"],
            pattern=entry.get("pattern"),
            condition=condition,
            date_format=entry.get("date_format"),
            min_params=min_params,
            max_params=max_params,
            param_type=entry.get("param_type", _DEFAULT_PARAM_TYPES[kind]),
        )
