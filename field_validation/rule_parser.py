"""
Rule pipeline parsing.

A rule pipeline is the string attached to a field, e.g.

    required|min_len:3|regex:Start with a capital:=^[A-Z]:regex|max_len:20:alt=Too long

Tokens are separated by "|" and parameters by ":". An "alt=" parameter (and
anything after it) replaces the rule's default message. The single custom
regex clause "regex:<message>:=<pattern>:regex" may itself contain "|" and
":", so it is lifted out of the string before anything is split.
"""

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .date_parser import parse_date
from .errors import EmptyRuleToken, InvalidRuleParams, MalformedRegexClause
from .rule_loader import Condition, RuleCatalog, ValidatorKind

logger = logging.getLogger(__name__)

REQUIRED_RULE = "required"
CUSTOM_REGEX_RULE = "regex"


@dataclass(frozen=True)
class ValidatorDescriptor:
    """Parsed form of one rule token."""

    rule_name: str
    kind: ValidatorKind
    message_key: str
    pattern: Optional[str] = None
    alt_text: str = ""
    params: Tuple[str, ...] = ()
    condition: Condition = None
    date_format: Optional[str] = None


@dataclass(frozen=True)
class CustomRegex:
    message: str
    pattern: str


@dataclass(frozen=True)
class RulePipeline(Sequence):
    """
    Ordered descriptors of one rule string.

    Behaves as a read-only sequence of ValidatorDescriptor. `source` is the
    rule string after the custom regex clause was collapsed to "regex:".
    """

    source: str
    descriptors: Tuple[ValidatorDescriptor, ...]
    is_required: bool = False
    custom_regex: Optional[CustomRegex] = None

    def __getitem__(self, index):
        return self.descriptors[index]

    def __len__(self) -> int:
        return len(self.descriptors)


class RuleParser:
    """Turns rule strings into RulePipeline objects"""

    CUSTOM_REGEX_CLAUSE = re.compile(r"regex:(.*?):regex", re.DOTALL)
    CUSTOM_REGEX_MARKER = "regex:"
    ALT_TEXT_MARKER = "alt="

    def __init__(self, catalog: RuleCatalog):
        """
        Args:
            catalog: RuleCatalog used to resolve rule names
        """
        self.catalog = catalog

    def parse(self, rules: str) -> RulePipeline:
        """
        Parse a rule pipeline.

        Args:
            rules: Pipe-delimited rule string

        Returns:
            RulePipeline with one descriptor per token, in declaration order

        Raises:
            MalformedRegexClause: Custom regex clause is unterminated, lacks
                ':=', holds an invalid pattern, or appears more than once
            EmptyRuleToken: The pipeline has an empty segment
            UnknownRule: A rule name is not in the catalog
            InvalidRuleParams: A rule got the wrong number of params, or a
                param that does not fit its param type (e.g. "min_len:abc",
                "between_len:5:2")
        """
        source, custom_regex = self._extract_custom_regex(rules or "")

        descriptors = [
            self._parse_token(token, position, custom_regex)
            for position, token in enumerate(source.split("|"))
        ]
        is_required = any(d.rule_name == REQUIRED_RULE for d in descriptors)

        logger.debug(
            f"Parsed {len(descriptors)} rule(s) from {rules!r}",
            extra={"rules": rules, "required": is_required},
        )
        return RulePipeline(
            source=source,
            descriptors=tuple(descriptors),
            is_required=is_required,
            custom_regex=custom_regex,
        )

    def _extract_custom_regex(self, rules: str) -> Tuple[str, Optional[CustomRegex]]:
        """Lift the custom regex clause out of the rule string."""
        if self.CUSTOM_REGEX_MARKER not in rules:
            return rules, None

        matches = list(self.CUSTOM_REGEX_CLAUSE.finditer(rules))
        if not matches:
            raise MalformedRegexClause(
                'Regex validator within the validation needs to be defined with an '
                'opening "regex:" and a closing ":regex", please review your validator: '
                f"{rules!r}"
            )
        if len(matches) > 1:
            raise MalformedRegexClause(
                f"Only one custom regex clause is allowed per rule pipeline: {rules!r}"
            )

        match = matches[0]
        message, separator, pattern = match.group(1).partition(":=")
        if not separator:
            raise MalformedRegexClause(
                f"Custom regex clause must be written as regex:<message>:=<pattern>:regex, "
                f"got {match.group(0)!r}"
            )
        try:
            re.compile(pattern)
        except re.error as e:
            raise MalformedRegexClause(f"Invalid custom regex {pattern!r}: {e}") from e

        source = rules[: match.start()] + self.CUSTOM_REGEX_MARKER + rules[match.end():]
        return source, CustomRegex(message=message, pattern=pattern)

    def _parse_token(
        self, token: str, position: int, custom_regex: Optional[CustomRegex]
    ) -> ValidatorDescriptor:
        """Parse one "name:param:param:alt=text" token."""
        pieces = token.split(":")
        rule_name = pieces[0].strip()
        if not rule_name:
            raise EmptyRuleToken(f"Empty rule at position {position} in rule pipeline")

        params, alt_text = self._split_alt_text(pieces[1:])
        definition = self.catalog.lookup(rule_name)

        if definition.name == CUSTOM_REGEX_RULE:
            if custom_regex is None:
                raise MalformedRegexClause(
                    'The "regex" rule needs a pattern: regex:<message>:=<pattern>:regex'
                )
            return ValidatorDescriptor(
                rule_name=definition.name,
                kind=definition.kind,
                message_key=definition.message_key,
                pattern=custom_regex.pattern,
                alt_text=alt_text,
                params=(custom_regex.message,),
            )

        params = self._check_arity(definition, params)
        self._check_param_values(definition, params)
        pattern = definition.build_pattern(params)
        if pattern is not None:
            try:
                re.compile(pattern)
            except re.error as e:
                raise InvalidRuleParams(
                    f"Rule {definition.name!r} cannot use params {params}: {e}"
                ) from e

        return ValidatorDescriptor(
            rule_name=definition.name,
            kind=definition.kind,
            message_key=definition.message_key,
            pattern=pattern,
            alt_text=alt_text,
            params=tuple(params),
            condition=definition.condition,
            date_format=definition.date_format,
        )

    def _split_alt_text(self, params: List[str]) -> Tuple[List[str], str]:
        """Separate the "alt=" text from the rule's own params."""
        for i, param in enumerate(params):
            if param.startswith(self.ALT_TEXT_MARKER):
                return params[:i], ":".join(params[i:])
        return params, ""

    def _check_arity(self, definition, params: List[str]) -> List[str]:
        params = [p for p in params if p != ""]

        # between_len:2,5 is the same as between_len:2:5
        if definition.max_params == 2 and len(params) == 1 and "," in params[0]:
            params = params[0].split(",")

        if not definition.min_params <= len(params) <= definition.max_params:
            if definition.min_params == definition.max_params:
                expected = str(definition.min_params)
            else:
                expected = f"{definition.min_params} to {definition.max_params}"
            raise InvalidRuleParams(
                f"Rule {definition.name!r} takes {expected} param(s), got {len(params)}: "
                f"{params}"
            )
        return params

    def _check_param_values(self, definition, params: List[str]) -> None:
        """Reject params that do not read as the rule's declared param type."""
        for param in params:
            if definition.param_type == "integer":
                valid = param.isascii() and param.isdigit()
                expected = "a whole number"
            elif definition.param_type == "number":
                valid = not math.isnan(_to_number(param))
                expected = "a number"
            elif definition.param_type == "date":
                valid = _is_date(param, definition.date_format)
                expected = f"a {definition.date_format or 'ISO'} date"
            else:
                continue

            if not valid:
                raise InvalidRuleParams(
                    f"Rule {definition.name!r} expects {expected}, got {param!r}"
                )


def _to_number(param: str) -> float:
    try:
        return float(param)
    except ValueError:
        return math.nan


def _is_date(param: str, date_format: Optional[str]) -> bool:
    try:
        parse_date(param, date_format or "ISO")
    except ValueError:
        return False
    return True
