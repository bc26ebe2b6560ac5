import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from .conditions import compare, parse_float
from .date_parser import parse_date, resolve_date_format
from .rule_loader import ValidatorKind
from .rule_parser import ValidatorDescriptor

logger = logging.getLogger(__name__)

# Pattern of the "required" rule; a missing value never matches it
NON_EMPTY_PATTERN = r"\S+"
KEY_CHAR_MESSAGE = "INVALID_KEY_CHAR"
PARAM_PLACEHOLDER = ":param"


def is_empty(value: Any) -> bool:
    return value is None or value == ""


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass
class FieldContext:
    """What the evaluator needs to know about the field besides its value."""

    field_name: str
    is_required: bool = False
    is_disabled: bool = False
    input_type: str = "text"
    lookup: Optional[Callable[[str], Any]] = None  # current value of another field


@dataclass(frozen=True)
class RuleResult:
    """Outcome of one rule against one value."""

    descriptor: ValidatorDescriptor
    valid: bool
    message_key: str
    message: str = ""


class ValidatorEvaluator:
    """Evaluates single rule descriptors against a field value"""

    def __init__(self, translator, strict_date_formats: bool = False):
        """
        Initialize validator evaluator.

        Args:
            translator: Translator used to render failure messages
            strict_date_formats: Raise InvalidDateFormat on unknown date
                formats instead of reading dates as ISO
        """
        self.translator = translator
        self.strict_date_formats = strict_date_formats

        # Check dispatch table, one entry per ValidatorKind
        self.checks = {
            ValidatorKind.REGEX: self._check_regex,
            ValidatorKind.CONDITIONAL_DATE: self._check_date,
            ValidatorKind.CONDITIONAL_NUMBER: self._check_number,
            ValidatorKind.MATCH: self._check_match,
        }

    def evaluate(
        self, descriptor: ValidatorDescriptor, value: Any, context: FieldContext
    ) -> RuleResult:
        """
        Evaluate one rule against a value.

        A field that is disabled, or not required and empty, always passes,
        whatever the rule itself says.

        Args:
            descriptor: Parsed rule
            value: Current field value
            context: Field context (required/disabled flags, cross-field lookup)

        Returns:
            RuleResult with the rendered message when the rule failed

        Raises:
            InvalidDateFormat: Unknown date format with strict_date_formats set
        """
        message_key = descriptor.message_key

        if (
            descriptor.kind is ValidatorKind.REGEX
            and not context.is_disabled
            and value == ""
            and context.input_type.lower() == "number"
        ):
            # Browsers hand back "" for a number input holding non-numeric keystrokes
            valid = False
            message_key = KEY_CHAR_MESSAGE
        else:
            valid = self.checks[descriptor.kind](descriptor, value, context)

        if (not context.is_required and is_empty(value)) or context.is_disabled:
            valid = True

        if valid:
            return RuleResult(descriptor, True, message_key)

        logger.debug(
            f"Rule {descriptor.rule_name} failed for field {context.field_name}",
            extra={"field": context.field_name, "rule": descriptor.rule_name},
        )
        if message_key == KEY_CHAR_MESSAGE:
            message = self.translator.translate(KEY_CHAR_MESSAGE).text or ""
        else:
            message = self.render_message(descriptor)
        return RuleResult(descriptor, False, message_key, message)

    def render_message(self, descriptor: ValidatorDescriptor) -> str:
        """
        Render the failure message of a rule.

        Alt text wins over the rule's message key. When the translator has
        nothing for the key, raw alt text is used as is; without alt text the
        message is empty.
        """
        msg_to_translate = descriptor.message_key
        if descriptor.alt_text:
            msg_to_translate = descriptor.alt_text.replace("alt=", "", 1)

        outcome = self.translator.translate(msg_to_translate)
        if outcome.ok:
            return self.replace_params(descriptor, outcome.text)

        if descriptor.alt_text:
            return msg_to_translate

        logger.warning(
            f"No message for rule {descriptor.rule_name}: {outcome.error}",
            extra={"rule": descriptor.rule_name, "message_key": msg_to_translate},
        )
        return ""

    def replace_params(self, descriptor: ValidatorDescriptor, message: str) -> str:
        """Replace each ":param" in message with the rule's params, in order."""
        params = descriptor.params
        for k, param in enumerate(params):
            # match:otherField:Label shows the label, not the field reference
            if descriptor.kind is ValidatorKind.MATCH and len(params) > 1 and k == 0:
                continue
            message = message.replace(PARAM_PLACEHOLDER, param, 1)
        return message

    def _check_regex(self, descriptor, value, context) -> bool:
        if context.is_disabled:
            return True
        if value is None and (
            descriptor.pattern == NON_EMPTY_PATTERN or context.is_required
        ):
            return False
        return re.search(descriptor.pattern, _as_text(value), re.IGNORECASE) is not None

    def _check_date(self, descriptor, value, context) -> bool:
        if value is None and descriptor.pattern == NON_EMPTY_PATTERN:
            return False
        text = _as_text(value)
        if descriptor.pattern and not re.search(descriptor.pattern, text, re.IGNORECASE):
            return False

        date_format = resolve_date_format(
            descriptor.date_format, strict=self.strict_date_formats
        )
        try:
            instant = parse_date(text, date_format)
            bounds = [parse_date(param, date_format) for param in descriptor.params]
        except ValueError as e:
            logger.warning(
                f"Cannot compare dates for field {context.field_name}: {e}",
                extra={"field": context.field_name, "rule": descriptor.rule_name},
            )
            return False

        return self._compare_bounds(descriptor.condition, instant, bounds)

    def _check_number(self, descriptor, value, context) -> bool:
        bounds = [parse_float(param) for param in descriptor.params]
        return self._compare_bounds(descriptor.condition, parse_float(value), bounds)

    def _check_match(self, descriptor, value, context) -> bool:
        other_value = context.lookup(descriptor.params[0]) if context.lookup else None
        return other_value == value

    def _compare_bounds(self, condition, value, bounds: Sequence[Any]) -> bool:
        if len(bounds) == 2:
            # Range rule: one operator per side
            return compare(condition[0], value, bounds[0]) and compare(
                condition[1], value, bounds[1]
            )
        return compare(condition, value, bounds[0])
