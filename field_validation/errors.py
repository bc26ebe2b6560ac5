"""
Exception taxonomy for field-validation-lib.

Every error derives from FieldValidationError and from the builtin that best
describes it, so callers may catch either.
"""


class FieldValidationError(Exception):
    """Base class for all field-validation-lib errors."""


class MalformedRegexClause(FieldValidationError, ValueError):
    """A custom regex rule is missing its ':regex' terminator or its ':=' separator."""


class EmptyRuleToken(FieldValidationError, ValueError):
    """A rule pipeline contains an empty segment (e.g. 'required||email')."""


class UnknownRule(FieldValidationError, LookupError):
    """A rule name is not declared in the rule catalog."""


class InvalidRuleParams(FieldValidationError, ValueError):
    """A rule received the wrong number of parameters, or a value it cannot use."""


class MissingFieldNameAttribute(FieldValidationError, ValueError):
    """A field was registered without a resolvable name."""


class MissingValidationContext(FieldValidationError, RuntimeError):
    """A form-level operation was called before any summary was attached to it."""


class InvalidDateFormat(FieldValidationError, ValueError):
    """A named date format is not recognised."""


class TranslationError(FieldValidationError, LookupError):
    """A message key could not be translated."""


class FieldNotRegistered(FieldValidationError, LookupError):
    """An operation referenced a field that is not in the registry."""


class InvalidFieldAttributes(FieldValidationError, ValueError):
    """Field attributes failed schema validation."""


class ConfigError(FieldValidationError, RuntimeError):
    """A configuration document could not be loaded or failed schema validation."""
