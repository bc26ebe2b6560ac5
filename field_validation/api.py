"""
Public API for field-validation-lib

This is the "front door": a ValidationSession owns the fields of one page
(or route), evaluates them as their values change and keeps the validation
summary that form submission checks against.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Union

import jsonschema

from .collaborators import DictValueSource, LoggingRenderer
from .config_loader import ConfigLoader
from .errors import (
    FieldNotRegistered,
    InvalidFieldAttributes,
    MissingFieldNameAttribute,
    MissingValidationContext,
)
from .field_registry import FieldRecord, FieldRegistry, FieldState
from .rule_executor import FieldContext, is_empty
from .scheduler import ThreadingScheduler
from .validation_engine import FieldOutcome, ValidationEngine
from .validation_summary import SummaryEntry, ValidationSummary

logger = logging.getLogger(__name__)

_MILLISECONDS = {
    "anyOf": [
        {"type": "integer", "minimum": 0},
        {"type": "string", "pattern": r"^\d+$"},
    ]
}

_FIELD_PROPERTIES = {
    "name": {"type": "string", "minLength": 1},
    "elmName": {"type": "string", "minLength": 1},
    "rules": {"type": "string"},
    "validation": {"type": "string"},
    "debounce": _MILLISECONDS,
    "typingLimit": _MILLISECONDS,
    "friendlyName": {"type": "string"},
    "validationErrorTo": {"type": "string", "minLength": 1},
    "translate": {"type": "boolean"},
    "form": {"type": ["string", "null"]},
    "type": {"type": "string"},
}

GLOBAL_OPTIONS_SCHEMA = {"type": "object", "properties": _FIELD_PROPERTIES}

FIELD_ATTRIBUTES_SCHEMA = {
    "type": "object",
    "properties": _FIELD_PROPERTIES,
    "anyOf": [{"required": ["rules"]}, {"required": ["validation"]}],
}

BLUR_EVENT = "blur"
CHANGE_EVENT = "change"


def _check_attributes(attrs: Dict[str, Any], schema: Dict[str, Any]) -> None:
    try:
        jsonschema.validate(instance=attrs, schema=schema)
    except jsonschema.ValidationError as e:
        error_path = " -> ".join(str(p) for p in e.absolute_path) if e.absolute_path else "root"
        raise InvalidFieldAttributes(f"Invalid field attributes at {error_path}: {e.message}") from e


class ValidationSession:
    """
    Validation state of one page: registered fields plus validation summary.

    Each value change re-arms a per-field debounce timer; when it expires
    the field is evaluated and its message shown. Blur events and select
    fields skip the timer. Every change also updates the summary straight
    away, so form checks never miss a field that is still being typed in.

    Example:
        from field_validation import ValidationSession, DictValueSource

        values = DictValueSource({"age": ""})
        session = ValidationSession(value_source=values)
        session.add_field({"name": "age", "rules": "required|between:18:65", "form": "signup"})

        session.validate_field("age", "17", event="blur")
        if not session.check_form_validity("signup"):
            for entry in session.validation_summary("signup"):
                print(f"{entry.field_name}: {entry.message}")
    """

    def __init__(
        self,
        value_source=None,
        renderer=None,
        translator=None,
        scheduler=None,
        lifecycle=None,
        config_loader: Optional[ConfigLoader] = None,
        engine: Optional[ValidationEngine] = None,
    ):
        """
        Initialize a validation session.

        Args:
            value_source: FieldValueSource for live values and disabled
                flags (default: empty DictValueSource)
            renderer: ErrorRenderer (default: LoggingRenderer)
            translator: Translator (default: configured locale)
            scheduler: Debounce scheduler (default: ThreadingScheduler)
            lifecycle: LifecycleHook; the session resets on each transition
                unless auto-reset is suppressed
            config_loader: ConfigLoader (default: bundled local-config.yaml)
            engine: ValidationEngine (default: built from config_loader)

        Raises:
            ConfigError: If configuration, rule catalog or locale cannot be loaded
        """
        self.config_loader = config_loader or ConfigLoader()
        self.engine = engine or ValidationEngine(self.config_loader, translator=translator)

        options = self.config_loader.get_validation_options()
        self.suppress_auto_reset = options["bypass_reset_on_transition"]
        self.show_only_last_message = options["display_only_last_error"]
        self.inactivity_limit = options["debounce_ms"]

        self.value_source = value_source or DictValueSource()
        self.renderer = renderer or LoggingRenderer()
        self.scheduler = scheduler or ThreadingScheduler()

        self.registry = FieldRegistry()
        self.summary = ValidationSummary()
        self.global_options: Dict[str, Any] = {}

        self._timers: Dict[str, Any] = {}
        # Bumped on every reset; timers armed under an older epoch do nothing
        self._epoch = 0
        # Timer callbacks of ThreadingScheduler run on their own threads
        self._lock = threading.RLock()

        self._unsubscribe = lifecycle.subscribe(self.on_page_transition) if lifecycle else None

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def set_global_options(self, options: Dict[str, Any]) -> "ValidationSession":
        """
        Set attributes applied to every field registered from now on.

        A field's own attributes take precedence over these.

        Raises:
            InvalidFieldAttributes: If the options fail schema validation
        """
        _check_attributes(options, GLOBAL_OPTIONS_SCHEMA)
        self.global_options = dict(options)
        return self

    def set_suppress_auto_reset(self, value: bool) -> "ValidationSession":
        """Keep fields and summary across page transitions when True."""
        self.suppress_auto_reset = bool(value)
        return self

    def set_show_only_last_message(self, value: bool) -> "ValidationSession":
        """Show only the last failing rule's message of each field when True."""
        self.show_only_last_message = bool(value)
        return self

    # ------------------------------------------------------------------
    # Field registration
    # ------------------------------------------------------------------

    def add_field(
        self, attrs: Union[str, Dict[str, Any]], rules: Optional[str] = None
    ) -> FieldRecord:
        """
        Register (or re-register) a field.

        Accepts either a name and a rule string, or a single attribute dict
        with at least `name` and `rules`. The field's current value is
        validated silently so the summary knows about it straight away.

        Args:
            attrs: Field name, or attribute dict (name/elmName, rules/validation,
                debounce/typingLimit, friendlyName, validationErrorTo,
                translate, form, type)
            rules: Rule string when attrs is a field name

        Returns:
            The registered FieldRecord

        Raises:
            MissingFieldNameAttribute: No field name given
            InvalidFieldAttributes: Attributes fail schema validation
            MalformedRegexClause, EmptyRuleToken, UnknownRule,
            InvalidRuleParams: The rule string does not parse

        Example:
            session.add_field("email", "required|email")
            session.add_field({
                "name": "password2",
                "rules": "match:password:Password",
                "friendlyName": "Password confirmation",
                "validationErrorTo": "password2-errors",
                "debounce": 500,
            })
        """
        if isinstance(attrs, str):
            attrs = {"name": attrs}
        else:
            attrs = dict(attrs or {})
        if rules is not None:
            attrs["rules"] = rules

        attrs = {**self.global_options, **attrs}
        record = self._build_record(attrs)

        # Parse now so a bad rule string fails before anything is registered
        self.engine.pipeline_for(record)

        with self._lock:
            self._cancel_timer(record.field_name)
            self.registry.upsert(record)
            self.summary.attach(record.form_name)

            value = self.value_source.current_value(record.field_name)
            self._apply(record, self._evaluate(record, value))

        logger.info(
            f"Field {record.field_name} registered",
            extra={"field": record.field_name, "rules": record.rules, "form": record.form_name},
        )
        return record

    def _build_record(self, attrs: Dict[str, Any]) -> FieldRecord:
        field_name = attrs.get("name") or attrs.get("elmName")
        if not field_name:
            raise MissingFieldNameAttribute(
                "A field needs a name to be validated (attribute 'name' or 'elmName')"
            )
        _check_attributes(attrs, FIELD_ATTRIBUTES_SCHEMA)

        rules = attrs["rules"] if "rules" in attrs else attrs["validation"]

        typing_limit = self.inactivity_limit
        if "debounce" in attrs:
            typing_limit = int(attrs["debounce"])
        elif "typingLimit" in attrs:
            typing_limit = int(attrs["typingLimit"])

        translate = attrs.get("translate", False)
        friendly_name = attrs.get("friendlyName", "")
        if friendly_name and translate:
            friendly_name = self.engine.translator.translate(friendly_name).text or friendly_name

        error_target = attrs.get("validationErrorTo")
        if error_target and error_target[0] not in (".", "#"):
            error_target = "#" + error_target

        return FieldRecord(
            field_name=field_name,
            rules=rules,
            friendly_name=friendly_name,
            form_name=attrs.get("form"),
            input_type=attrs.get("type", "text"),
            typing_limit=typing_limit,
            error_target=error_target,
            translate=translate,
            attributes=attrs,
        )

    def rebind_field(self, field_name: str, rules: str) -> FieldRecord:
        """
        Swap the rule string of a registered field, keeping its other attributes.

        The current value is validated again, silently, against the new rules.

        Raises:
            FieldNotRegistered: If the field was never added
            MalformedRegexClause, EmptyRuleToken, UnknownRule,
            InvalidRuleParams: The rule string does not parse
        """
        pipeline = self.engine.parse(rules)

        with self._lock:
            record = self._require_field(field_name)
            self._cancel_timer(field_name)
            record.rebind(rules)
            record.pipeline = pipeline

            value = self.value_source.current_value(field_name)
            self._apply(record, self._evaluate(record, value))

        logger.info(f"Field {field_name} rebound", extra={"field": field_name, "rules": rules})
        return record

    def _require_field(self, field_name: str) -> FieldRecord:
        record = self.registry.find(field_name)
        if record is None:
            raise FieldNotRegistered(f"Field {field_name!r} is not registered")
        return record

    def remove_field(self, field_names: Union[str, Iterable[str]]) -> "ValidationSession":
        """
        Stop validating one or more fields.

        Their summary entries and displayed messages are cleared. Unknown
        names are ignored.
        """
        if isinstance(field_names, str):
            field_names = [field_names]

        with self._lock:
            for field_name in field_names:
                self._cancel_timer(field_name)
                record = self.registry.remove(field_name)
                self.summary.clear(field_name)
                self.renderer.clear(field_name)
                if record is not None:
                    record.mark_pristine()
                    record.is_valid = True
                    record.current_message = ""
                    record.state = FieldState.VALID
                    logger.info(f"Field {field_name} removed", extra={"field": field_name})
        return self

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def validate_field(self, field_name: str, value: Any, event: str = CHANGE_EVENT) -> FieldState:
        """
        React to a field's value changing (or the field losing focus).

        The summary is updated immediately. The message is shown after the
        field's debounce delay, or right away for blur events, select fields,
        a zero debounce, and non-numeric input in number fields.

        Args:
            field_name: Registered field name
            value: New field value
            event: "change" (default) or "blur"

        Returns:
            The field's state after the call (PENDING while the timer runs)

        Raises:
            FieldNotRegistered: If the field was never added
        """
        with self._lock:
            record = self._require_field(field_name)

            if event == BLUR_EVENT:
                record.touched = True
            else:
                record.dirty = True

            outcome = self._evaluate(record, value)
            self._apply(record, outcome)

            # Optional and empty: nothing to show
            if not record.is_required and is_empty(value):
                self._cancel_timer(field_name)
                self.renderer.clear(field_name)
                record.state = FieldState.VALID
                return record.state

            immediate = (
                event == BLUR_EVENT
                or record.input_type.lower() == "select"
                or record.typing_limit <= 0
                or (is_empty(value) and record.input_type.lower() == "number")
            )
            self._cancel_timer(field_name)
            if immediate:
                self._display(record, outcome)
                return record.state

            self.renderer.clear(field_name)
            record.state = FieldState.PENDING
            epoch = self._epoch
            self._timers[field_name] = self.scheduler.call_later(
                record.typing_limit, lambda: self._on_timer(record, value, epoch)
            )
            return record.state

    def _on_timer(self, record: FieldRecord, value: Any, epoch: int) -> None:
        with self._lock:
            if epoch != self._epoch or self.registry.find(record.field_name) is not record:
                logger.debug(
                    f"Ignoring stale timer for field {record.field_name}",
                    extra={"field": record.field_name},
                )
                return
            self._timers.pop(record.field_name, None)
            outcome = self._evaluate(record, value)
            self._apply(record, outcome)
            self._display(record, outcome)

    def _evaluate(self, record: FieldRecord, value: Any) -> FieldOutcome:
        context = FieldContext(
            field_name=record.field_name,
            is_disabled=self.value_source.is_disabled(record.field_name),
            input_type=record.input_type,
            lookup=self.value_source.current_value,
        )
        return self.engine.evaluate_field(
            record, value, context, display_only_last_error=self.show_only_last_message
        )

    def _apply(self, record: FieldRecord, outcome: FieldOutcome) -> None:
        """Store an outcome on the record and in the summary."""
        record.is_valid = outcome.valid
        record.current_message = "" if outcome.valid else outcome.message
        self.summary.upsert(
            record.field_name,
            record.current_message,
            friendly_name=record.friendly_name,
            form_name=record.form_name,
        )

    def _display(self, record: FieldRecord, outcome: FieldOutcome, submitted: bool = False) -> None:
        record.state = FieldState.VALID if outcome.valid else FieldState.INVALID
        if not outcome.valid and (submitted or record.dirty or record.touched):
            self.renderer.show(record.field_name, outcome.message, record.error_target)
        else:
            self.renderer.clear(record.field_name)

    # ------------------------------------------------------------------
    # Form level
    # ------------------------------------------------------------------

    def check_form_validity(self, form_name: Optional[str] = None) -> bool:
        """
        Check whether a form (or, with no name, the whole page) is valid.

        Every field still in the summary is marked touched and its message
        shown, as on a submit attempt.

        Args:
            form_name: Form to check; None checks every field of the page

        Returns:
            True if the form has no summary entries

        Raises:
            MissingValidationContext: If no field was ever registered for the form
        """
        with self._lock:
            self._require_context(form_name, "check_form_validity")
            entries = self.summary.for_form(form_name)
            for entry in entries:
                record = self.registry.find(entry.field_name)
                if record is None:
                    continue
                self._cancel_timer(entry.field_name)
                record.touched = True
                record.state = FieldState.INVALID
                self.renderer.show(entry.field_name, entry.message, record.error_target)
            return not entries

    def clear_invalid_entries_ahead(self, form_name: Optional[str] = None) -> List[str]:
        """
        Drop every invalid field of a form from registry and summary.

        Meant for multi-step forms: when the user steps back, fields of the
        steps ahead should not keep the form invalid.

        Returns:
            Names of the fields removed

        Raises:
            MissingValidationContext: If no field was ever registered for the form
        """
        with self._lock:
            self._require_context(form_name, "clear_invalid_entries_ahead")
            field_names = [entry.field_name for entry in self.summary.for_form(form_name)]
            for field_name in field_names:
                self._cancel_timer(field_name)
                self.registry.remove(field_name)
                self.summary.clear(field_name)
                self.renderer.clear(field_name)
            logger.info(
                f"Cleared {len(field_names)} invalid field(s) ahead",
                extra={"form": form_name, "fields": field_names},
            )
            return field_names

    def _require_context(self, form_name: Optional[str], operation: str) -> None:
        if not self.summary.is_attached(form_name):
            target = f"form {form_name!r}" if form_name else "this page"
            raise MissingValidationContext(
                f"{operation}() requires a validation summary, but no field was "
                f"registered for {target}"
            )

    # ------------------------------------------------------------------
    # Timers and lifecycle
    # ------------------------------------------------------------------

    def _cancel_timer(self, field_name: str) -> None:
        timer = self._timers.pop(field_name, None)
        if timer is not None:
            timer.cancel()

    def clear_pending(self) -> int:
        """
        Cancel every armed debounce timer.

        Returns:
            Number of timers cancelled
        """
        with self._lock:
            count = len(self._timers)
            for field_name in list(self._timers):
                self._cancel_timer(field_name)
                record = self.registry.find(field_name)
                if record is not None and record.state is FieldState.PENDING:
                    record.state = FieldState.UNVALIDATED
            return count

    def reset(self) -> None:
        """Forget every field and summary entry."""
        with self._lock:
            self.clear_pending()
            self._epoch += 1
            count = len(self.registry)
            self.registry.clear()
            self.summary.reset_all()
        logger.info(f"Validation session reset ({count} field(s) dropped)")

    def on_page_transition(self) -> bool:
        """
        LifecycleHook callback: reset unless auto-reset is suppressed.

        Returns:
            True if the session was reset
        """
        if self.suppress_auto_reset:
            logger.debug("Page transition: auto-reset suppressed, keeping fields")
            return False
        self.reset()
        return True

    def close(self) -> None:
        """Cancel timers and detach from the lifecycle hook. Safe to call twice."""
        self.clear_pending()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_field(self, field_name: str) -> Optional[FieldRecord]:
        return self.registry.find(field_name)

    def field_state(self, field_name: str) -> Optional[FieldState]:
        record = self.registry.find(field_name)
        return record.state if record else None

    def validation_summary(self, form_name: Optional[str] = None) -> List[SummaryEntry]:
        """Current summary entries of a form, or of the whole page."""
        with self._lock:
            return self.summary.for_form(form_name)

    def discover_rules(self, rules: str) -> List[Dict[str, Any]]:
        """Describe the rules of a rule string without evaluating anything."""
        return self.engine.discover_rules(rules)
