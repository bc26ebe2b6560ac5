"""
Tests for ValidationSession API

Drives sessions end to end with a ManualScheduler, so debounce timers only
fire when a test advances virtual time.
"""
import threading

import pytest

from field_validation import (
    CatalogTranslator,
    DictValueSource,
    FieldState,
    LifecycleHook,
    ManualScheduler,
    RecordingRenderer,
    ThreadingScheduler,
    ValidationSession,
)
from field_validation.errors import (
    FieldNotRegistered,
    InvalidFieldAttributes,
    InvalidRuleParams,
    MissingFieldNameAttribute,
    MissingValidationContext,
    UnknownRule,
)

AGE_RULES = "required|between:18:65"
AGE_MESSAGE = "Needs to be a numeric value, between 18 and 65."


class UncancellableScheduler(ManualScheduler):
    """Timers that cannot be stopped, like a threading.Timer already running."""

    def call_later(self, delay_ms, callback):
        timer = super().call_later(delay_ms, callback)
        timer.cancel = lambda: None
        return timer


@pytest.fixture
def values():
    return DictValueSource()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def lifecycle():
    return LifecycleHook()


@pytest.fixture
def session(config_loader, values, renderer, scheduler, lifecycle):
    """Create a ValidationSession over in-memory collaborators."""
    return ValidationSession(
        value_source=values,
        renderer=renderer,
        scheduler=scheduler,
        lifecycle=lifecycle,
        config_loader=config_loader,
    )


class TestInitialization:
    """Test ValidationSession initialization."""

    def test_create_session(self):
        """Test that a session can be created with defaults."""
        session = ValidationSession()
        assert session.engine is not None
        assert session.config_loader is not None
        assert isinstance(session.scheduler, ThreadingScheduler)

    def test_defaults_from_config(self, session):
        """Test session options come from local-config.yaml."""
        assert session.inactivity_limit == 1000
        assert session.suppress_auto_reset is False
        assert session.show_only_last_message is False


class TestAddField:
    """Test add_field() registration."""

    def test_name_and_rules(self, session):
        """Test registering with a name and a rule string."""
        record = session.add_field("age", AGE_RULES)
        assert session.get_field("age") is record
        assert record.rules == AGE_RULES
        assert record.is_required
        assert record.typing_limit == 1000
        assert record.state is FieldState.UNVALIDATED

    def test_attribute_dict(self, session):
        """Test registering with an attribute dict."""
        record = session.add_field({
            "name": "email",
            "rules": "required|email",
            "form": "signup",
            "friendlyName": "Email",
            "debounce": 300,
            "type": "email",
        })
        assert record.form_name == "signup"
        assert record.friendly_name == "Email"
        assert record.typing_limit == 300
        assert record.input_type == "email"

    def test_alternate_attribute_names(self, session):
        """Test elmName, validation and typingLimit."""
        record = session.add_field({"elmName": "zip", "validation": "integer", "typingLimit": "250"})
        assert record.field_name == "zip"
        assert record.rules == "integer"
        assert record.typing_limit == 250

    def test_error_target_selector(self, session):
        """Test a bare validationErrorTo becomes an id selector."""
        assert session.add_field(
            {"name": "a", "rules": "required", "validationErrorTo": "a-errors"}
        ).error_target == "#a-errors"
        assert session.add_field(
            {"name": "b", "rules": "required", "validationErrorTo": ".errors"}
        ).error_target == ".errors"

    def test_translated_friendly_name(self, config_loader):
        """Test translate=True runs the friendly name through the translator."""
        translator = CatalogTranslator({"FIELD_EMAIL": "E-mail address", "INVALID_EMAIL": "Bad email"})
        session = ValidationSession(
            translator=translator, scheduler=ManualScheduler(), config_loader=config_loader
        )
        record = session.add_field(
            {"name": "email", "rules": "email", "friendlyName": "FIELD_EMAIL", "translate": True}
        )
        assert record.friendly_name == "E-mail address"

        session.validate_field("email", "nope", event="blur")
        entry = session.validation_summary()[0]
        assert entry.friendly_name == "E-mail address"
        assert entry.message == "Bad email"

    def test_friendly_name_kept_without_translate(self, config_loader):
        """Test the friendly name is used as given unless translate is set."""
        translator = CatalogTranslator({"FIELD_EMAIL": "E-mail address"})
        session = ValidationSession(
            translator=translator, scheduler=ManualScheduler(), config_loader=config_loader
        )
        record = session.add_field({"name": "email", "rules": "email", "friendlyName": "FIELD_EMAIL"})
        assert record.friendly_name == "FIELD_EMAIL"

    def test_pre_validation_is_silent(self, session, renderer):
        """Test registering evaluates the current value without showing anything."""
        session.add_field("age", AGE_RULES)

        entry = session.validation_summary()[0]
        assert entry.field_name == "age"
        assert entry.message == f"Field is required. {AGE_MESSAGE}"
        assert renderer.events == []

    def test_pre_validation_uses_current_value(self, session, values):
        """Test a field registered with a valid value is not in the summary."""
        values.set_value("age", "30")
        record = session.add_field("age", AGE_RULES)
        assert record.is_valid
        assert session.validation_summary() == []

    def test_re_register_replaces(self, session):
        """Test adding a field twice replaces its rules."""
        session.add_field("age", AGE_RULES)
        session.add_field("age", "integer")
        assert session.get_field("age").rules == "integer"
        assert len(session.registry) == 1

    def test_global_options(self, session):
        """Test global options apply under each field's own attributes."""
        session.set_global_options({"form": "signup", "debounce": 250})
        first = session.add_field("a", "required")
        second = session.add_field({"name": "b", "rules": "required", "form": "other"})

        assert (first.form_name, first.typing_limit) == ("signup", 250)
        assert (second.form_name, second.typing_limit) == ("other", 250)

    def test_missing_name(self, session):
        """Test a field without a name is rejected."""
        with pytest.raises(MissingFieldNameAttribute):
            session.add_field({"rules": "required"})

    def test_missing_rules(self, session):
        """Test a field without rules is rejected."""
        with pytest.raises(InvalidFieldAttributes):
            session.add_field({"name": "a"})

    def test_bad_debounce(self, session):
        """Test a non-numeric debounce is rejected."""
        with pytest.raises(InvalidFieldAttributes, match="debounce"):
            session.add_field({"name": "a", "rules": "required", "debounce": "soon"})

    def test_bad_debounce_names_the_attribute(self, session):
        """Test the error points at the offending attribute, not the root."""
        with pytest.raises(InvalidFieldAttributes, match="at debounce:"):
            session.add_field({"name": "a", "rules": "required", "debounce": -5})

    def test_bad_rule_params_register_nothing(self, session, renderer):
        """Test a rule that cannot use its params fails before registration."""
        with pytest.raises(InvalidRuleParams):
            session.add_field({"name": "x", "rules": "required|between_len:5:2", "form": "f"})

        assert session.get_field("x") is None
        assert session.validation_summary() == []
        assert renderer.drain() == []
        with pytest.raises(MissingValidationContext):
            session.check_form_validity("f")

    def test_bad_global_options(self, session):
        """Test global options are schema-checked too."""
        with pytest.raises(InvalidFieldAttributes):
            session.set_global_options({"translate": "yes"})

    def test_bad_rules_register_nothing(self, session):
        """Test a rule string that does not parse leaves the registry untouched."""
        with pytest.raises(UnknownRule):
            session.add_field("a", "required|bogus")
        assert session.get_field("a") is None
        assert session.validation_summary() == []


class TestValidateField:
    """Test validate_field() evaluation and display."""

    def test_age_scenario(self, session, renderer):
        """Test invalid, then valid, then removed."""
        session.add_field({"name": "age", "rules": AGE_RULES, "form": "signup"})

        assert session.validate_field("age", "17", event="blur") is FieldState.INVALID
        assert "18" in renderer.shown["age"] and "65" in renderer.shown["age"]
        assert session.check_form_validity("signup") is False

        assert session.validate_field("age", "18", event="blur") is FieldState.VALID
        assert "age" not in renderer.shown
        assert session.check_form_validity("signup") is True

        session.remove_field("age")
        assert session.get_field("age") is None
        assert session.validation_summary("signup") == []

    def test_debounce(self, session, scheduler, renderer):
        """Test the message only shows once typing stops."""
        session.add_field("age", AGE_RULES)

        assert session.validate_field("age", "1") is FieldState.PENDING
        scheduler.advance(500)
        session.validate_field("age", "17")
        assert scheduler.pending() == 1

        scheduler.advance(999)
        assert "age" not in renderer.shown
        scheduler.advance(1)
        assert renderer.shown["age"] == AGE_MESSAGE
        assert session.field_state("age") is FieldState.INVALID

    def test_field_debounce(self, session, scheduler, renderer):
        """Test a field's own debounce delay."""
        session.add_field({"name": "age", "rules": AGE_RULES, "debounce": 200})
        session.validate_field("age", "17")
        scheduler.advance(200)
        assert renderer.shown["age"] == AGE_MESSAGE

    def test_summary_updates_before_timer(self, session):
        """Test the summary already reflects a value that is still pending."""
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "17")

        assert session.field_state("age") is FieldState.PENDING
        assert session.validation_summary()[0].message == AGE_MESSAGE

    def test_zero_debounce(self, session, renderer):
        """Test a zero debounce evaluates straight away."""
        session.add_field({"name": "age", "rules": AGE_RULES, "debounce": 0})
        assert session.validate_field("age", "17") is FieldState.INVALID
        assert renderer.shown["age"] == AGE_MESSAGE

    def test_select_is_immediate(self, session, renderer):
        """Test select fields skip the debounce."""
        session.add_field({"name": "country", "rules": "required", "type": "select"})
        assert session.validate_field("country", "") is FieldState.INVALID
        assert renderer.shown["country"] == "Field is required."

    def test_number_key_char(self, session, renderer):
        """Test an empty number input reports one keyboard entry error straight away."""
        session.add_field({"name": "qty", "rules": "required|integer", "type": "number"})
        assert session.validate_field("qty", "") is FieldState.INVALID
        assert renderer.shown["qty"] == 'Invalid keyboard entry on a field of type "number".'

    def test_optional_empty(self, session, renderer, scheduler):
        """Test clearing an optional field makes it valid at once."""
        session.add_field("nickname", "alpha")
        session.validate_field("nickname", "abc1", event="blur")
        assert renderer.shown["nickname"] == "May only contain letters."

        assert session.validate_field("nickname", "") is FieldState.VALID
        assert "nickname" not in renderer.shown
        assert session.validation_summary() == []
        assert scheduler.pending() == 0

    def test_disabled_field(self, session, values):
        """Test a disabled field is always valid."""
        session.add_field("age", AGE_RULES)
        values.set_disabled("age")
        assert session.validate_field("age", "", event="blur") is FieldState.VALID
        assert session.validation_summary() == []

    def test_match(self, session, values, renderer):
        """Test a confirmation field against the live value of another field."""
        session.add_field("password", "required|min_len:6")
        session.add_field("confirm", "required|match:password:Password")
        values.set_value("password", "secret1")

        session.validate_field("confirm", "secret2", event="blur")
        assert renderer.shown["confirm"] == 'Confirmation field does not match specified field "Password".'

        assert session.validate_field("confirm", "secret1", event="blur") is FieldState.VALID

    def test_messages_in_declaration_order(self, session, renderer):
        """Test every failing rule's message, in rule order."""
        session.add_field("code", "required|integer|min_len:3")
        session.validate_field("code", "a.", event="blur")
        assert renderer.shown["code"] == "Must be a positive integer. Must be at least 3 characters."

    def test_only_last_message(self, session, renderer):
        """Test show_only_last_message keeps the last failing rule's message."""
        session.set_show_only_last_message(True)
        session.add_field("code", "required|integer|min_len:3")
        session.validate_field("code", "a.", event="blur")
        assert renderer.shown["code"] == "Must be at least 3 characters."

    def test_error_target_reaches_renderer(self, session, renderer):
        """Test the renderer gets the field's error target."""
        session.add_field({"name": "age", "rules": AGE_RULES, "validationErrorTo": "age-errors"})
        session.validate_field("age", "17", event="blur")
        assert renderer.events[-1]["target"] == "#age-errors"

    def test_unregistered_field(self, session):
        """Test validating an unknown field."""
        with pytest.raises(FieldNotRegistered):
            session.validate_field("ghost", "boo")

    def test_real_timers(self, config_loader, renderer):
        """Test a debounced message shows with the threading scheduler."""
        session = ValidationSession(renderer=renderer, config_loader=config_loader)
        session.add_field({"name": "age", "rules": AGE_RULES, "debounce": 10})

        done = threading.Event()
        original_show = renderer.show

        def show(field_name, message, target=None):
            original_show(field_name, message, target)
            done.set()

        renderer.show = show
        session.validate_field("age", "17")
        assert done.wait(timeout=5)
        assert renderer.shown["age"] == AGE_MESSAGE
        session.close()


class TestCheckFormValidity:
    """Test check_form_validity()."""

    def test_shows_pending_and_untouched_errors(self, session, renderer, scheduler):
        """Test a submit check shows every error, even before the timer fires."""
        session.add_field({"name": "age", "rules": AGE_RULES, "form": "signup"})
        session.add_field({"name": "email", "rules": "required|email", "form": "signup"})
        session.validate_field("age", "17")

        assert session.check_form_validity("signup") is False
        assert renderer.shown["age"] == AGE_MESSAGE
        assert renderer.shown["email"] == "Field is required. Must be a valid email address."
        assert session.get_field("email").touched
        assert scheduler.pending() == 0

    def test_valid_form(self, session, values):
        """Test a form with no summary entries."""
        values.set_value("age", "40")
        session.add_field({"name": "age", "rules": AGE_RULES, "form": "signup"})
        assert session.check_form_validity("signup") is True

    def test_forms_are_separate(self, session, values):
        """Test one form's errors do not affect another."""
        values.set_value("age", "40")
        session.add_field({"name": "age", "rules": AGE_RULES, "form": "one"})
        session.add_field({"name": "email", "rules": "required|email", "form": "two"})

        assert session.check_form_validity("one") is True
        assert session.check_form_validity("two") is False
        assert session.check_form_validity() is False

    def test_no_context(self, session):
        """Test checking a form nobody registered a field for."""
        with pytest.raises(MissingValidationContext):
            session.check_form_validity()
        session.add_field({"name": "a", "rules": "required", "form": "one"})
        with pytest.raises(MissingValidationContext):
            session.check_form_validity("two")


class TestRemoval:
    """Test remove_field() and clear_invalid_entries_ahead()."""

    def test_remove_several(self, session, renderer):
        """Test removing a list of fields."""
        session.add_field("a", "required")
        session.add_field("b", "required")
        session.remove_field(["a", "b"])

        assert len(session.registry) == 0
        assert session.validation_summary() == []
        assert [e["field"] for e in renderer.events] == ["a", "b"]

    def test_remove_unknown(self, session):
        """Test removing an unknown field is a no-op."""
        session.remove_field("ghost")
        assert len(session.registry) == 0

    def test_remove_cancels_timer(self, session, scheduler, renderer):
        """Test a removed field's pending timer never shows anything."""
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "17")
        session.remove_field("age")
        assert scheduler.advance(1000) == 0
        assert "age" not in renderer.shown

    def test_clear_invalid_entries_ahead(self, session):
        """Test invalid fields of one form are dropped."""
        session.add_field({"name": "a", "rules": "required", "form": "step2"})
        session.add_field({"name": "b", "rules": "required", "form": "step2"})
        session.add_field({"name": "c", "rules": "required", "form": "step1"})

        assert session.clear_invalid_entries_ahead("step2") == ["a", "b"]
        assert session.get_field("a") is None
        assert [e.field_name for e in session.validation_summary()] == ["c"]

    def test_clear_invalid_entries_ahead_no_context(self, session):
        """Test clearing a form nobody registered a field for."""
        with pytest.raises(MissingValidationContext):
            session.clear_invalid_entries_ahead("step2")


class TestLifecycle:
    """Test reset, page transitions and pending timers."""

    def test_page_transition_resets(self, session, lifecycle, scheduler, renderer):
        """Test a page transition drops every field, entry and timer."""
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "17")

        lifecycle.fire()

        assert session.get_field("age") is None
        assert session.validation_summary() == []
        assert scheduler.advance(1000) == 0
        assert "age" not in renderer.shown
        with pytest.raises(MissingValidationContext):
            session.check_form_validity()

    def test_suppressed_reset(self, session, lifecycle):
        """Test suppress_auto_reset keeps fields across transitions."""
        session.set_suppress_auto_reset(True)
        session.add_field("age", AGE_RULES)
        lifecycle.fire()

        assert session.get_field("age") is not None
        assert len(session.validation_summary()) == 1

    def test_stale_timer_after_reset(self, config_loader, renderer):
        """Test a timer armed before a reset does nothing afterwards."""
        scheduler = UncancellableScheduler()
        session = ValidationSession(
            renderer=renderer, scheduler=scheduler, config_loader=config_loader
        )
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "17")
        session.reset()
        session.add_field("age", AGE_RULES)

        assert scheduler.advance(1000) == 1
        assert "age" not in renderer.shown
        assert session.field_state("age") is FieldState.UNVALIDATED

    def test_stale_timer_after_re_register(self, config_loader, renderer):
        """Test a timer armed for a replaced record does nothing."""
        scheduler = UncancellableScheduler()
        session = ValidationSession(
            renderer=renderer, scheduler=scheduler, config_loader=config_loader
        )
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "17")
        session.add_field("age", "integer")

        scheduler.advance(1000)
        assert "age" not in renderer.shown

    def test_clear_pending(self, session, scheduler, renderer):
        """Test pending timers can be cancelled."""
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "17")

        assert session.clear_pending() == 1
        assert session.field_state("age") is FieldState.UNVALIDATED
        assert scheduler.advance(1000) == 0
        assert "age" not in renderer.shown

    def test_close_unsubscribes(self, session, lifecycle):
        """Test a closed session ignores page transitions."""
        session.add_field("age", AGE_RULES)
        session.close()
        lifecycle.fire()
        assert session.get_field("age") is not None


class TestDiscoverRules:
    """Test discover_rules()."""

    def test_rule_metadata(self, session):
        """Test each rule is described with its rendered message."""
        rules = session.discover_rules(AGE_RULES)
        assert [r["rule_name"] for r in rules] == ["required", "between_num"]
        assert rules[1]["kind"] == "conditionalNumber"
        assert rules[1]["params"] == ["18", "65"]
        assert rules[1]["condition"] == [">=", "<="]
        assert rules[1]["message"] == AGE_MESSAGE
        assert rules[0]["required"] is True


class TestRebindField:
    """Test rebind_field()."""

    def test_rebind(self, session, values):
        """Test new rules apply to the current value straight away."""
        values.set_value("code", "abc")
        session.add_field({"name": "code", "rules": "alpha", "form": "f"})
        assert session.check_form_validity("f") is True

        record = session.rebind_field("code", "integer")
        assert record is session.get_field("code")
        assert record.rules == "integer"
        assert record.form_name == "f"
        assert session.validation_summary("f")[0].message == "Must be a positive integer."

    def test_rebind_bad_rules(self, session):
        """Test a rule string that does not parse leaves the field as it was."""
        session.add_field("code", "alpha")
        with pytest.raises(UnknownRule):
            session.rebind_field("code", "bogus")
        assert session.get_field("code").rules == "alpha"

    def test_rebind_unknown_field(self, session):
        """Test rebinding a field that was never added."""
        with pytest.raises(FieldNotRegistered):
            session.rebind_field("ghost", "required")


class TestIdempotence:
    """Test repeated evaluation of the same value."""

    def test_same_invalid_value_twice(self, session):
        """Test the summary keeps one entry per field."""
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "17", event="blur")
        session.validate_field("age", "17", event="blur")
        assert [e.field_name for e in session.validation_summary()] == ["age"]

    def test_same_valid_value_twice(self, session):
        """Test a valid field leaves no stale entry behind."""
        session.add_field("age", AGE_RULES)
        session.validate_field("age", "30", event="blur")
        session.validate_field("age", "30", event="blur")
        assert session.validation_summary() == []
