"""
field-validation-lib: Form field validation driven by rule strings

This library validates form fields against pipelines like
"required|email|between_len:5:80" with:
- A rule catalog and message locales loaded from local or remote YAML
- Custom inline regexes (regex:<message>:=<pattern>:regex)
- Numeric, date and cross-field (match) comparisons
- A per-page validation summary queried on form submission
- Debounced evaluation with pluggable renderers and schedulers

Example:
    from field_validation import ValidationSession

    session = ValidationSession()
    session.add_field({"name": "email", "rules": "required|email", "form": "signup"})
    session.validate_field("email", "not-an-email", event="blur")
    session.check_form_validity("signup")  # False
"""

from .api import ValidationSession
from .collaborators import (
    DictValueSource,
    ErrorRenderer,
    FieldValueSource,
    LifecycleHook,
    LoggingRenderer,
    RecordingRenderer,
)
from .config_loader import ConfigLoader
from .field_registry import FieldState
from .scheduler import ManualScheduler, ThreadingScheduler
from .translator import CatalogTranslator, TranslationOutcome, Translator

__version__ = "0.1.0"
__all__ = [
    "ValidationSession",
    "ConfigLoader",
    "FieldState",
    "FieldValueSource",
    "DictValueSource",
    "ErrorRenderer",
    "LoggingRenderer",
    "RecordingRenderer",
    "LifecycleHook",
    "ManualScheduler",
    "ThreadingScheduler",
    "Translator",
    "CatalogTranslator",
    "TranslationOutcome",
]
