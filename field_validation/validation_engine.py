import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .field_registry import FieldRecord
from .rule_executor import KEY_CHAR_MESSAGE, FieldContext, RuleResult, ValidatorEvaluator
from .rule_loader import RuleCatalog
from .rule_parser import RuleParser, RulePipeline
from .translator import CatalogTranslator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldOutcome:
    """Outcome of every rule of a field against one value."""

    field_name: str
    valid: bool
    message: str
    results: Tuple[RuleResult, ...] = ()

    @property
    def failed(self) -> List[RuleResult]:
        return [r for r in self.results if not r.valid]


class ValidationEngine:
    """Core field validation logic, independent of timers and rendering"""

    def __init__(self, config_loader, translator=None, catalog: Optional[RuleCatalog] = None):
        """
        Initialize validation engine.

        Args:
            config_loader: ConfigLoader instance
            translator: Translator for failure messages; defaults to the
                configured locale's CatalogTranslator
            catalog: RuleCatalog; defaults to the configured rule catalog

        Raises:
            ConfigError: If the rule catalog or locale files cannot be loaded
        """
        self.config_loader = config_loader
        self.options = config_loader.get_validation_options()

        self.catalog = catalog or RuleCatalog.from_config(config_loader)
        self.translator = translator or CatalogTranslator.from_config(config_loader)
        self.parser = RuleParser(self.catalog)
        self.evaluator = ValidatorEvaluator(
            self.translator, strict_date_formats=self.options["strict_date_formats"]
        )

    def parse(self, rules: str) -> RulePipeline:
        return self.parser.parse(rules)

    def pipeline_for(self, record: FieldRecord) -> RulePipeline:
        """Return the record's parsed pipeline, parsing its rules on first use."""
        if record.pipeline is None:
            record.pipeline = self.parser.parse(record.rules)
        return record.pipeline

    def evaluate_field(
        self,
        record: FieldRecord,
        value: Any,
        context: FieldContext,
        display_only_last_error: bool = False,
    ) -> FieldOutcome:
        """
        Run every rule of a field against a value.

        Messages of failing rules are joined with spaces in declaration
        order, or only the last one is kept when display_only_last_error
        is set. Nothing on the record is changed.

        Args:
            record: Registered field
            value: Value to validate
            context: Field context for the evaluator
            display_only_last_error: Keep only the last failing rule's message

        Returns:
            FieldOutcome for the field
        """
        pipeline = self.pipeline_for(record)
        context.is_required = pipeline.is_required

        results = tuple(
            self.evaluator.evaluate(descriptor, value, context) for descriptor in pipeline
        )

        message = ""
        key_char_reported = False
        for result in results:
            if result.valid or not result.message:
                continue
            # One keyboard-entry message per field, however many rules tripped it
            if result.message_key == KEY_CHAR_MESSAGE:
                if key_char_reported:
                    continue
                key_char_reported = True
            if display_only_last_error and message:
                message = " " + result.message
            else:
                message += " " + result.message
        message = message.strip()

        valid = all(r.valid for r in results)
        if not valid and not message:
            # Keep the field in the summary even when nothing could be rendered
            message = " ".join(r.message_key for r in results if not r.valid)
            logger.warning(
                f"No message rendered for invalid field {record.field_name}, using keys",
                extra={"field": record.field_name, "message_keys": message},
            )

        logger.debug(
            f"Field {record.field_name} evaluated: {'valid' if valid else 'invalid'}",
            extra={"field": record.field_name, "rules": record.rules},
        )
        return FieldOutcome(
            field_name=record.field_name, valid=valid, message=message, results=results
        )

    def discover_rules(self, rules: str) -> List[Dict[str, Any]]:
        """
        Describe the rules of a pipeline without evaluating anything.

        Args:
            rules: Rule pipeline string

        Returns:
            One dict per rule with rule_name, kind, params, condition,
            date_format, alt_text and message (translated, params filled in)
        """
        pipeline = self.parser.parse(rules)
        return [
            {
                "rule_name": d.rule_name,
                "kind": d.kind.value,
                "params": list(d.params),
                "condition": list(d.condition) if isinstance(d.condition, tuple) else d.condition,
                "date_format": d.date_format,
                "alt_text": d.alt_text,
                "message": self.evaluator.render_message(d),
                "required": pipeline.is_required,
            }
            for d in pipeline
        ]
