"""Registry of the fields watched by a validation session."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .rule_parser import RulePipeline


class FieldState(Enum):
    """Display lifecycle of a field."""

    UNVALIDATED = "unvalidated"
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(eq=False)
class FieldRecord:
    """
    One registered field.

    Records compare by identity: a timer armed for a record that has since
    been replaced in the registry must not act on the replacement.
    """

    field_name: str
    rules: str
    friendly_name: str = ""
    form_name: Optional[str] = None
    input_type: str = "text"
    typing_limit: int = 1000  # ms
    error_target: Optional[str] = None
    translate: bool = False
    attributes: Dict[str, Any] = field(default_factory=dict)
    is_valid: bool = False
    current_message: str = ""
    state: FieldState = FieldState.UNVALIDATED
    dirty: bool = False
    touched: bool = False
    pipeline: Optional[RulePipeline] = field(default=None, repr=False)

    @property
    def is_required(self) -> bool:
        return self.pipeline is not None and self.pipeline.is_required

    def rebind(self, rules: str) -> None:
        """Swap the rule string; the pipeline is parsed again on next use."""
        if rules != self.rules:
            self.rules = rules
            self.pipeline = None

    def mark_pristine(self) -> None:
        self.dirty = False
        self.touched = False


class FieldRegistry:
    """Ordered mapping of field name -> FieldRecord"""

    def __init__(self):
        self._records: Dict[str, FieldRecord] = {}

    def upsert(self, record: FieldRecord) -> FieldRecord:
        """Add a record, replacing any record of the same name in place."""
        self._records[record.field_name] = record
        return record

    def find(self, field_name: str) -> Optional[FieldRecord]:
        return self._records.get(field_name)

    def remove(self, field_name: str) -> Optional[FieldRecord]:
        """Remove a record; returns it, or None when the name is unknown."""
        return self._records.pop(field_name, None)

    def all(self) -> List[FieldRecord]:
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()

    def __contains__(self, field_name: str) -> bool:
        return field_name in self._records

    def __iter__(self) -> Iterator[FieldRecord]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._records)
