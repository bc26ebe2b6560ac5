"""
Validation summary: the current error of every invalid field.

A field has an entry exactly while its last evaluation failed. Entries keep
the order in which fields first became invalid.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryEntry:
    field_name: str
    message: str
    friendly_name: str = ""
    form_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ValidationSummary:
    """Mapping of field name -> SummaryEntry, filterable by form"""

    def __init__(self):
        self._entries: Dict[str, SummaryEntry] = {}
        # Forms with at least one registered field since the last reset
        self._attached_forms: Set[Optional[str]] = set()

    def attach(self, form_name: Optional[str]) -> None:
        """Record that a form (None for the page itself) has a summary."""
        self._attached_forms.add(form_name)

    def is_attached(self, form_name: Optional[str]) -> bool:
        if form_name is None:
            return bool(self._attached_forms)
        return form_name in self._attached_forms

    def upsert(
        self,
        field_name: str,
        message: str,
        friendly_name: str = "",
        form_name: Optional[str] = None,
    ) -> None:
        """Store the field's error; an empty message clears it instead."""
        if not message:
            self.clear(field_name)
            return
        self._entries[field_name] = SummaryEntry(
            field_name=field_name,
            message=message,
            friendly_name=friendly_name,
            form_name=form_name,
        )

    def clear(self, field_name: str) -> None:
        self._entries.pop(field_name, None)

    def get(self, field_name: str) -> Optional[SummaryEntry]:
        return self._entries.get(field_name)

    def all(self) -> List[SummaryEntry]:
        return list(self._entries.values())

    def for_form(self, form_name: Optional[str]) -> List[SummaryEntry]:
        """Entries of one form, or of the whole page when form_name is None."""
        if form_name is None:
            return self.all()
        return [e for e in self._entries.values() if e.form_name == form_name]

    def reset_all(self) -> None:
        logger.debug(f"Resetting validation summary ({len(self._entries)} entries)")
        self._entries.clear()
        self._attached_forms.clear()

    def __contains__(self, field_name: str) -> bool:
        return field_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
