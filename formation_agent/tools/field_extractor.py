"""Tools for extracting semantic snapshots of form fields."""

import logging
from typing import Any, Optional, Sequence

from formation_agent.core.browser_interface import DocumentInterface, ElementInfo, FieldKind
from formation_agent.core.models import FieldSnapshot
from formation_agent.tools.constants import EXCLUDED_INPUT_TYPES, MIN_VISIBLE_SIZE
from formation_agent.tools.selector_generator import SelectorGenerator

logger = logging.getLogger(__name__)


def normalize_field_type(info: ElementInfo) -> str:
    """Return the normalized type of a field.

    Inputs report their type attribute, textareas ``textarea``, selects
    ``select-one`` or ``select-multiple``; anything else is ``text``.
    """
    if info.kind is FieldKind.TEXT:
        return info.input_type
    if info.kind is FieldKind.TEXTAREA:
        return "textarea"
    if info.kind is FieldKind.SELECT:
        return "select-multiple" if info.multiple else "select-one"
    return "text"


class FieldSnapshotExtractor:
    """Converts live elements into immutable field snapshots."""

    def __init__(
        self,
        selector_generator: Optional[SelectorGenerator] = None,
        min_visible_size: float = MIN_VISIBLE_SIZE,
        excluded_types: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the extractor.

        Args:
            selector_generator: Generator used for the snapshot selector
            min_visible_size: Minimum rendered width and height in pixels
            excluded_types: Input types that are never offered for capture
        """
        self.selector_generator = selector_generator or SelectorGenerator()
        self.min_visible_size = min_visible_size
        self.excluded_types = frozenset(t.lower() for t in (excluded_types or EXCLUDED_INPUT_TYPES))
        self.logger = logging.getLogger(__name__)

    def is_selectable(self, info: ElementInfo) -> bool:
        """Eligibility gate for capture and autofill.

        Sensitive and non-data-bearing fields never pass: detached, hidden,
        undersized, disabled and read-only elements, and inputs whose type
        is in the exclusion set.
        """
        if not info.is_input_class:
            return False
        if not info.is_connected or info.hidden or info.display == "none":
            return False
        if info.width < self.min_visible_size or info.height < self.min_visible_size:
            return False
        if info.disabled or info.read_only:
            return False
        if info.kind is FieldKind.TEXT and info.input_type in self.excluded_types:
            return False
        return True

    def extract_label(self, info: ElementInfo) -> str:
        """Best human-readable label for a field; never empty."""
        if info.associated_label and info.associated_label.strip():
            return info.associated_label.strip()

        if info.ancestor_label:
            text = info.ancestor_label
            if info.own_text:
                text = text.replace(info.own_text, "", 1)
            if text.strip():
                return text.strip()

        if info.placeholder.strip():
            return info.placeholder.strip()

        if info.name:
            return info.name

        return f"{info.tag.lower()}[{normalize_field_type(info)}]"

    def snapshot(self, info: ElementInfo) -> Optional[FieldSnapshot]:
        """
        Build a snapshot from an inspected element.

        Args:
            info: Element capability record

        Returns:
            FieldSnapshot, or None when the element fails the eligibility gate
        """
        if not self.is_selectable(info):
            self.logger.debug(f"Skipping ineligible {info.tag} element (type={info.input_type})")
            return None

        selector = self.selector_generator.generate(info)
        max_length = info.max_length if info.max_length and info.max_length > 0 else None
        return FieldSnapshot(
            selector=selector.selector,
            value=info.value or "",
            label=self.extract_label(info),
            type=normalize_field_type(info),
            placeholder=info.placeholder or None,
            is_required=info.required,
            max_length=max_length,
            is_stable=selector.is_stable,
            kind=info.kind,
        )

    async def extract(self, document: DocumentInterface, handle: Any) -> Optional[FieldSnapshot]:
        """Inspect a live element and return its snapshot (None if ineligible)."""
        info = await document.inspect(handle)
        return self.snapshot(info)
