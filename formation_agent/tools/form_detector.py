"""Tools for detecting plain forms and deriving their storage keys."""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from formation_agent.core.browser_interface import DocumentInterface, FieldKind
from formation_agent.core.models import FormField, FormInfo, StorageKey
from formation_agent.tools.constants import SENSITIVE_INPUT_TYPES, SUPPORTED_INPUT_TYPES
from formation_agent.tools.selector_generator import SelectorGenerator
from formation_agent.tools.url_pattern import origin_of, path_of

logger = logging.getLogger(__name__)

EMPTY_SIGNATURE = "empty"


def generate_form_signature(names: Iterable[str]) -> str:
    """Order-independent signature of a form built from its field names."""
    names = sorted(names)
    if not names:
        return EMPTY_SIGNATURE
    return "fields_" + "|".join(names)


def storage_key_for(url: str, signature: str) -> StorageKey:
    return StorageKey(origin=origin_of(url), path=path_of(url), form_signature=signature)


class FormDetector:
    """Collects name-keyed text fields and groups them by containing form."""

    def __init__(
        self,
        selector_generator: Optional[SelectorGenerator] = None,
        supported_types: Optional[Sequence[str]] = None,
    ):
        self.selector_generator = selector_generator or SelectorGenerator()
        self.supported_types = tuple(supported_types or SUPPORTED_INPUT_TYPES)
        self.logger = logging.getLogger(__name__)

    async def detect_forms(self, document: DocumentInterface) -> List[FormInfo]:
        """
        Detect forms on the current document.

        Args:
            document: Document to scan

        Returns:
            One FormInfo per <form> holding at least one field, followed by
            a page-level FormInfo for fields outside any form
        """
        grouped: Dict[Optional[int], List[FormField]] = {}
        for handle in await document.query_selector_all("input, textarea"):
            info = await document.inspect(handle)
            if info.kind is FieldKind.TEXT:
                field_type = info.input_type
                if field_type not in self.supported_types or field_type in SENSITIVE_INPUT_TYPES:
                    continue
            elif info.kind is FieldKind.TEXTAREA:
                field_type = "textarea"
            else:
                continue

            name = info.name or info.element_id
            if not name:
                continue

            selector = self.selector_generator.generate(info).selector
            grouped.setdefault(info.form_index, []).append(
                FormField(handle=handle, name=name, type=field_type, selector=selector)
            )

        origin, path = origin_of(document.url), path_of(document.url)
        ordered = sorted((index for index in grouped if index is not None))
        if None in grouped:
            ordered.append(None)

        forms = [
            FormInfo(
                index=index,
                fields=grouped[index],
                origin=origin,
                path=path,
                signature=generate_form_signature(f.name for f in grouped[index]),
            )
            for index in ordered
        ]
        self.logger.debug(f"Detected {len(forms)} form(s) on {document.url}")
        return forms

    async def collect_values(self, document: DocumentInterface, form: FormInfo) -> Dict[str, str]:
        """Re-read the current values of a form; blank values are left out."""
        values: Dict[str, str] = {}
        for form_field in form.fields:
            info = await document.inspect(form_field.handle)
            if (info.value or "").strip():
                values[form_field.name] = info.value
        return values
