"""Tools for generating durable selectors for form elements."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from formation_agent.core.browser_interface import DocumentInterface, ElementInfo
from formation_agent.tools.constants import TEST_ID_ATTRIBUTES

logger = logging.getLogger(__name__)

_CSS_IDENTIFIER = re.compile(r"-?[_a-zA-Z][_a-zA-Z0-9-]*")


@dataclass(frozen=True)
class SelectorResult:
    """A generated selector and whether it came from a naming attribute."""
    selector: str
    is_stable: bool


def quote_attribute_value(value: str) -> str:
    """Quote a value for use inside ``[attr="..."]``."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def is_css_identifier(value: str) -> bool:
    return bool(value) and _CSS_IDENTIFIER.fullmatch(value) is not None


class SelectorGenerator:
    """Derives a CSS selector for an element from its most stable attributes.

    Preference order, first match wins:

    1. ``name`` -> ``tag[name="..."]`` (stable)
    2. test-id attributes -> ``[data-testid="..."]`` (stable)
    3. ``id`` -> ``#id`` (volatile; ids are regenerated by SPA re-renders)
    4. first class of an input -> ``input.class[type="..."]``
    5. ``tag:nth-of-type(k)`` among same-tag siblings
    """

    def __init__(self, test_id_attributes: Optional[Sequence[str]] = None):
        """
        Initialize the selector generator.

        Args:
            test_id_attributes: Attribute names treated as test ids, in priority order
        """
        self.test_id_attributes = tuple(test_id_attributes or TEST_ID_ATTRIBUTES)
        self.logger = logging.getLogger(__name__)

    def generate(self, info: ElementInfo) -> SelectorResult:
        """
        Generate a selector for an inspected element.

        Args:
            info: Element capability record

        Returns:
            SelectorResult; always carries a usable selector
        """
        tag = info.tag.lower() or "input"

        if info.name:
            return SelectorResult(f"{tag}[name={quote_attribute_value(info.name)}]", True)

        for attribute in self.test_id_attributes:
            value = info.attributes.get(attribute)
            if value:
                return SelectorResult(f"[{attribute}={quote_attribute_value(value)}]", True)

        if info.element_id:
            return SelectorResult(self._id_selector(info.element_id), False)

        if tag == "input":
            first_class = next(iter(info.classes), "")
            if is_css_identifier(first_class):
                type_attribute = info.attributes.get("type")
                if type_attribute:
                    return SelectorResult(
                        f"input.{first_class}[type={quote_attribute_value(type_attribute)}]", False
                    )
                # Without an explicit type attribute [type=...] would not match.
                return SelectorResult(f"input.{first_class}", False)

        return SelectorResult(self._positional_selector(tag, info.sibling_index), False)

    async def generate_for(self, document: DocumentInterface, handle: Any) -> SelectorResult:
        """Inspect an element handle and generate its selector."""
        info = await document.inspect(handle)
        result = self.generate(info)
        self.logger.debug(f"Generated selector {result.selector} (stable={result.is_stable})")
        return result

    def _id_selector(self, element_id: str) -> str:
        if is_css_identifier(element_id):
            return f"#{element_id}"
        # Ids starting with a digit or holding special characters are not valid
        # after '#', the attribute form accepts any value.
        return f"[id={quote_attribute_value(element_id)}]"

    def _positional_selector(self, tag: str, sibling_index: Optional[int]) -> str:
        return f"{tag}:nth-of-type({sibling_index or 1})"
