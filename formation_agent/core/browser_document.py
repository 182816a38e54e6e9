"""Playwright-backed document: the engine's view of a live browser page."""

import logging
from typing import Any, Dict, List

from playwright.async_api import ElementHandle, Page

from formation_agent.core.browser_interface import ElementInfo, OptionInfo

logger = logging.getLogger(__name__)

INSPECT_SCRIPT = """el => {
    const attributes = {};
    for (const attr of el.attributes) {
        attributes[attr.name] = attr.value;
    }
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const tag = el.tagName.toLowerCase();

    let associatedLabel = null;
    if (el.id) {
        const label = document.querySelector(`label[for="${CSS.escape(el.id)}"]`);
        if (label) associatedLabel = label.textContent;
    }
    const ancestor = el.parentElement ? el.parentElement.closest('label') : null;

    let siblingIndex = null;
    if (el.parentElement) {
        siblingIndex = 1;
        let sibling = el.previousElementSibling;
        while (sibling) {
            if (sibling.tagName === el.tagName) siblingIndex++;
            sibling = sibling.previousElementSibling;
        }
    }

    let formIndex = null;
    if (el.form) {
        const index = Array.from(document.forms).indexOf(el.form);
        formIndex = index >= 0 ? index : null;
    }

    return {
        tag,
        attributes,
        value: tag === 'select' || tag === 'input' || tag === 'textarea' ? (el.value || '') : '',
        is_connected: el.isConnected,
        hidden: el.hidden,
        display: style.display,
        width: rect.width,
        height: rect.height,
        disabled: !!el.disabled,
        read_only: !!el.readOnly,
        required: !!el.required,
        max_length: typeof el.maxLength === 'number' && el.maxLength >= 0 ? el.maxLength : null,
        multiple: !!el.multiple,
        options: tag === 'select' ? Array.from(el.options).map(o => [o.value, o.text]) : [],
        associated_label: associatedLabel,
        ancestor_label: ancestor ? ancestor.textContent : null,
        own_text: el.textContent || '',
        sibling_index: siblingIndex,
        form_index: formIndex,
    };
}"""

SET_VALUE_SCRIPT = "(el, value) => { el.value = value; }"

DISPATCH_SCRIPT = """(el, type) => {
    el.dispatchEvent(new Event(type, { bubbles: true }));
}"""

SET_STYLE_SCRIPT = """(el, [name, value]) => {
    const previous = el.style.getPropertyValue(name);
    if (value) {
        el.style.setProperty(name, value);
    } else {
        el.style.removeProperty(name);
    }
    return previous;
}"""


def element_info_from_dict(data: Dict[str, Any]) -> ElementInfo:
    """Build an ElementInfo from the inspection script's result."""
    max_length = data.get("max_length")
    return ElementInfo(
        tag=(data.get("tag") or "").lower(),
        attributes=dict(data.get("attributes") or {}),
        value=data.get("value") or "",
        is_connected=bool(data.get("is_connected", True)),
        hidden=bool(data.get("hidden", False)),
        display=data.get("display") or "inline-block",
        width=float(data.get("width") or 0.0),
        height=float(data.get("height") or 0.0),
        disabled=bool(data.get("disabled", False)),
        read_only=bool(data.get("read_only", False)),
        required=bool(data.get("required", False)),
        max_length=int(max_length) if max_length is not None else None,
        multiple=bool(data.get("multiple", False)),
        options=tuple(OptionInfo(value, text) for value, text in data.get("options") or []),
        associated_label=data.get("associated_label"),
        ancestor_label=data.get("ancestor_label"),
        own_text=data.get("own_text") or "",
        sibling_index=data.get("sibling_index"),
        form_index=data.get("form_index"),
    )


class PlaywrightDocument:
    """Adapts a Playwright ``Page`` to the document interface.

    Handles are Playwright ``ElementHandle`` objects; every read goes
    through a single ``evaluate`` call so an inspection is one round trip.
    """

    def __init__(self, page: Page):
        self.page = page
        self.logger = logging.getLogger(__name__)

    @property
    def url(self) -> str:
        return self.page.url

    async def query_selector_all(self, selector: str) -> List[ElementHandle]:
        return await self.page.query_selector_all(selector)

    async def inspect(self, handle: ElementHandle) -> ElementInfo:
        data = await handle.evaluate(INSPECT_SCRIPT)
        return element_info_from_dict(data)

    async def set_value(self, handle: ElementHandle, value: str) -> None:
        await handle.evaluate(SET_VALUE_SCRIPT, value)

    async def dispatch_event(self, handle: ElementHandle, event_type: str) -> None:
        await handle.evaluate(DISPATCH_SCRIPT, event_type)

    async def set_style(self, handle: ElementHandle, name: str, value: str) -> str:
        previous = await handle.evaluate(SET_STYLE_SCRIPT, [name, value])
        return previous or ""
