"""In-memory document used to host the engine without a browser.

Supports the subset of CSS the engine itself produces and consumes:
compound selectors built from a tag (or ``*``), ``#id``, ``.class``,
``[attr]``, ``[attr="value"]``, ``[attr~="value"]`` and
``:nth-of-type(k)``, joined into comma-separated lists.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from formation_agent.core.browser_interface import ElementInfo, OptionInfo

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"\*|[a-zA-Z][a-zA-Z0-9-]*")
_IDENT_RE = re.compile(r"-?[_a-zA-Z][_a-zA-Z0-9-]*")
_ATTR_RE = re.compile(
    r"""\[\s*([_a-zA-Z][_a-zA-Z0-9-]*)\s*(?:(~?=)\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)'))?\s*\]"""
)
_NTH_RE = re.compile(r":nth-of-type\(\s*(\d+)\s*\)")


class MemoryElement:
    """A minimal DOM element."""

    def __init__(self, tag: str, attributes: Optional[Dict[str, str]] = None, text: str = ""):
        self.tag = tag.lower()
        self.attributes: Dict[str, str] = dict(attributes or {})
        self.text = text
        self.value = self.attributes.pop("value", "")
        self.children: List["MemoryElement"] = []
        self.parent: Optional["MemoryElement"] = None
        self.style: Dict[str, str] = {}
        self.width = 200.0
        self.height = 24.0
        self.disabled = "disabled" in self.attributes
        self.read_only = "readonly" in self.attributes
        self.required = "required" in self.attributes
        self.multiple = "multiple" in self.attributes
        self.options: List[OptionInfo] = []
        self.listeners: Dict[str, List[Callable[["MemoryElement", str], None]]] = {}

    def append(self, child: "MemoryElement") -> "MemoryElement":
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)
        return child

    def detach(self) -> None:
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None

    def iter_descendants(self) -> Iterator["MemoryElement"]:
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def ancestors(self) -> Iterator["MemoryElement"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def text_content(self) -> str:
        if self.tag == "select":
            return "".join(option.text for option in self.options)
        if self.tag == "textarea":
            return self.text
        return self.text + "".join(child.text_content() for child in self.children)

    def on(self, event_type: str, callback: Callable[["MemoryElement", str], None]) -> None:
        self.listeners.setdefault(event_type, []).append(callback)

    def __repr__(self) -> str:
        attrs = " ".join(f'{k}="{v}"' for k, v in self.attributes.items())
        return f"<{self.tag} {attrs}>".replace(" >", ">")


class MemoryDocument:
    """Document backed by a tree of ``MemoryElement`` objects."""

    def __init__(self, url: str = "https://example.com/"):
        self.url = url
        self.root = MemoryElement("html")
        self.body = self.root.append(MemoryElement("body"))
        self.events: List[Tuple[MemoryElement, str]] = []

    # --- Tree building -------------------------------------------------

    def create(
        self,
        tag: str,
        parent: Optional[MemoryElement] = None,
        text: str = "",
        **attributes: Any,
    ) -> MemoryElement:
        """Create an element and attach it (to ``body`` by default).

        Keyword attributes use ``_`` for ``-`` and a trailing ``_`` for
        reserved words, e.g. ``data_testid="x"``, ``class_="a b"``,
        ``for_="email"``. Boolean ``True`` renders as a bare attribute.
        """
        attrs: Dict[str, str] = {}
        for key, val in attributes.items():
            if val is None or val is False:
                continue
            attr_name = key.rstrip("_").replace("_", "-")
            attrs[attr_name] = "" if val is True else str(val)
        element = MemoryElement(tag, attrs, text=text)
        (parent or self.body).append(element)
        return element

    def add_form(self, parent: Optional[MemoryElement] = None, **attributes: Any) -> MemoryElement:
        return self.create("form", parent=parent, **attributes)

    def add_input(self, parent: Optional[MemoryElement] = None, **attributes: Any) -> MemoryElement:
        return self.create("input", parent=parent, **attributes)

    def add_textarea(self, parent: Optional[MemoryElement] = None, text: str = "", **attributes: Any) -> MemoryElement:
        element = self.create("textarea", parent=parent, text=text, **attributes)
        element.value = element.value or text
        return element

    def add_select(
        self,
        options: Sequence[Tuple[str, str]],
        parent: Optional[MemoryElement] = None,
        **attributes: Any,
    ) -> MemoryElement:
        element = self.create("select", parent=parent, **attributes)
        element.options = [OptionInfo(value=value, text=text) for value, text in options]
        if not element.value and element.options and not element.multiple:
            element.value = element.options[0].value
        return element

    def add_label(self, text: str, parent: Optional[MemoryElement] = None, **attributes: Any) -> MemoryElement:
        return self.create("label", parent=parent, text=text, **attributes)

    # --- DocumentInterface ---------------------------------------------

    async def query_selector_all(self, selector: str) -> List[MemoryElement]:
        compounds = [_parse_compound(part) for part in _split_selector_list(selector)]
        return [
            element
            for element in self.root.iter_descendants()
            if any(_matches(element, compound) for compound in compounds)
        ]

    async def inspect(self, handle: MemoryElement) -> ElementInfo:
        element = handle
        connected = self._is_connected(element)
        associated_label = None
        element_id = element.attributes.get("id")
        if element_id and connected:
            for candidate in self.root.iter_descendants():
                if candidate.tag == "label" and candidate.attributes.get("for") == element_id:
                    associated_label = candidate.text_content()
                    break

        ancestor_label = None
        form_element = None
        for ancestor in element.ancestors():
            if ancestor_label is None and ancestor.tag == "label":
                ancestor_label = ancestor.text_content()
            if form_element is None and ancestor.tag == "form":
                form_element = ancestor

        form_index = None
        if form_element is not None and connected:
            forms = [node for node in self.root.iter_descendants() if node.tag == "form"]
            form_index = forms.index(form_element)

        sibling_index = None
        if element.parent is not None:
            same_tag = [child for child in element.parent.children if child.tag == element.tag]
            sibling_index = same_tag.index(element) + 1

        max_length = element.attributes.get("maxlength")
        return ElementInfo(
            tag=element.tag,
            attributes=dict(element.attributes),
            value=element.value,
            is_connected=connected,
            hidden="hidden" in element.attributes,
            display=element.style.get("display", "inline-block"),
            width=element.width,
            height=element.height,
            disabled=element.disabled,
            read_only=element.read_only,
            required=element.required,
            max_length=int(max_length) if max_length and max_length.isdigit() else None,
            multiple=element.multiple,
            options=tuple(element.options),
            associated_label=associated_label,
            ancestor_label=ancestor_label,
            own_text=element.text_content(),
            sibling_index=sibling_index,
            form_index=form_index,
        )

    async def set_value(self, handle: MemoryElement, value: str) -> None:
        if handle.tag == "select":
            values = [option.value for option in handle.options]
            handle.value = value if value in values else ""
        else:
            handle.value = value

    async def dispatch_event(self, handle: MemoryElement, event_type: str) -> None:
        self.events.append((handle, event_type))
        for callback in list(handle.listeners.get(event_type, [])):
            callback(handle, event_type)

    async def set_style(self, handle: MemoryElement, name: str, value: str) -> str:
        previous = handle.style.get(name, "")
        if value:
            handle.style[name] = value
        else:
            handle.style.pop(name, None)
        return previous

    # --- Helpers -------------------------------------------------------

    def events_for(self, element: MemoryElement) -> List[str]:
        return [event_type for target, event_type in self.events if target is element]

    def _is_connected(self, element: MemoryElement) -> bool:
        return element is self.root or any(node is self.root for node in element.ancestors())


def _split_selector_list(selector: str) -> List[str]:
    parts, depth, quote, current = [], 0, "", []
    for char in selector:
        if quote:
            if char == quote:
                quote = ""
        elif char in "\"'":
            quote = char
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    parts.append("".join(current).strip())
    if any(not part for part in parts):
        raise ValueError(f"Invalid selector: '{selector}'")
    return parts


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def _parse_compound(selector: str) -> Dict[str, Any]:
    compound: Dict[str, Any] = {"tag": None, "id": None, "classes": [], "attrs": [], "nth": None}
    pos = 0
    tag_match = _TAG_RE.match(selector, pos)
    if tag_match:
        compound["tag"] = tag_match.group(0).lower()
        pos = tag_match.end()
    while pos < len(selector):
        char = selector[pos]
        if char == "#":
            ident = _IDENT_RE.match(selector, pos + 1)
            if not ident:
                raise ValueError(f"Invalid selector: '{selector}'")
            compound["id"] = ident.group(0)
            pos = ident.end()
        elif char == ".":
            ident = _IDENT_RE.match(selector, pos + 1)
            if not ident:
                raise ValueError(f"Invalid selector: '{selector}'")
            compound["classes"].append(ident.group(0))
            pos = ident.end()
        elif char == "[":
            attr = _ATTR_RE.match(selector, pos)
            if not attr:
                raise ValueError(f"Invalid selector: '{selector}'")
            raw = attr.group(3) if attr.group(3) is not None else attr.group(4)
            compound["attrs"].append(
                (attr.group(1).lower(), attr.group(2), _unescape(raw) if raw is not None else None)
            )
            pos = attr.end()
        elif char == ":":
            nth = _NTH_RE.match(selector, pos)
            if not nth:
                raise ValueError(f"Unsupported selector: '{selector}'")
            compound["nth"] = int(nth.group(1))
            pos = nth.end()
        else:
            raise ValueError(f"Unsupported selector: '{selector}'")
    if pos == 0:
        raise ValueError(f"Invalid selector: '{selector}'")
    return compound


def _matches(element: MemoryElement, compound: Dict[str, Any]) -> bool:
    tag = compound["tag"]
    if tag and tag != "*" and element.tag != tag:
        return False
    if compound["id"] is not None and element.attributes.get("id") != compound["id"]:
        return False
    classes = element.attributes.get("class", "").split()
    if any(cls not in classes for cls in compound["classes"]):
        return False
    for name, operator, expected in compound["attrs"]:
        actual = element.attributes.get(name)
        if actual is None:
            return False
        if operator == "=" and actual != expected:
            return False
        if operator == "~=" and expected not in actual.split():
            return False
    if compound["nth"] is not None:
        if element.parent is None:
            return False
        same_tag = [child for child in element.parent.children if child.tag == element.tag]
        if same_tag.index(element) + 1 != compound["nth"]:
            return False
    return True
