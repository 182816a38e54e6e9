"""Interface to the document the engine reads from and writes to."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple


class FieldKind(Enum):
    """Capability class of an element, computed once from its tag."""
    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    OTHER = "other"


@dataclass(frozen=True)
class OptionInfo:
    """One <option> of a select element."""
    value: str
    text: str


@dataclass(frozen=True)
class ElementInfo:
    """Snapshot of everything the engine needs to know about one element.

    Produced by ``DocumentInterface.inspect`` so the engine never touches
    live element objects directly.
    """
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    value: str = ""
    is_connected: bool = True
    hidden: bool = False
    display: str = "inline-block"
    width: float = 0.0
    height: float = 0.0
    disabled: bool = False
    read_only: bool = False
    required: bool = False
    max_length: Optional[int] = None
    multiple: bool = False
    options: Tuple[OptionInfo, ...] = ()
    associated_label: Optional[str] = None  # text of <label for=id>
    ancestor_label: Optional[str] = None    # text of the closest enclosing <label>
    own_text: str = ""
    sibling_index: Optional[int] = None     # 1-based among same-tag siblings, None if detached
    form_index: Optional[int] = None        # index of the containing <form>, None if orphan

    @property
    def kind(self) -> FieldKind:
        tag = self.tag.lower()
        if tag == "input":
            return FieldKind.TEXT
        if tag == "textarea":
            return FieldKind.TEXTAREA
        if tag == "select":
            return FieldKind.SELECT
        return FieldKind.OTHER

    @property
    def name(self) -> str:
        return self.attributes.get("name", "")

    @property
    def element_id(self) -> str:
        return self.attributes.get("id", "")

    @property
    def input_type(self) -> str:
        """The effective input type; browsers treat a missing/unknown type as text."""
        return (self.attributes.get("type") or "text").lower()

    @property
    def placeholder(self) -> str:
        return self.attributes.get("placeholder", "")

    @property
    def classes(self) -> List[str]:
        return self.attributes.get("class", "").split()

    @property
    def is_input_class(self) -> bool:
        return self.kind is not FieldKind.OTHER


class DocumentInterface(Protocol):
    """Protocol defining the document capabilities the engine requires.

    Handles returned by ``query_selector_all`` are opaque to the engine and
    only ever passed back into the same document.
    """

    url: str

    async def query_selector_all(self, selector: str) -> List[Any]:
        """Return every element matching a CSS selector, in document order."""
        ...

    async def inspect(self, handle: Any) -> ElementInfo:
        """Read tag, attributes, state, geometry and label texts of an element."""
        ...

    async def set_value(self, handle: Any, value: str) -> None:
        """Assign the underlying value of a field (option value for selects)."""
        ...

    async def dispatch_event(self, handle: Any, event_type: str) -> None:
        """Dispatch a synthetic bubbling event on an element."""
        ...

    async def set_style(self, handle: Any, name: str, value: str) -> str:
        """Set an inline style property and return its previous value."""
        ...
