"""Data models shared by the form memory engine."""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from functools import total_ordering
from typing import Any, Dict, List, Optional

from formation_agent.core.browser_interface import FieldKind


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class FieldSnapshot:
    """One captured field: where it was, what it held and how it was labelled."""
    selector: str
    value: str
    label: str
    type: str
    placeholder: Optional[str] = None
    is_required: bool = False
    max_length: Optional[int] = None
    is_stable: bool = False
    kind: FieldKind = FieldKind.TEXT

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldSnapshot":
        return cls(
            selector=data["selector"],
            value=data.get("value", ""),
            label=data.get("label", ""),
            type=data.get("type", "text"),
            placeholder=data.get("placeholder"),
            is_required=bool(data.get("is_required", False)),
            max_length=data.get("max_length"),
            is_stable=bool(data.get("is_stable", False)),
            kind=FieldKind(data.get("kind", FieldKind.TEXT.value)),
        )


@dataclass
class FieldMemory:
    """A named, timestamped collection of field snapshots."""
    id: str
    url: str
    url_pattern: str
    title: str
    timestamp: int = field(default_factory=now_ms)
    last_used: Optional[int] = None
    use_count: int = 0
    fields: List[FieldSnapshot] = field(default_factory=list)

    @property
    def last_activity(self) -> int:
        return self.last_used or self.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "url_pattern": self.url_pattern,
            "title": self.title,
            "timestamp": self.timestamp,
            "last_used": self.last_used,
            "use_count": self.use_count,
            "fields": [snapshot.to_dict() for snapshot in self.fields],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMemory":
        return cls(
            id=data["id"],
            url=data.get("url", ""),
            url_pattern=data.get("url_pattern", ""),
            title=data.get("title", ""),
            timestamp=int(data.get("timestamp") or 0),
            last_used=data.get("last_used"),
            use_count=max(0, int(data.get("use_count") or 0)),
            fields=[FieldSnapshot.from_dict(item) for item in data.get("fields", [])],
        )


class PolicyMode(Enum):
    """Per-site decision memory for prompts."""
    ASK = "ask"
    ALWAYS = "always"
    NEVER = "never"

    @classmethod
    def parse(cls, value: Any) -> "PolicyMode":
        """Parse a stored value, falling back to ASK for anything unknown."""
        try:
            return cls(value)
        except ValueError:
            return cls.ASK


@dataclass(frozen=True)
class SitePolicy:
    """Save and autofill policy for one (origin, form signature) pair."""
    save_mode: PolicyMode = PolicyMode.ASK
    autofill_mode: PolicyMode = PolicyMode.ASK

    def to_dict(self) -> Dict[str, str]:
        return {"saveMode": self.save_mode.value, "autofillMode": self.autofill_mode.value}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SitePolicy":
        data = data or {}
        return cls(
            save_mode=PolicyMode.parse(data.get("saveMode")),
            autofill_mode=PolicyMode.parse(data.get("autofillMode")),
        )


_CONFIDENCE_RANK = {"failed": 0, "low": 1, "medium": 2, "high": 3, "exact": 4}


@total_ordering
class MatchConfidence(Enum):
    """How likely a live element is the same semantic field as a snapshot."""
    EXACT = "exact"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self.value]

    @property
    def is_usable(self) -> bool:
        """Only exact and high matches may be applied without asking."""
        return self in (MatchConfidence.EXACT, MatchConfidence.HIGH)

    def __lt__(self, other):
        if not isinstance(other, MatchConfidence):
            return NotImplemented
        return self.rank < other.rank


class ConfirmationAction(Enum):
    """Answer to a confirmation request."""
    PRIMARY = "primary"
    DECLINE = "decline"
    NEVER = "never"


@dataclass(frozen=True)
class OptionMatch:
    """Outcome of looking up a value among the options of a select."""
    matched: bool
    value: Optional[str] = None
    reason: str = ""

    @classmethod
    def found(cls, value: str) -> "OptionMatch":
        return cls(matched=True, value=value)

    @classmethod
    def unmatched(cls, reason: str) -> "OptionMatch":
        return cls(matched=False, reason=reason)


@dataclass
class AutofillResult:
    """Structured result of applying values to a page."""
    total_count: int = 0
    filled_count: int = 0
    skipped_count: int = 0
    skipped_selectors: List[str] = field(default_factory=list)
    failed_count: int = 0
    failed_fields: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed_count == 0 and self.skipped_count == 0

    @property
    def message(self) -> str:
        if self.failed_count or self.skipped_count:
            return (
                f"{self.filled_count} filled, {self.failed_count} failed, "
                f"{self.skipped_count} not found"
            )
        return f"All {self.filled_count} fields filled"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalCount": self.total_count,
            "filledCount": self.filled_count,
            "skippedCount": self.skipped_count,
            "skippedSelectors": list(self.skipped_selectors),
            "failedCount": self.failed_count,
            "failedFields": list(self.failed_fields),
            "message": self.message,
        }


@dataclass(frozen=True)
class StorageKey:
    """Identity of a plain form's stored data."""
    origin: str
    path: str
    form_signature: str

    def __str__(self) -> str:
        return f"form_{self.origin}{self.path}_{self.form_signature}"

    def to_dict(self) -> Dict[str, str]:
        return {"origin": self.origin, "path": self.path, "formSignature": self.form_signature}


@dataclass
class StoredFormData:
    """Name-keyed values of a plain form."""
    fields: Dict[str, str]
    url: str
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {"fields": dict(self.fields), "timestamp": self.timestamp, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredFormData":
        return cls(
            fields={str(k): str(v) for k, v in (data.get("fields") or {}).items()},
            url=data.get("url", ""),
            timestamp=int(data.get("timestamp") or 0),
        )


@dataclass
class FormField:
    """A value-bearing element of a detected form."""
    handle: Any
    name: str
    type: str
    selector: str


@dataclass
class FormInfo:
    """A detected form (or the page-level group of orphan fields)."""
    index: Optional[int]
    fields: List[FormField]
    origin: str
    path: str
    signature: str

    @property
    def storage_key(self) -> StorageKey:
        return StorageKey(self.origin, self.path, self.signature)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


class SaveStatus(Enum):
    """How a save attempt ended."""
    SAVED = "saved"
    DECLINED = "declined"
    NEVER = "never"
    SUPPRESSED = "suppressed"      # saveMode never
    DISARMED = "disarmed"          # global save mode off
    NO_VALUES = "no_values"
    DUPLICATE = "duplicate"        # a prompt for the same key is outstanding
    FAILED = "failed"


@dataclass
class SaveOutcome:
    """Result of one save attempt, reported to the caller as data."""
    status: SaveStatus
    storage_key: Optional[str] = None
    field_count: int = 0
    message: str = ""

    @property
    def saved(self) -> bool:
        return self.status is SaveStatus.SAVED
