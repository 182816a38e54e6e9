"""Tools for scoring stored field snapshots against the live page."""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from formation_agent.core.browser_interface import DocumentInterface, ElementInfo
from formation_agent.core.models import FieldSnapshot, MatchConfidence
from formation_agent.tools.constants import (
    COMPATIBLE_TYPE_GROUPS,
    CONTAINMENT_SIMILARITY,
    EXACT_SIMILARITY_THRESHOLD,
    MEDIUM_SIMILARITY_THRESHOLD,
)
from formation_agent.tools.field_extractor import FieldSnapshotExtractor, normalize_field_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldMatch:
    """A stored snapshot paired with the element it resolved to (if any)."""
    snapshot: FieldSnapshot
    confidence: MatchConfidence
    handle: Any = None
    info: Optional[ElementInfo] = None
    similarity: float = 0.0

    @property
    def is_empty(self) -> bool:
        """Whether the live element currently holds no value."""
        return self.info is not None and not (self.info.value or "").strip()

    @property
    def is_usable(self) -> bool:
        return self.confidence.is_usable


class MatchScorer:
    """Computes a discrete confidence that a live element is a stored field.

    A selector that still resolves does not imply the same semantic field,
    so type and label are compared on every candidate.
    """

    def __init__(
        self,
        extractor: Optional[FieldSnapshotExtractor] = None,
        exact_threshold: float = EXACT_SIMILARITY_THRESHOLD,
        medium_threshold: float = MEDIUM_SIMILARITY_THRESHOLD,
        compatible_types: Optional[Sequence[Sequence[str]]] = None,
    ):
        """
        Initialize the scorer.

        Args:
            extractor: Extractor providing the eligibility gate and live labels
            exact_threshold: Similarity above which an identical type is EXACT
            medium_threshold: Similarity from which an identical type is HIGH
            compatible_types: Groups of input types treated as interchangeable
        """
        self.extractor = extractor or FieldSnapshotExtractor()
        self.exact_threshold = exact_threshold
        self.medium_threshold = medium_threshold
        self.compatible_types = [
            frozenset(t.lower() for t in group)
            for group in (compatible_types if compatible_types is not None else COMPATIBLE_TYPE_GROUPS)
        ]
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def normalize_label(text: str) -> str:
        return re.sub(r"[^a-z0-9]", "", (text or "").lower())

    def label_similarity(self, stored: str, live: str) -> float:
        """
        Compare two labels.

        Args:
            stored: Label captured with the snapshot
            live: Label freshly extracted from the candidate

        Returns:
            1.0 for equal labels, 0.8 when one contains the other, else the
            share of positions holding the same character over the longer length
        """
        a = self.normalize_label(stored)
        b = self.normalize_label(live)
        if not a or not b:
            return 0.0
        if a == b:
            return 1.0
        if a in b or b in a:
            return CONTAINMENT_SIMILARITY
        same = sum(1 for x, y in zip(a, b) if x == y)
        return same / max(len(a), len(b))

    def types_compatible(self, stored_type: str, live_type: str) -> bool:
        stored_type, live_type = stored_type.lower(), live_type.lower()
        return any(stored_type in group and live_type in group for group in self.compatible_types)

    def classify(self, snapshot: FieldSnapshot, info: ElementInfo) -> Tuple[MatchConfidence, float]:
        """
        Score an already-resolved candidate.

        Args:
            snapshot: Stored snapshot
            info: Capability record of the candidate element

        Returns:
            Tuple of (confidence, label similarity)
        """
        if not self.extractor.is_selectable(info):
            return MatchConfidence.FAILED, 0.0

        live_type = normalize_field_type(info)
        similarity = self.label_similarity(snapshot.label, self.extractor.extract_label(info))

        if live_type == snapshot.type.lower():
            if similarity > self.exact_threshold:
                return MatchConfidence.EXACT, similarity
            if similarity >= self.medium_threshold:
                return MatchConfidence.HIGH, similarity
            return MatchConfidence.MEDIUM, similarity

        if self.types_compatible(snapshot.type, live_type):
            return MatchConfidence.MEDIUM, similarity

        self.logger.debug(f"Type drift for {snapshot.selector}: stored {snapshot.type}, live {live_type}")
        return MatchConfidence.LOW, similarity

    async def resolve(self, document: DocumentInterface, selector: str) -> Optional[Any]:
        """Re-run a stored selector; the first match wins, errors mean no match."""
        try:
            handles = await document.query_selector_all(selector)
        except Exception as e:
            self.logger.warning(f"Selector {selector} could not be evaluated: {e}")
            return None
        return handles[0] if handles else None

    async def score(self, document: DocumentInterface, snapshot: FieldSnapshot) -> FieldMatch:
        """Resolve a snapshot's selector on the live document and score the candidate."""
        handle = await self.resolve(document, snapshot.selector)
        if handle is None:
            self.logger.debug(f"Selector {snapshot.selector} no longer resolves")
            return FieldMatch(snapshot, MatchConfidence.FAILED)

        info = await document.inspect(handle)
        confidence, similarity = self.classify(snapshot, info)
        self.logger.debug(
            f"Scored {snapshot.selector}: {confidence.value} (label similarity {similarity:.2f})"
        )
        return FieldMatch(snapshot, confidence, handle=handle, info=info, similarity=similarity)

    async def score_all(self, document: DocumentInterface, snapshots: Sequence[FieldSnapshot]) -> List[FieldMatch]:
        return [await self.score(document, snapshot) for snapshot in snapshots]
