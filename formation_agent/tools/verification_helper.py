"""Helper functions for verifying that a filled value stuck."""

import logging
from typing import Any, Optional

from thefuzz import fuzz

from formation_agent.core.browser_interface import DocumentInterface
from formation_agent.tools.constants import VERIFICATION_THRESHOLD

logger = logging.getLogger(__name__)


def value_similarity(expected: str, actual: Optional[str]) -> float:
    """Case-insensitive fuzzy similarity of two values in [0.0, 1.0]."""
    if actual is None:
        return 0.0
    expected_lower = (expected or "").strip().lower()
    actual_lower = actual.strip().lower()
    if expected_lower == actual_lower:
        return 1.0
    return fuzz.ratio(expected_lower, actual_lower) / 100.0


async def verify_field_value(
    document: DocumentInterface,
    handle: Any,
    expected_value: str,
    threshold: float = VERIFICATION_THRESHOLD,
) -> bool:
    """Verify the live value of an element against the value that was set.

    Reactive pages may rewrite a field on input (masks, formatters); the
    value counts as applied while it stays within the fuzzy threshold.
    """
    info = await document.inspect(handle)
    similarity = value_similarity(expected_value, info.value)
    if similarity >= threshold:
        logger.debug(f"Verified value '{info.value}' against '{expected_value}' (score {similarity:.3f})")
        return True

    logger.warning(
        f"Value mismatch after fill: expected '{expected_value}', found '{info.value}' "
        f"(score {similarity:.3f}, threshold {threshold})"
    )
    return False
