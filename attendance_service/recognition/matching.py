"""
Recognition match acceptance.

The recognition service compares a probe image against reference photos
and answers with the best candidate and a confidence score.
"""

from dataclasses import dataclass
from typing import Optional

UNKNOWN_PERSON = 'UNKNOWN'
DEFAULT_CONFIDENCE_THRESHOLD = 0.75


@dataclass(frozen=True)
class RecognitionMatch:
    """
    Answer of the recognition service.

    Attributes:
        matched_user_id: Roll/id number of the best candidate or UNKNOWN
        confidence: Confidence in range [0, 1]
    """

    matched_user_id: str
    confidence: float


def accept_match(
    match: RecognitionMatch,
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
) -> Optional[str]:
    """
    Gate a recognition answer with the confidence threshold.

    Args:
        match: Recognition service answer
        threshold: Confidence the match must strictly exceed

    Returns:
        Matched user id or None if the match is rejected
    """
    if not match.matched_user_id or match.matched_user_id == UNKNOWN_PERSON:
        return None

    if match.confidence > threshold:
        return match.matched_user_id

    return None
