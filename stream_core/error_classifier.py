"""
Encoder failure classification.

Maps the stderr text accumulated over one process lifetime to a short,
human-readable failure category. Rules are evaluated top to bottom and the
first match wins.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Pattern, Sequence

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Known failure categories."""

    NETWORK_LOST = "network_lost"
    CONNECTION_REFUSED = "connection_refused"
    DEVICE_NOT_FOUND = "device_not_found"
    PERMISSION_DENIED = "permission_denied"
    DEVICE_BUSY = "device_busy"
    INVALID_DESTINATION = "invalid_destination"
    BUFFER_OVERFLOW = "buffer_overflow"
    FORMAT_MISMATCH = "format_mismatch"
    UNKNOWN = "unknown"


FALLBACK_MESSAGE = "Streaming failed - check logs for details"


@dataclass
class ClassificationRule:
    """A category that applies when every one of its patterns matches."""

    category: ErrorCategory
    message: str
    patterns: Sequence[str]
    compiled: List[Pattern] = field(init=False, repr=False)

    def __post_init__(self):
        self.compiled = [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def matches(self, text: str) -> bool:
        return all(pattern.search(text) for pattern in self.compiled)


def _any_of(*alternatives: str) -> str:
    return "|".join(f"(?:{a})" for a in alternatives)


# Priority order matters: a dropped connection often also logs I/O noise
# that later rules would otherwise claim.
CLASSIFICATION_RULES: List[ClassificationRule] = [
    ClassificationRule(
        ErrorCategory.NETWORK_LOST,
        "Network connection lost - one RTMP server may be unreachable",
        [_any_of(r"Error number -10053", r"Connection reset by peer", r"Broken pipe")],
    ),
    ClassificationRule(
        ErrorCategory.CONNECTION_REFUSED,
        "RTMP server connection refused - check URL and network",
        [r"Connection refused"],
    ),
    ClassificationRule(
        ErrorCategory.DEVICE_NOT_FOUND,
        "Device not found - camera or microphone unavailable",
        [_any_of(r"No such file or directory", r"Could not find (?:video|audio) device")],
    ),
    ClassificationRule(
        ErrorCategory.PERMISSION_DENIED,
        "Device access denied - check permissions",
        [r"Permission denied"],
    ),
    ClassificationRule(
        ErrorCategory.DEVICE_BUSY,
        "Device busy - close other applications using camera/mic",
        [_any_of(r"already in use", r"Device or resource busy")],
    ),
    ClassificationRule(
        ErrorCategory.INVALID_DESTINATION,
        "Invalid RTMP stream key or URL format",
        [_any_of(r"Invalid data found", r"403 Forbidden", r"Server error: .*(?:auth|key)")],
    ),
    ClassificationRule(
        ErrorCategory.BUFFER_OVERFLOW,
        "Camera buffer overflow - try reducing video quality or closing other apps",
        [r"real-time buffer", r"too full"],
    ),
    ClassificationRule(
        ErrorCategory.FORMAT_MISMATCH,
        "Encoder rejected the output settings - unsupported format or option",
        [
            _any_of(
                r"Unrecognized option",
                r"Option \S+ not found",
                r"Could not find tag for codec",
                r"Unknown (?:encoder|decoder)",
                r"Requested output format .* is not a suitable output format",
            )
        ],
    ),
]


class ErrorClassifier:
    """
    Classifies encoder diagnostics with an ordered rule table.

    New patterns are added as table entries; the lookup itself never changes.
    """

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        """
        Initialize classifier.

        Args:
            rules: Rule table (defaults to CLASSIFICATION_RULES)
        """
        self.rules = rules if rules is not None else CLASSIFICATION_RULES

    def match(self, text: str) -> Optional[ClassificationRule]:
        """Return the first rule that matches, or None."""
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None

    def classify_category(self, text: str) -> ErrorCategory:
        """
        Classify diagnostics into a category.

        Args:
            text: Accumulated stderr of one process lifetime

        Returns:
            Matching ErrorCategory, UNKNOWN when nothing matched
        """
        rule = self.match(text)
        return rule.category if rule else ErrorCategory.UNKNOWN

    def classify(self, text: str) -> str:
        """
        Classify diagnostics into a human-readable message.

        Args:
            text: Accumulated stderr of one process lifetime

        Returns:
            Message of the first matching rule, or the generic fallback
        """
        rule = self.match(text)
        if rule is None:
            logger.debug("No classification rule matched encoder output")
            return FALLBACK_MESSAGE
        return rule.message


_default_classifier = ErrorClassifier()


def classify(text: str) -> str:
    """Classify diagnostics with the default rule table."""
    return _default_classifier.classify(text)
