"""Detection of lesson unlock codes in assistant replies."""

import re
from typing import Optional, Pattern

from courseflow.logger import logger

# Marker emitted by the coach persona, e.g. "LESSON_UNLOCKED_lesson_2"
STRICT_UNLOCK_PATTERN = r"LESSON_UNLOCKED_\w+"

# Older route behaviour: any 6+ character token after "unlock", "code" or "access"
LEGACY_UNLOCK_PATTERN = r"(?:unlock|code|access).*?([A-Z0-9]{6,})"


class UnlockCodeExtractor:
    """
    Finds the first unlock code in a reply.

    If the pattern has a capturing group, the first group is the code;
    otherwise the whole match is.
    """

    def __init__(self, pattern: str, flags: int = 0):
        self.pattern: Pattern[str] = re.compile(pattern, flags)

    def extract(self, text: Optional[str]) -> Optional[str]:
        """Returns the first unlock code in ``text``, or None."""
        if not text:
            return None
        match = self.pattern.search(text)
        if match is None:
            return None
        return match.group(1) if self.pattern.groups else match.group(0)


def get_unlock_extractor(setting: str = "strict") -> UnlockCodeExtractor:
    """
    Builds the extractor named by the UNLOCK_CODE_PATTERN setting.

    Args:
        setting: "strict", "legacy", or a custom regular expression.

    Raises:
        ValueError: If a custom pattern is not a valid regular expression.
    """
    name = (setting or "strict").strip()
    if name.lower() == "strict":
        return UnlockCodeExtractor(STRICT_UNLOCK_PATTERN)
    if name.lower() == "legacy":
        logger.warning("Using legacy unlock code pattern; any 6+ character token may match.")
        return UnlockCodeExtractor(LEGACY_UNLOCK_PATTERN, re.IGNORECASE)
    try:
        return UnlockCodeExtractor(name)
    except re.error as e:
        raise ValueError(f"Invalid UNLOCK_CODE_PATTERN {name!r}: {e}") from e
