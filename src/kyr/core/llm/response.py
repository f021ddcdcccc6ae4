"""Post-processing for generated text: cleanup and disclaimer enforcement."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

LEGAL_DISCLAIMER = (
    "This is general information, not legal advice. "
    "Consult a licensed attorney about your situation."
)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\n|\n?```$")


def clean_generated_text(content: str) -> str:
    """Strip surrounding whitespace and markdown code fences."""
    return _FENCE_RE.sub("", content.strip()).strip()


def enforce_disclaimer(content: str, disclaimer: str = LEGAL_DISCLAIMER) -> tuple[str, list[str]]:
    """Append ``disclaimer`` unless the text already carries it.

    Returns: (possibly modified content, flags)
    """
    if disclaimer.lower() in content.lower():
        return content, []
    logger.debug("Generated text lacked disclaimer; appending")
    return f"{content}\n\n---\n{disclaimer}", ["disclaimer_appended"]
