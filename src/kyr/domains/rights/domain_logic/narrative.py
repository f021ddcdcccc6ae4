"""Generated text for encounters and rights scripts.

Both generators treat the text-generation service as optional: any failure
(or no client at all) yields canned text instead, flagged as a fallback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from kyr.core.llm.client import TextGenerationClient, TextGenerationError
from kyr.core.llm.response import enforce_disclaimer
from kyr.domains.rights.domain_logic.content import EMERGENCY_PHRASES, US_STATES
from kyr.domains.rights.domain_logic.formatting import default_summary, format_timestamp
from kyr.domains.rights.errors import PremiumRequiredError
from kyr.domains.rights.models import Encounter

logger = logging.getLogger(__name__)

Scenario = Literal["traffic", "search", "arrest", "general"]
SCENARIOS = ("traffic", "search", "arrest", "general")


@dataclass(frozen=True)
class NarrativeResult:
    text: str
    fallback: bool = False
    flags: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Encounter summaries
# ---------------------------------------------------------------------------

SUMMARY_INSTRUCTIONS = (
    "## Task: Encounter Summary\n\n"
    "Generate clear, factual summaries for police encounter records. "
    "Keep it under 200 words and focus on the details that matter for "
    "legal documentation."
)


def build_summary_prompt(encounter: Encounter) -> str:
    location = encounter.location
    minutes = str(encounter.duration // 60) if encounter.duration else "Unknown"
    return (
        "Generate a concise summary for a police encounter record with the following details:\n"
        f"- Date/Time: {format_timestamp(encounter.timestamp)}\n"
        f"- Location: {location.city or 'Unknown'}, {location.state or 'Unknown'}\n"
        f"- Coordinates: {location.latitude}, {location.longitude}\n"
        f"- Duration: {minutes} minutes\n\n"
        "Create a professional, factual summary that could be useful for legal documentation."
    )


class SummaryGenerator:
    def __init__(self, client: TextGenerationClient | None = None) -> None:
        self._client = client

    async def generate(self, encounter: Encounter) -> NarrativeResult:
        if self._client is None:
            return NarrativeResult(default_summary(encounter), fallback=True)
        try:
            text = await self._client.complete(
                SUMMARY_INSTRUCTIONS,
                build_summary_prompt(encounter),
                max_tokens=300,
                temperature=0.3,
            )
        except TextGenerationError:
            logger.warning("Summary generation failed for %s; using default", encounter.encounter_id)
            return NarrativeResult(default_summary(encounter), fallback=True)
        return NarrativeResult(text)


# ---------------------------------------------------------------------------
# Rights scripts
# ---------------------------------------------------------------------------

SCRIPT_INSTRUCTIONS = (
    "## Task: Rights Script\n\n"
    "You are a legal rights educator specializing in police encounter guidance. "
    "Generate practical, legally accurate scripts that help people exercise "
    "their constitutional rights safely. Focus on de-escalation and always "
    "emphasize remaining calm and respectful while asserting rights."
)

_SCENARIO_PROMPTS: dict[str, str] = {
    "traffic": (
        "Generate a comprehensive script for a traffic stop encounter in {state}. Include:\n"
        "1. What to say when pulled over\n"
        "2. How to respond to requests for documents\n"
        "3. How to handle search requests\n"
        "4. What NOT to say or do\n"
        "5. State-specific laws and rights"
    ),
    "search": (
        "Generate a script for handling search and seizure situations in {state}. Include:\n"
        "1. How to clearly refuse consent to search\n"
        "2. What to say if police claim probable cause\n"
        "3. How to document the interaction\n"
        "4. State-specific Fourth Amendment protections\n"
        "5. What to do if searched anyway"
    ),
    "arrest": (
        "Generate a script for arrest situations in {state}. Include:\n"
        "1. How to invoke right to remain silent\n"
        "2. How to request an attorney\n"
        "3. What information you must provide\n"
        "4. How to behave during arrest\n"
        "5. State-specific arrest procedures and rights"
    ),
    "general": (
        "Generate a general rights script for police encounters in {state}. Include:\n"
        "1. Basic constitutional rights\n"
        "2. How to remain calm and respectful\n"
        "3. What you must vs. don't have to do\n"
        "4. How to document the encounter\n"
        "5. General de-escalation techniques"
    ),
}

_LANGUAGE_INSTRUCTIONS = {
    "en": "Provide the response in English.",
    "es": "Provide the response in Spanish.",
}

_FALLBACK_HEADINGS = {
    "en": ("Your basic rights", "SAY THIS"),
    "es": ("Sus derechos básicos", "DIGA ESTO"),
}

_FALLBACK_PHRASES = ("recording", "silent", "attorney", "search", "leave")


def build_script_prompt(jurisdiction: str, language: str, scenario: str) -> str:
    state = US_STATES.get(jurisdiction, jurisdiction)
    return (
        f"{_SCENARIO_PROMPTS[scenario].format(state=state)}\n\n"
        f"{_LANGUAGE_INSTRUCTIONS[language]} "
        "Use clear, simple language that would be understood under stress.\n\n"
        "Format the response as a practical, easy-to-follow script with:\n"
        '- Clear "SAY THIS" and "DON\'T SAY THIS" sections\n'
        "- Step-by-step instructions\n"
        "- Key phrases to remember\n"
        "- Emergency contact reminders"
    )


def basic_rights_script(jurisdiction: str, language: str = "en") -> str:
    """Static script built from the emergency phrases."""
    phrases = EMERGENCY_PHRASES.get(language, EMERGENCY_PHRASES["en"])
    title, say_this = _FALLBACK_HEADINGS.get(language, _FALLBACK_HEADINGS["en"])
    lines = [f"{title} ({US_STATES.get(jurisdiction, jurisdiction)})", ""]
    for i, key in enumerate(_FALLBACK_PHRASES, start=1):
        lines.append(f'{i}. {say_this}: "{phrases[key]}"')
    return "\n".join(lines)


class ScriptGenerator:
    """Scenario scripts. Anything beyond ``general`` is a premium feature."""

    def __init__(self, client: TextGenerationClient | None = None) -> None:
        self._client = client

    async def generate(
        self,
        jurisdiction: str,
        language: str = "en",
        scenario: str = "general",
        *,
        is_premium: bool = False,
    ) -> NarrativeResult:
        """Generate a script.

        Raises:
            ValueError: Unknown scenario or language.
            PremiumRequiredError: Non-general scenario for a free user.
        """
        if scenario not in SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario!r}")
        if language not in _LANGUAGE_INSTRUCTIONS:
            raise ValueError(f"Unsupported language: {language!r}")
        if scenario != "general" and not is_premium:
            raise PremiumRequiredError(
                "State-specific scripts require a premium subscription"
            )

        jurisdiction = jurisdiction.upper()
        if self._client is None:
            return NarrativeResult(basic_rights_script(jurisdiction, language), fallback=True)

        try:
            text = await self._client.complete(
                SCRIPT_INSTRUCTIONS,
                build_script_prompt(jurisdiction, language, scenario),
                max_tokens=800,
                temperature=0.1,
            )
        except TextGenerationError:
            logger.warning("Script generation failed (%s/%s); using basic rights", jurisdiction, scenario)
            return NarrativeResult(basic_rights_script(jurisdiction, language), fallback=True)

        text, flags = enforce_disclaimer(text)
        return NarrativeResult(text, flags=flags)
