"""Static rights content: state list, basic rights, emergency phrases, state info."""

from __future__ import annotations

from typing import Any

US_STATES: dict[str, str] = {
    "AL": "Alabama",
    "AK": "Alaska",
    "AZ": "Arizona",
    "AR": "Arkansas",
    "CA": "California",
    "CO": "Colorado",
    "CT": "Connecticut",
    "DE": "Delaware",
    "FL": "Florida",
    "GA": "Georgia",
    "HI": "Hawaii",
    "ID": "Idaho",
    "IL": "Illinois",
    "IN": "Indiana",
    "IA": "Iowa",
    "KS": "Kansas",
    "KY": "Kentucky",
    "LA": "Louisiana",
    "ME": "Maine",
    "MD": "Maryland",
    "MA": "Massachusetts",
    "MI": "Michigan",
    "MN": "Minnesota",
    "MS": "Mississippi",
    "MO": "Missouri",
    "MT": "Montana",
    "NE": "Nebraska",
    "NV": "Nevada",
    "NH": "New Hampshire",
    "NJ": "New Jersey",
    "NM": "New Mexico",
    "NY": "New York",
    "NC": "North Carolina",
    "ND": "North Dakota",
    "OH": "Ohio",
    "OK": "Oklahoma",
    "OR": "Oregon",
    "PA": "Pennsylvania",
    "RI": "Rhode Island",
    "SC": "South Carolina",
    "SD": "South Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "UT": "Utah",
    "VT": "Vermont",
    "VA": "Virginia",
    "WA": "Washington",
    "WV": "West Virginia",
    "WI": "Wisconsin",
    "WY": "Wyoming",
}

# Reverse lookup for geocoders that return full state names.
STATE_CODES_BY_NAME: dict[str, str] = {name.lower(): code for code, name in US_STATES.items()}
STATE_CODES_BY_NAME["district of columbia"] = "DC"

BASIC_RIGHTS: tuple[dict[str, str], ...] = (
    {
        "title": "Right to Remain Silent",
        "content": (
            "You have the right to remain silent. Anything you say can and will "
            "be used against you in a court of law."
        ),
        "script": "I am exercising my right to remain silent.",
    },
    {
        "title": "Right to an Attorney",
        "content": (
            "You have the right to an attorney. If you cannot afford an attorney, "
            "one will be provided for you."
        ),
        "script": "I want to speak to my attorney before answering any questions.",
    },
    {
        "title": "Right to Refuse Searches",
        "content": (
            "You have the right to refuse consent to searches of your person, "
            "vehicle, or home without a warrant."
        ),
        "script": "I do not consent to any searches.",
    },
    {
        "title": "Right to Leave",
        "content": (
            "If you are not under arrest, you have the right to leave. "
            "Ask clearly if you are free to go."
        ),
        "script": "Am I free to leave? Am I under arrest?",
    },
)

EMERGENCY_PHRASES: dict[str, dict[str, str]] = {
    "en": {
        "recording": "I am recording this interaction for my safety and legal protection.",
        "silent": "I am exercising my right to remain silent.",
        "attorney": "I want to speak to my attorney.",
        "search": "I do not consent to any searches.",
        "leave": "Am I free to leave?",
        "medical": "I need medical attention.",
        "emergency": "This is an emergency. Please send help to my location.",
    },
    "es": {
        "recording": "Estoy grabando esta interacción para mi seguridad y protección legal.",
        "silent": "Estoy ejerciendo mi derecho a permanecer en silencio.",
        "attorney": "Quiero hablar con mi abogado.",
        "search": "No consiento a ningún registro.",
        "leave": "¿Soy libre de irme?",
        "medical": "Necesito atención médica.",
        "emergency": "Esta es una emergencia. Por favor envíen ayuda a mi ubicación.",
    },
}

EMERGENCY_NUMBER = "911"
CIVIL_RIGHTS_HOTLINE = "1-800-884-1684"

_ONE_PARTY_CONSENT = "One-party consent state - you can record conversations you are part of"
_RECORD_POLICE = "You have the right to record police in public spaces"
_SEARCH_RIGHTS = "Police need a warrant, probable cause, or consent to search"

_STATE_INFO: dict[str, dict[str, str]] = {
    "CA": {
        "recording_laws": _ONE_PARTY_CONSENT,
        "police_recording_rights": _RECORD_POLICE,
        "stop_and_frisk": "Police need reasonable suspicion of criminal activity",
        "search_rights": _SEARCH_RIGHTS,
    },
    "TX": {
        "recording_laws": _ONE_PARTY_CONSENT,
        "police_recording_rights": _RECORD_POLICE,
        "stop_and_frisk": "Police need reasonable suspicion of criminal activity",
        "search_rights": _SEARCH_RIGHTS,
    },
    "NY": {
        "recording_laws": _ONE_PARTY_CONSENT,
        "police_recording_rights": _RECORD_POLICE,
        "stop_and_frisk": "Police can stop and frisk with reasonable suspicion",
        "search_rights": _SEARCH_RIGHTS,
    },
}

_GENERIC_INFO: dict[str, str] = {
    "recording_laws": "Check your local laws regarding recording",
    "police_recording_rights": "Generally allowed in public spaces",
    "stop_and_frisk": "Varies by jurisdiction",
    "search_rights": "Fourth Amendment protections apply",
}


def is_valid_jurisdiction(code: str) -> bool:
    return code.upper() in US_STATES


def jurisdiction_info(code: str) -> dict[str, Any]:
    """Rights summary for a state code.

    States without curated entries get the generic guidance, named after
    the state when the code is known and after the raw code otherwise.
    """
    code = code.upper()
    details = _STATE_INFO.get(code, _GENERIC_INFO)
    return {
        "code": code,
        "name": US_STATES.get(code, code),
        **details,
        "emergency_number": EMERGENCY_NUMBER,
        "civil_rights_hotline": CIVIL_RIGHTS_HOTLINE,
        "curated": code in _STATE_INFO,
    }


def emergency_phrases(language: str) -> dict[str, str]:
    """Phrases for ``language``, falling back to English."""
    return dict(EMERGENCY_PHRASES.get(language, EMERGENCY_PHRASES["en"]))
