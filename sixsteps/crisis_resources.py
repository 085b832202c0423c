"""
CRISIS RESOURCES - Region-aware helpline data and grounding exercises

COMPLIANCE WARNING: this data is shown to users in distress. Every phone
number and URL must be verified before it is changed.

Grounding exercises are selected by index, not at random, so a replayed
session shows the same exercise.
"""

from typing import Any, Dict, List, Optional

RESOURCES: Dict[str, Dict[str, Dict[str, Optional[str]]]] = {
    "uk": {
        "primary": {
            "name": "Samaritans",
            "phone": "116 123",
            "description": "24/7 emotional support for anyone in distress",
            "url": "https://www.samaritans.org",
        },
        "secondary": {
            "name": "NHS 111",
            "phone": "111",
            "description": "NHS non-emergency medical advice",
            "url": "https://111.nhs.uk",
        },
        "mental_health": {
            "name": "Mind",
            "phone": "0300 123 3393",
            "description": "Mental health charity helpline",
            "url": "https://www.mind.org.uk",
        },
        "emergency": {
            "name": "Emergency Services",
            "phone": "999",
            "description": "For immediate danger to life",
        },
    },
    "us": {
        "primary": {
            "name": "988 Suicide & Crisis Lifeline",
            "phone": "988",
            "description": "24/7 crisis support - call or text",
            "url": "https://988lifeline.org",
        },
        "secondary": {
            "name": "Crisis Text Line",
            "phone": "Text HOME to 741741",
            "description": "24/7 text-based crisis support",
            "url": "https://www.crisistextline.org",
        },
        "mental_health": {
            "name": "NAMI Helpline",
            "phone": "1-800-950-6264",
            "description": "National Alliance on Mental Illness",
            "url": "https://www.nami.org",
        },
        "emergency": {
            "name": "Emergency Services",
            "phone": "911",
            "description": "For immediate danger to life",
        },
    },
    "eu": {
        "primary": {
            "name": "European Emergency Number",
            "phone": "112",
            "description": "Pan-European emergency number",
            "url": None,
        },
        "secondary": {
            "name": "Befrienders Worldwide",
            "phone": None,
            "description": "Find local support in your country",
            "url": "https://www.befrienders.org/find-a-helpline",
        },
        "mental_health": {
            "name": "Mental Health Europe",
            "phone": None,
            "description": "Resources across European countries",
            "url": "https://www.mhe-sme.org",
        },
        "emergency": {
            "name": "Emergency Services",
            "phone": "112",
            "description": "For immediate danger to life",
        },
    },
    "au": {
        "primary": {
            "name": "Lifeline Australia",
            "phone": "13 11 14",
            "description": "24/7 crisis support and suicide prevention",
            "url": "https://www.lifeline.org.au",
        },
        "secondary": {
            "name": "Beyond Blue",
            "phone": "1300 22 4636",
            "description": "Anxiety, depression and suicide prevention",
            "url": "https://www.beyondblue.org.au",
        },
        "mental_health": {
            "name": "SANE Australia",
            "phone": "1800 187 263",
            "description": "Mental health support",
            "url": "https://www.sane.org",
        },
        "emergency": {
            "name": "Emergency Services",
            "phone": "000",
            "description": "For immediate danger to life",
        },
    },
    "other": {
        "primary": {
            "name": "International Association for Suicide Prevention",
            "phone": None,
            "description": "Find crisis centers worldwide",
            "url": "https://www.iasp.info/resources/Crisis_Centres/",
        },
        "secondary": {
            "name": "Befrienders Worldwide",
            "phone": None,
            "description": "Find local emotional support",
            "url": "https://www.befrienders.org/find-a-helpline",
        },
        "emergency": {
            "name": "Local Emergency Services",
            "phone": None,
            "description": "Contact your local emergency number",
        },
    },
}

GROUNDING_EXERCISES: List[Dict[str, Any]] = [
    {
        "name": "Breathing Pause",
        "instructions": [
            "Let's take a breath together.",
            "Focus on the rise and fall of your breathing.",
            "What do you notice in this moment?",
        ],
    },
    {
        "name": "Notice Your Surroundings",
        "instructions": [
            "Look around you.",
            "What's one thing you can see right now?",
            "You can repeat this with other senses: hearing, touch, smell, taste.",
        ],
    },
    {
        "name": "Body Anchor",
        "instructions": [
            "That's a lot to hold.",
            "Feel your hands - are they warm or cool?",
            "When you're ready, we can continue gently.",
        ],
    },
    {
        "name": "Simple Pause",
        "instructions": [
            "Let's pause here for a moment.",
            "There's no rush.",
            "Take whatever time you need.",
        ],
    },
]

CRISIS_MESSAGE = "Here are some resources you might find useful."


def for_region(region: Optional[str]) -> Dict[str, Dict[str, Optional[str]]]:
    key = (region or "").strip().lower()
    return RESOURCES.get(key, RESOURCES["other"])


def primary_for_region(region: Optional[str]) -> Dict[str, Optional[str]]:
    return for_region(region)["primary"]


def emergency_for_region(region: Optional[str]) -> Dict[str, Optional[str]]:
    return for_region(region)["emergency"]


def formatted_for_display(region: Optional[str]) -> List[Dict[str, Any]]:
    """Non-emergency resources, flattened for the resource list"""
    formatted = []
    for key, resource in for_region(region).items():
        if key == "emergency":
            continue
        formatted.append({
            "key": key,
            "name": resource["name"],
            "contact": resource.get("phone") or resource.get("url"),
            "description": resource["description"],
            "url": resource.get("url"),
            "is_phone": bool(resource.get("phone")),
        })
    return formatted


def crisis_modal_content(region: Optional[str]) -> Dict[str, Any]:
    return {
        "header": "Support Options",
        "message": CRISIS_MESSAGE,
        "resources": formatted_for_display(region),
        "emergency": dict(emergency_for_region(region)),
        "footer": "If you are in immediate danger, please contact emergency services.",
    }


def grounding_exercise(index: int) -> Dict[str, Any]:
    """Exercise for the n-th grounding of a session (wraps around)"""
    exercise = GROUNDING_EXERCISES[index % len(GROUNDING_EXERCISES)]
    return {"name": exercise["name"], "instructions": list(exercise["instructions"])}


def all_grounding_exercises() -> List[Dict[str, Any]]:
    return [grounding_exercise(i) for i in range(len(GROUNDING_EXERCISES))]
