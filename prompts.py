"""
Menu Assistant Prompts
======================

LLM prompts used by the dish recommendation oracle. Keeping them apart from
the transport code makes it easy to tune wording without touching the
request/response contract in menu_oracle.py.

PERSONAL CONTEXT:
get_personal_context() appends the optional `preferences.notes` list from
config.yaml (e.g. "no mushrooms", "prefer fish on Fridays") to the system
prompt. Learned adjustments are not part of the prompt; they travel in the
JSON question as `user_changes`.
"""

from config import USER_CONFIG


MEAL_SELECTION_SYSTEM_PROMPT = (
    "You are personal meal assistant. You have to select meals for the user. "
    "Figure out what the user wants to eat from the menu. "
    "Use historic data to figure out user preferences. "
    "Try not to pick the same meal as the user had in the last days."
)

# Field descriptions embedded in the structured output schema
REASONING_DESCRIPTION = "Think about what the user might like and why"
ANALYSIS_DESCRIPTION = "Analyze available options and argue how good it is for the user"
REASON_DESCRIPTION = "Justification why this meal should fit user preferences"


def get_personal_context() -> str:
    """Free-form notes about the eater from config.yaml, or an empty string."""
    notes = (USER_CONFIG.get("preferences") or {}).get("notes") or []
    notes = [str(n).strip() for n in notes if str(n).strip()]
    if not notes:
        return ""
    return "Known user notes: " + "; ".join(notes) + "."


def build_system_prompt() -> str:
    context = get_personal_context()
    if context:
        return f"{MEAL_SELECTION_SYSTEM_PROMPT} {context}"
    return MEAL_SELECTION_SYSTEM_PROMPT
