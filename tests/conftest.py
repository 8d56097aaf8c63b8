"""
Pytest Configuration and Fixtures
=================================

Provides shared fakes and builders for the test suite:
- FakeDietClient: in-memory diet service (diets, calendars, day menus)
- MemoryPreferenceStore: PreferenceStore without the file
- ScriptedUI: console UI that answers prompts from a script
- FakeOracle: returns a canned recommendation

SAFETY: No test talks to the Powermeal API or the chat API. The config
directory is pointed at a throwaway temp dir before anything imports config.
"""

import asyncio
import copy
import os
import tempfile

# Must happen before config is imported by any test module
os.environ["POWERMEAL_CONFIG_DIR"] = tempfile.mkdtemp(prefix="powermeal-tests-")

from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from diet_client import DietAPIError
from menu_models import (
    Calendar,
    DayBundle,
    DayState,
    Diet,
    DietsList,
    DishItem,
    MenuOption,
    PreferencesSnapshot,
    TokenPair,
)
from menu_oracle import DishRecommendation, Recommendation
from preferences import PreferenceStore


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# =============================================================================
# Builders
# =============================================================================

def make_option(dish_id: str, name: Optional[str] = None, enabled: bool = True,
                ingredients: Optional[List[str]] = None, dish_size_id: Optional[int] = 1) -> MenuOption:
    return MenuOption(
        dish_id=dish_id,
        name=name or dish_id.upper(),
        enabled=enabled,
        dish_size_id=dish_size_id,
        ingredients=list(ingredients) if ingredients is not None else ["rice"],
    )


def make_item(item_id: str, options: List[MenuOption], default: Optional[str] = None,
              meal_type: str = "Lunch") -> DishItem:
    return DishItem(id=item_id, meal_type=meal_type, default_dish_id=default, options=options)


def make_diet(diet_id: int, first: date, last: date) -> Diet:
    return Diet(id=diet_id, first_delivery_date=first, last_delivery_date=last)


def make_calendar(open_days: List[date], blocked: Optional[List[date]] = None) -> Calendar:
    days = {d: DayState.AVAILABLE_TO_SELECT for d in open_days}
    for d in blocked or []:
        days[d] = DayState.CANNOT_CHANGE
    return Calendar(days=days)


def make_recommendation(picks: Dict[str, str], reasoning: Optional[List[str]] = None,
                        analysis: Optional[Dict[str, Dict[str, str]]] = None) -> Recommendation:
    analysis = analysis or {}
    return Recommendation(
        reasoning=reasoning if reasoning is not None else ["Something light today"],
        selections={
            item_id: DishRecommendation(dish_id=dish_id, reason=f"{dish_id} fits",
                                        analysis=analysis.get(item_id, {}))
            for item_id, dish_id in picks.items()
        },
    )


def dish_item_payload(item_id: str, meal_type: str, default: Optional[str],
                      options: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Wire form of one dish item as returned by the day items endpoint."""
    return {
        "@id": item_id,
        "mealType": {"name": meal_type},
        "dishSize": {"dish": {"@id": default}} if default else None,
        "options": options,
    }


def option_payload(dish_id: str, name: str, enabled: bool = True, dish_size_id: int = 1,
                   ingredients: Any = None) -> Dict[str, Any]:
    return {
        "name": name,
        "enabled": enabled,
        "dish": {"@id": dish_id},
        "dishSizeId": dish_size_id,
        "ingredients": ingredients,
    }


# =============================================================================
# Fakes
# =============================================================================

class FakeDietClient:
    """Diet service double; records every call in `calls`."""

    def __init__(self, diets: Optional[List[Diet]] = None,
                 calendars: Optional[Dict[int, Calendar]] = None,
                 days: Optional[Dict[date, DayBundle]] = None,
                 refresh_results: Optional[List[Any]] = None):
        self.diets = DietsList(diets=list(diets or []))
        self.calendars = calendars or {}
        self.days = days or {}
        self.refresh_results = list(refresh_results or [])
        self.calls: List[tuple] = []
        self.submitted: List[tuple] = []
        self.token = None

    def set_token(self, token: str) -> None:
        self.token = token

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        self.calls.append(("refresh_token", refresh_token))
        result = self.refresh_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_diets(self) -> DietsList:
        self.calls.append(("fetch_diets",))
        return self.diets

    async def fetch_calendar(self, diet_id: int, start: date, end: date) -> Calendar:
        self.calls.append(("fetch_calendar", diet_id, start, end))
        return self.calendars.get(diet_id, Calendar())

    async def fetch_day_with_ingredients(self, diet_id: int, day: date, on_progress=None) -> DayBundle:
        self.calls.append(("fetch_day", diet_id, day))
        if day not in self.days:
            raise DietAPIError("HTTP error 404", operation="fetch_day_items", status_code=404)
        return copy.deepcopy(self.days[day])

    async def change_menu(self, diet_id: int, day: date, changes) -> None:
        self.calls.append(("change_menu", diet_id, day))
        self.submitted.append((diet_id, day, list(changes)))


class MemoryPreferenceStore(PreferenceStore):
    """PreferenceStore keeping the snapshot in memory instead of on disk."""

    def __init__(self, snapshot: Optional[PreferencesSnapshot] = None, max_adjustments: int = 100):
        super().__init__(path=os.devnull, max_adjustments=max_adjustments)
        self.snapshot = snapshot or PreferencesSnapshot()
        self.saves = 0

    def load(self) -> PreferencesSnapshot:
        return copy.deepcopy(self.snapshot)

    def save(self, snapshot: PreferencesSnapshot) -> None:
        self.snapshot = copy.deepcopy(snapshot)
        self.saves += 1


class ScriptedUI:
    """
    Console UI double.

    selections: answers for select(); None accepts the pre-selected default
    confirms: answers for confirm() (False once exhausted)
    texts: answers for ask_text() ("" once exhausted)
    """

    def __init__(self, selections: Optional[List[Optional[int]]] = None,
                 confirms: Optional[List[bool]] = None,
                 texts: Optional[List[str]] = None):
        self.selections = list(selections or [])
        self.confirms = list(confirms or [])
        self.texts = list(texts or [])
        self.lines: List[str] = []
        self.statuses: List[str] = []
        self.ai: List[tuple] = []
        self.prompts: List[tuple] = []
        self.errors: List[str] = []

    def status(self, text: str) -> None:
        self.statuses.append(text)

    def clear_status(self) -> None:
        pass

    def say(self, text="") -> None:
        self.lines.append(str(text))

    def error(self, text: str) -> None:
        self.errors.append(text)

    async def ai_says(self, text: str, title: Optional[str] = None) -> None:
        self.ai.append((title, text))

    async def select(self, prompt: str, choices: List[str], default: int = 0) -> int:
        self.prompts.append(("select", prompt, list(choices), default))
        answer = self.selections.pop(0) if self.selections else None
        return default if answer is None else answer

    async def confirm(self, prompt: str) -> bool:
        self.prompts.append(("confirm", prompt))
        return self.confirms.pop(0) if self.confirms else False

    async def ask_text(self, prompt: str, allow_empty: bool = True) -> str:
        self.prompts.append(("text", prompt))
        return self.texts.pop(0) if self.texts else ""


class FakeOracle:
    """Oracle double returning a fixed recommendation (or raising)."""

    def __init__(self, result):
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    async def select_dishes(self, day, items, history, adjustments):
        self.calls.append({
            "day": day,
            "items": [item.id for item in items],
            "history": list(history.keys()),
            "adjustments": list(adjustments),
        })
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store():
    return MemoryPreferenceStore()


@pytest.fixture
def ui():
    return ScriptedUI()


# =============================================================================
# Test Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "readonly: marks test as read-only (no network or user files)"
    )
