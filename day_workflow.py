#!/usr/bin/env python3
"""
Day Decision Workflow
=====================

Turns one open calendar day into committed dish choices:

1. Resolve the diet covering the day
2. Fetch the day's dish items and hydrate missing ingredients
3. Fetch the previous days (oldest first) as recommendation context
4. Ask the oracle for one dish per meal slot
5. Walk the meal slots with the user: show the AI's reasoning, let them
   accept or override the pick, ask why when they override
6. Offer to remember the overrides and to submit the menu diff
7. Advance the day cursor

Two records come out of the user loop and they are anchored differently:
- UserAdjustment: final choice != the oracle's pick (feeds future prompts)
- MenuChange: final choice != the option currently selected remotely
  (what gets submitted)

A fatal error anywhere before step 7 leaves the cursor untouched so the day
is retried on the next run.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from rich.markup import escape
from rich.text import Text

from config import HISTORY_DAYS
from diet_client import DietServiceClient
from menu_models import (
    DayBundle,
    DietsList,
    DishItem,
    MenuChange,
    MenuOption,
    UserAdjustment,
)
from menu_oracle import MenuOracle, Recommendation, history_label
from preferences import PreferenceStore
from tools.logging_utils import get_logger

logger = get_logger(__name__)


class DayProcessingError(Exception):
    """A data-integrity failure that makes the current day unprocessable."""
    pass


@dataclass
class DishDecision:
    item: DishItem
    recommended: MenuOption
    chosen: MenuOption
    adjustment: Optional[UserAdjustment] = None
    change: Optional[MenuChange] = None


@dataclass
class DayOutcome:
    """What happened to one day; returned for the caller and for tests."""
    day: date
    decisions: List[DishDecision] = field(default_factory=list)
    adjustments_saved: bool = False
    menu_changes_saved: bool = False

    @property
    def adjustments(self) -> List[UserAdjustment]:
        return [d.adjustment for d in self.decisions if d.adjustment is not None]

    @property
    def menu_changes(self) -> List[MenuChange]:
        return [d.change for d in self.decisions if d.change is not None]


def decide_dish(
    item: DishItem,
    recommended: MenuOption,
    chosen: MenuOption,
    day: date,
    reason: Optional[str] = None,
) -> Tuple[Optional[UserAdjustment], Optional[MenuChange]]:
    """
    Derive the records produced by one meal slot.

    Returns:
        (adjustment if chosen differs from the oracle's pick,
         menu change if chosen differs from the currently selected option)
    """
    adjustment = None
    if chosen.dish_id != recommended.dish_id:
        adjustment = UserAdjustment(
            from_name=recommended.name,
            to_name=chosen.name,
            reason=reason or None,
            date=day,
        )

    change = None
    if chosen.dish_id != item.default_dish_id:
        change = MenuChange(dish_item_id=item.id, dish_id=chosen.dish_id)

    return adjustment, change


class DayWorkflow:
    """
    Runs the decision workflow for single days.

    Args:
        client: Authenticated diet service client
        oracle: Dish recommendation oracle
        store: Preference store (adjustments and day cursor)
        ui: Console UI (or a scripted fake in tests)
        history_days: How many previous days to send as context
    """

    def __init__(
        self,
        client: DietServiceClient,
        oracle: MenuOracle,
        store: PreferenceStore,
        ui,
        history_days: int = HISTORY_DAYS,
    ):
        self.client = client
        self.oracle = oracle
        self.store = store
        self.ui = ui
        self.history_days = history_days

    async def select_dishes_for_day(self, day: date, diets: DietsList) -> DayOutcome:
        """
        Process one open day end to end.

        Raises:
            DayProcessingError: No diet covers the day, or the oracle/user loop
                referenced a dish item or dish that does not exist
            DietServiceError, OracleError: Propagated from the collaborators
        """
        self.ui.status("Fetching menu...")
        diet = diets.diet_for_date(day)
        if diet is None:
            raise DayProcessingError(f"No diet for date {day.isoformat()}")

        bundle = await self.client.fetch_day_with_ingredients(diet.id, day, on_progress=self.ui.status)
        self.ui.clear_status()
        self.ui.say(f"[bold]{day:%Y-%m-%d}, {day:%A}[/bold]")
        self.ui.say(Text(bundle.summary()))

        history = await self.fetch_history(diets, day)

        items = [item for item in bundle.items if item.enabled_options()]
        for item in bundle.items:
            if item not in items:
                logger.warning(f"⚠️ {item.meal_type} on {day} has no enabled options, skipping")

        outcome = DayOutcome(day=day)
        if items:
            self.ui.status("AI is thinking...")
            recommendation = await self.oracle.select_dishes(day, items, history, self.store.adjustments())
            self.ui.clear_status()
            self.ui.say()

            for reason in recommendation.reasoning:
                await self.ui.ai_says(reason)

            outcome.decisions = await self.ask_user(day, items, recommendation)

        if outcome.adjustments:
            outcome.adjustments_saved = await self.confirm_preferences_save(outcome.adjustments)

        if outcome.menu_changes:
            outcome.menu_changes_saved = await self.confirm_menu_change(
                diet.id, day, outcome.menu_changes, bundle
            )

        self.store.mark_day_processed(day)
        logger.info(
            f"✅ Processed {day.isoformat()}: {len(outcome.adjustments)} adjustments, "
            f"{len(outcome.menu_changes)} menu changes"
        )
        return outcome

    async def fetch_history(self, diets: DietsList, day: date) -> Dict[str, DayBundle]:
        """Previous days' menus keyed by "N days ago"/"yesterday", oldest first."""
        history: Dict[str, DayBundle] = {}
        for days_ago in range(self.history_days, 0, -1):
            past = day - timedelta(days=days_ago)
            self.ui.status(f"Fetching menu for {past:%Y-%m-%d} (-{days_ago} days)")
            diet = diets.diet_for_date(past)
            if diet is None:
                self.ui.clear_status()
                self.ui.say(f"No diet active for {past:%Y-%m-%d}")
                logger.info(f"No diet active for {past.isoformat()}, left out of history")
                continue
            history[history_label(days_ago)] = await self.client.fetch_day_with_ingredients(
                diet.id, past, on_progress=self.ui.status
            )
        self.ui.clear_status()
        return history

    async def ask_user(
        self,
        day: date,
        items: List[DishItem],
        recommendation: Recommendation,
    ) -> List[DishDecision]:
        decisions = []
        self.ui.say()
        for item in items:
            pick = recommendation.selections.get(item.id)
            if pick is None:
                raise DayProcessingError(f"AI returned no selection for {item.meal_type} ({item.id})")

            options = item.enabled_options()
            default = next((i for i, o in enumerate(options) if o.dish_id == pick.dish_id), None)
            if default is None:
                raise DayProcessingError(
                    f"AI picked {pick.dish_id} for {item.meal_type}, which is not an enabled option"
                )
            recommended = options[default]

            for dish_id, analysis in pick.analysis.items():
                option = item.get_dish(dish_id)
                await self.ui.ai_says(analysis, title=option.name if option else "unknown")
            self.ui.say()
            await self.ui.ai_says(pick.reason)

            selection = await self.ui.select(item.meal_type, [o.name for o in options], default=default)
            chosen = options[selection]

            reason = None
            if chosen.dish_id != recommended.dish_id:
                reason = await self.ui.ask_text("Why?", allow_empty=True)

            adjustment, change = decide_dish(item, recommended, chosen, day, reason)
            decisions.append(DishDecision(item, recommended, chosen, adjustment, change))
            self.ui.say()
        return decisions

    async def confirm_preferences_save(self, adjustments: List[UserAdjustment]) -> bool:
        self.ui.say("New preferences:")
        for adjustment in adjustments:
            self.ui.say(f"  [red]{escape(adjustment.from_name)}[/red] -> [green]{escape(adjustment.to_name)}[/green]")
            if adjustment.reason:
                self.ui.say(f"  because: {escape(adjustment.reason)}")

        saved = await self.ui.confirm("Add new preferences?")
        if saved:
            self.store.add_adjustments(adjustments)
            self.ui.say("Preferences saved")
        self.ui.say()
        return saved

    async def confirm_menu_change(
        self,
        diet_id: int,
        day: date,
        changes: List[MenuChange],
        bundle: DayBundle,
    ) -> bool:
        self.ui.say("Menu changes:")
        for change in changes:
            item = bundle.get_dish_item(change.dish_item_id)
            if item is None:
                raise DayProcessingError(f"Dish item not found: {change.dish_item_id}")
            new = item.get_dish(change.dish_id)
            if new is None:
                raise DayProcessingError(f"Dish not found: {change.dish_id} in {item.meal_type}")
            current = item.selected_option()
            current_name = current.name if current else "(nothing selected)"

            self.ui.say(f"[bold]{escape(item.meal_type)}[/bold]")
            self.ui.say(f"  [red]{escape(current_name)}[/red] -> [green]{escape(new.name)}[/green]")

        saved = await self.ui.confirm("Save menu changes?")
        if saved:
            self.ui.status("Saving menu changes...")
            await self.client.change_menu(diet_id, day, changes)
            self.ui.clear_status()
        self.ui.say()
        return saved
