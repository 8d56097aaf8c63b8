#!/usr/bin/env python3
"""
Day Discovery
=============

Finds the upcoming days whose menu can still be chosen.

The window starts at the stored "next day to check" cursor (or today when
the cursor was never set) and spans SELECTION_WINDOW_DAYS forward. Every
diet overlapping the window contributes the days its calendar marks as
open; the merged result is de-duplicated and sorted ascending.
"""

from datetime import date, timedelta
from typing import List, Optional, Tuple

from config import SELECTION_WINDOW_DAYS
from diet_client import DietServiceClient
from menu_models import DietsList
from preferences import PreferenceStore
from tools.logging_utils import get_logger

logger = get_logger(__name__)


def selection_window(start: date, days: int = SELECTION_WINDOW_DAYS) -> Tuple[date, date]:
    return start, start + timedelta(days=days)


async def discover_open_days(
    client: DietServiceClient,
    diets: DietsList,
    store: PreferenceStore,
    today: date,
    ui=None,
    window_days: int = SELECTION_WINDOW_DAYS,
) -> List[date]:
    """
    Return the open-for-selection days in the window, ascending, no duplicates.

    Args:
        client: Diet service client (authenticated)
        diets: All diets of the account
        store: Preference store holding the day cursor
        today: Reference date used when no cursor is stored
        ui: Optional console UI for the status line
        window_days: Window length in days

    Returns:
        Sorted list of open days; empty when nothing can be chosen
    """
    cursor: Optional[date] = store.next_day_to_check()
    start, end = selection_window(cursor or today, window_days)
    logger.debug(f"Discovery window {start} .. {end} (cursor={cursor})")

    open_days = set()
    for diet in diets.diets_in_range(start, end):
        if ui is not None:
            ui.status(f"Fetching calendar for diet #{diet.id}")
        calendar = await client.fetch_calendar(diet.id, start, end)
        found = calendar.open_days()
        logger.debug(f"Diet #{diet.id}: {len(found)} open days")
        open_days.update(found)

    days = sorted(open_days)
    logger.info(f"📊 {len(days)} days available to select between {start} and {end}")
    return days
