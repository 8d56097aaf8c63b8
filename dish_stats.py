#!/usr/bin/env python3
"""
Dish Statistics
===============

Counts how often each dish was offered over the last N days (today
included), across every meal slot and every option, enabled or not.
Handy for spotting which dishes the menu keeps rotating back to.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List

from config import STATS_DAYS
from diet_client import DietServiceClient
from menu_models import DietsList
from tools.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DishCount:
    dish_id: str
    name: str
    count: int

    def __str__(self) -> str:
        return f"{self.name} [id={self.dish_id}] : {self.count}"


async def collect_dish_stats(
    client: DietServiceClient,
    diets: DietsList,
    today: date,
    days: int = STATS_DAYS,
    ui=None,
) -> List[DishCount]:
    """
    Count dish occurrences over `days` days ending today.

    Returns:
        DishCount records, most frequent first, ties by name
    """
    counts: Counter = Counter()
    names: Dict[str, str] = {}

    for days_ago in range(days):
        day = today - timedelta(days=days_ago)
        diet = diets.diet_for_date(day)
        if diet is None:
            if ui is not None:
                ui.clear_status()
                ui.say(f"No diet active for {day:%Y-%m-%d}")
            logger.info(f"No diet active for {day.isoformat()}, skipped in stats")
            continue

        if ui is not None:
            ui.status(f"Fetching menu for {day:%Y-%m-%d}")
        bundle = await client.fetch_day_with_ingredients(
            diet.id, day, on_progress=ui.status if ui is not None else None
        )
        for item in bundle.items:
            for option in item.options:
                names.setdefault(option.dish_id, option.name)
                counts[option.dish_id] += 1

    if ui is not None:
        ui.clear_status()

    stats = [DishCount(dish_id, names[dish_id], count) for dish_id, count in counts.items()]
    stats.sort(key=lambda s: (-s.count, s.name))
    logger.info(f"📊 {len(stats)} distinct dishes over {days} days")
    return stats
