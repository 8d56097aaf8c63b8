#!/usr/bin/env python3
"""
Preference Store
================

File-backed record of everything the assistant remembers between runs:
- the session refresh token
- the next day to check (cursor advanced after every processed day)
- the most recent user adjustments (capped, oldest dropped first)

Every accessor reads the whole file and every mutator rewrites the whole
file. There is a single writer (this process), so no locking is done.
"""

import json
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

from config import MAX_ADJUSTMENTS, PREFERENCES_PATH
from menu_models import PreferencesSnapshot, UserAdjustment
from tools.logging_utils import get_logger

logger = get_logger(__name__)


class PreferencesError(Exception):
    """Raised when the preference file exists but cannot be used."""
    pass


class PreferenceStore:
    """
    JSON preference file with whole-record load/save.

    Args:
        path: Location of preferences.json (default: config dir)
        max_adjustments: Adjustment history cap
    """

    def __init__(self, path: Optional[Path] = None, max_adjustments: int = MAX_ADJUSTMENTS):
        self.path = Path(path) if path is not None else PREFERENCES_PATH
        self.max_adjustments = max_adjustments

    def load(self) -> PreferencesSnapshot:
        """Read the full record; a missing file is an empty record."""
        if not self.path.exists():
            return PreferencesSnapshot()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            return PreferencesSnapshot.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise PreferencesError(f"Cannot read preferences from {self.path}: {e}") from e

    def save(self, snapshot: PreferencesSnapshot) -> None:
        """Rewrite the full record, creating the directory on first write."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False)
        logger.debug(f"💾 Preferences saved to {self.path}")

    # -------------------------------------------------------------------------
    # Token
    # -------------------------------------------------------------------------

    def token(self) -> Optional[str]:
        return self.load().token

    def save_token(self, token: str) -> None:
        snapshot = self.load()
        snapshot.token = token
        self.save(snapshot)

    # -------------------------------------------------------------------------
    # Day cursor
    # -------------------------------------------------------------------------

    def next_day_to_check(self) -> Optional[date]:
        return self.load().last_day_selected

    def set_next_day_to_check(self, day: date) -> None:
        """Move the cursor to `day`. The cursor never moves backwards."""
        snapshot = self.load()
        current = snapshot.last_day_selected
        if current is not None and day <= current:
            logger.debug(f"Cursor stays at {current} (requested {day})")
            return
        snapshot.last_day_selected = day
        self.save(snapshot)

    def mark_day_processed(self, day: date) -> None:
        self.set_next_day_to_check(day + timedelta(days=1))

    # -------------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------------

    def adjustments(self) -> List[UserAdjustment]:
        return self.load().adjustments

    def add_adjustments(self, adjustments: List[UserAdjustment]) -> None:
        snapshot = self.load().with_adjustments(adjustments, self.max_adjustments)
        self.save(snapshot)
        logger.info(f"✅ Stored {len(adjustments)} adjustments ({len(snapshot.adjustments)} kept)")
