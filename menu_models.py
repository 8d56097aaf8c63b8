#!/usr/bin/env python3
"""
Powermeal Menu Data Model
=========================

Typed views of the Powermeal panel API payloads plus the records the
assistant itself produces (user adjustments, menu changes, preference
snapshots).

The API speaks JSON-LD ("hydra") so identifiers are IRIs such as
"/v2/frontend/secure/dish-items/123" and collections live under
"hydra:member". The `from_api` constructors accept those payloads and raise
ValueError/KeyError/TypeError on a shape they do not understand; the diet
client wraps those into DietAPIError with the operation name.

Usage:
    from menu_models import DayBundle

    bundle = DayBundle.from_api(payload)
    for item in bundle.items:
        print(item.meal_type, [o.name for o in item.enabled_options()])
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from tools.logging_utils import get_logger

logger = get_logger(__name__)


def parse_api_date(value: str) -> date:
    """Parse an ISO date or datetime (with optional offset/Z) into a date."""
    if not isinstance(value, str):
        raise TypeError(f"expected ISO date string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    if 'T' in text or ' ' in text:
        return datetime.fromisoformat(text).date()
    return date.fromisoformat(text)


# =============================================================================
# DIETS
# =============================================================================

@dataclass(frozen=True)
class Diet:
    """An ordered diet with its delivery date range (inclusive)."""
    id: int
    first_delivery_date: date
    last_delivery_date: date

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Diet':
        return cls(
            id=int(data['id']),
            first_delivery_date=parse_api_date(data['firstDeliveryDate']),
            last_delivery_date=parse_api_date(data['lastDeliveryDate']),
        )

    def covers(self, day: date) -> bool:
        return self.first_delivery_date <= day <= self.last_delivery_date

    def overlaps(self, start: date, end: date) -> bool:
        return self.first_delivery_date <= end and start <= self.last_delivery_date


@dataclass
class DietsList:
    diets: List[Diet] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'DietsList':
        return cls(diets=[Diet.from_api(d) for d in data['hydra:member']])

    def diet_for_date(self, day: date) -> Optional[Diet]:
        """Return the first diet whose delivery range contains `day`."""
        for diet in self.diets:
            if diet.covers(day):
                return diet
        return None

    def diets_in_range(self, start: date, end: date) -> List[Diet]:
        return [diet for diet in self.diets if diet.overlaps(start, end)]


# =============================================================================
# CALENDAR
# =============================================================================

class DayState(Enum):
    NO_DIET = "NOT_DIET_CANT_PLACE_ORDER"
    DELIVERED = "DELIVERED_NOT_RATED_CAN_RATE"
    CANNOT_CHANGE = "NOT_DELIVERED_BLOCKED"
    AVAILABLE_TO_SELECT = "NOT_DELIVERED_WITH_CONFIGURABLE_ALL"
    WITHOUT_MENU = "NOT_DELIVERED_WITH_CONFIGURABLE_WITHOUT_MENU"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_api(cls, value: str) -> 'DayState':
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"⚠️ Unknown calendar day state: {value!r}")
            return cls.UNKNOWN


@dataclass
class Calendar:
    days: Dict[date, DayState] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Calendar':
        days = {}
        for day, status in data['days'].items():
            days[parse_api_date(day)] = DayState.from_api(status['newState'])
        return cls(days=days)

    def open_days(self) -> List[date]:
        """Days whose menu can still be chosen, ascending."""
        return sorted(d for d, state in self.days.items() if state is DayState.AVAILABLE_TO_SELECT)


# =============================================================================
# DAY MENU
# =============================================================================

def parse_ingredients(value: Any) -> Optional[List[str]]:
    # Options carry either null, a bare list or an ingredients record
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get('ingredients')
        if value is None:
            return None
    if not isinstance(value, list):
        raise TypeError(f"unexpected ingredients payload: {type(value).__name__}")
    names = []
    for entry in value:
        if isinstance(entry, dict):
            names.append(str(entry.get('name', '')))
        else:
            names.append(str(entry))
    return names


@dataclass
class MenuOption:
    """One concrete dish that can be picked for a meal slot."""
    dish_id: str
    name: str
    enabled: bool = True
    dish_size_id: Optional[int] = None
    ingredients: Optional[List[str]] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'MenuOption':
        dish_size_id = data.get('dishSizeId')
        return cls(
            dish_id=data['dish']['@id'],
            name=data['name'],
            enabled=bool(data.get('enabled', False)),
            dish_size_id=int(dish_size_id) if dish_size_id is not None else None,
            ingredients=parse_ingredients(data.get('ingredients')),
        )


@dataclass
class DishItem:
    """A meal slot (e.g. lunch) on one day with all of its menu options."""
    id: str
    meal_type: str
    default_dish_id: Optional[str]
    options: List[MenuOption] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'DishItem':
        dish_size = data.get('dishSize') or {}
        return cls(
            id=data['@id'],
            meal_type=data['mealType']['name'],
            default_dish_id=(dish_size.get('dish') or {}).get('@id'),
            options=[MenuOption.from_api(o) for o in data['options']],
        )

    def enabled_options(self) -> List[MenuOption]:
        """Options that may be presented or chosen, in menu order."""
        return [option for option in self.options if option.enabled]

    def get_dish(self, dish_id: str) -> Optional[MenuOption]:
        for option in self.options:
            if option.dish_id == dish_id:
                return option
        return None

    def selected_option(self) -> Optional[MenuOption]:
        """The option currently committed on the remote side, if any."""
        if self.default_dish_id is None:
            return None
        return self.get_dish(self.default_dish_id)


@dataclass
class DayBundle:
    """All dish items of a single calendar day, in API order."""
    items: List[DishItem] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'DayBundle':
        members = data['dietElements']['hydra:member']
        return cls(items=[DishItem.from_api(m) for m in members])

    def get_dish_item(self, dish_item_id: str) -> Optional[DishItem]:
        for item in self.items:
            if item.id == dish_item_id:
                return item
        return None

    def get_dish(self, dish_item_id: str, dish_id: str) -> Optional[MenuOption]:
        item = self.get_dish_item(dish_item_id)
        return item.get_dish(dish_id) if item else None

    def missing_ingredients(self) -> List[MenuOption]:
        return [o for item in self.items for o in item.enabled_options() if o.ingredients is None]

    def summary(self) -> str:
        """Plain text listing of the enabled options; `[*]` marks the current pick."""
        lines = []
        for item in self.items:
            lines.append(item.meal_type)
            for option in item.enabled_options():
                marker = "*" if option.dish_id == item.default_dish_id else " "
                lines.append(f"  [{marker}] {option.name}")
        return "\n".join(lines)


# =============================================================================
# ASSISTANT RECORDS
# =============================================================================

@dataclass(frozen=True)
class UserAdjustment:
    """The user overrode the oracle: `from_name` was suggested, `to_name` chosen."""
    from_name: str
    to_name: str
    reason: Optional[str]
    date: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_name,
            "to": self.to_name,
            "reason": self.reason,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserAdjustment':
        return cls(
            from_name=data['from'],
            to_name=data['to'],
            reason=data.get('reason'),
            date=parse_api_date(data['date']),
        )


@dataclass(frozen=True)
class MenuChange:
    dish_item_id: str
    dish_id: str

    def to_api(self) -> Dict[str, str]:
        return {"dish": self.dish_id, "dishItem": self.dish_item_id}


@dataclass(frozen=True)
class TokenPair:
    token: str
    refresh_token: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'TokenPair':
        return cls(token=data['token'], refresh_token=data['refreshToken'])


@dataclass
class PreferencesSnapshot:
    """Everything persisted between runs; always read and written whole."""
    token: Optional[str] = None
    last_day_selected: Optional[date] = None
    adjustments: List[UserAdjustment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "adjustments": [a.to_dict() for a in self.adjustments],
            "last_day_selected": self.last_day_selected.isoformat() if self.last_day_selected else None,
            "token": self.token,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PreferencesSnapshot':
        last_day = data.get('last_day_selected')
        return cls(
            token=data.get('token'),
            last_day_selected=parse_api_date(last_day) if last_day else None,
            adjustments=[UserAdjustment.from_dict(a) for a in data.get('adjustments') or []],
        )

    def with_adjustments(self, new: List[UserAdjustment], limit: int) -> 'PreferencesSnapshot':
        """Append `new` and keep only the most recent `limit` adjustments."""
        combined = list(self.adjustments) + list(new)
        if len(combined) > limit:
            combined = combined[len(combined) - limit:]
        return PreferencesSnapshot(
            token=self.token,
            last_day_selected=self.last_day_selected,
            adjustments=combined,
        )
