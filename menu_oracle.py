#!/usr/bin/env python3
"""
Dish Recommendation Oracle
==========================

Asks an OpenAI-compatible chat model to pick one dish per meal slot.

The request is self-describing JSON: today's dish items (enabled options
only, with ingredients), what was actually eaten on the previous days, the
history of user adjustments and the menu date. The response is constrained
by a strict structured-output schema built from the same dish items, and is
validated again on arrival. A response that breaks the contract is a hard
failure - there is no retry and no best-effort parse.

Usage:
    from menu_oracle import MenuOracle

    oracle = MenuOracle()
    recommendation = await oracle.select_dishes(day, bundle.items, history, adjustments)
    pick = recommendation.selections[item.id].dish_id
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from config import CHAT_API_KEY, CHAT_API_URL, CHAT_MAX_TOKENS, CHAT_MODEL, CHAT_TEMPERATURE
from menu_models import DayBundle, DishItem, MenuOption, UserAdjustment
from prompts import (
    ANALYSIS_DESCRIPTION,
    REASON_DESCRIPTION,
    REASONING_DESCRIPTION,
    build_system_prompt,
)
from tools.logging_utils import get_logger

logger = get_logger(__name__)

SCHEMA_NAME = "meal_selection"


class OracleError(Exception):
    """The recommendation call failed (transport, HTTP or API error)."""
    pass


class OracleResponseError(OracleError):
    """The recommendation arrived but does not honour the response contract."""
    pass


@dataclass
class DishRecommendation:
    dish_id: str
    reason: str
    analysis: Dict[str, str] = field(default_factory=dict)


@dataclass
class Recommendation:
    reasoning: List[str]
    selections: Dict[str, DishRecommendation]


# =============================================================================
# REQUEST
# =============================================================================

def history_label(days_ago: int) -> str:
    return "yesterday" if days_ago == 1 else f"{days_ago} days ago"


def _option_payload(option: MenuOption) -> Dict[str, Any]:
    return {
        "name": option.name,
        "ingredients": list(option.ingredients or []),
        "id": option.dish_id,
    }


def build_oracle_question(
    day: date,
    items: List[DishItem],
    history: Dict[str, DayBundle],
    adjustments: List[UserAdjustment],
) -> Dict[str, Any]:
    """
    Build the JSON question sent as the user message.

    Args:
        day: Menu date being decided
        items: Dish items to decide, in presentation order
        history: Label -> day bundle, oldest first (order is preserved)
        adjustments: Full stored adjustment history

    Returns:
        dict ready for json.dumps
    """
    last_days_choices = {}
    for label, bundle in history.items():
        eaten = []
        for item in bundle.items:
            selected = item.selected_option()
            if selected is None:
                logger.debug(f"No selected option for {item.meal_type} ({label}), left out of history")
                continue
            eaten.append(_option_payload(selected))
        last_days_choices[label] = eaten

    return {
        "user_changes": [a.to_dict() for a in adjustments],
        "last_days_choices": last_days_choices,
        "dish_items": [
            {
                "id": item.id,
                "meal_type": item.meal_type,
                "options": [_option_payload(o) for o in item.enabled_options()],
            }
            for item in items
        ],
        "menu_date": day.isoformat(),
    }


def _enabled_dish_ids(item: DishItem) -> List[str]:
    ids = []
    for option in item.enabled_options():
        if option.dish_id not in ids:
            ids.append(option.dish_id)
    return ids


def build_dish_item_schema(item: DishItem) -> Dict[str, Any]:
    """Schema of one selection: analysis per enabled option, reason, chosen dish id."""
    dish_ids = _enabled_dish_ids(item)
    return {
        "type": "object",
        "properties": {
            "analysis": {
                "type": "object",
                "description": ANALYSIS_DESCRIPTION,
                "properties": {dish_id: {"type": "string"} for dish_id in dish_ids},
                "required": dish_ids,
                "additionalProperties": False,
            },
            "reason": {"type": "string", "description": REASON_DESCRIPTION},
            "dish_id": {"type": "string", "enum": dish_ids},
        },
        "required": ["analysis", "reason", "dish_id"],
        "additionalProperties": False,
    }


def build_selection_schema(items: List[DishItem]) -> Dict[str, Any]:
    """Structured output format requiring one selection per submitted dish item."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": SCHEMA_NAME,
            "strict": True,
            "schema": {
                "type": "object",
                "properties": {
                    "reasoning": {
                        "type": "array",
                        "description": REASONING_DESCRIPTION,
                        "items": {"type": "string"},
                    },
                    "selections": {
                        "type": "object",
                        "properties": {item.id: build_dish_item_schema(item) for item in items},
                        "required": [item.id for item in items],
                        "additionalProperties": False,
                    },
                },
                "required": ["reasoning", "selections"],
                "additionalProperties": False,
            },
        },
    }


# =============================================================================
# RESPONSE
# =============================================================================

def _parse_selection(item: DishItem, raw: Any) -> DishRecommendation:
    if not isinstance(raw, dict):
        raise OracleResponseError(f"Selection for {item.id} is not an object")

    dish_id = raw.get("dish_id")
    allowed = _enabled_dish_ids(item)
    if dish_id not in allowed:
        raise OracleResponseError(
            f"Selection for {item.id} picked {dish_id!r}, expected one of {allowed}"
        )

    reason = raw.get("reason")
    if not isinstance(reason, str):
        raise OracleResponseError(f"Selection for {item.id} has no reason text")

    analysis = raw.get("analysis") or {}
    if not isinstance(analysis, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in analysis.items()
    ):
        raise OracleResponseError(f"Selection for {item.id} has a malformed analysis")

    return DishRecommendation(dish_id=dish_id, reason=reason, analysis=dict(analysis))


def parse_recommendation(content: Optional[str], items: List[DishItem]) -> Recommendation:
    """
    Validate the raw model output against the request it answers.

    Raises:
        OracleResponseError: Empty content, invalid JSON, wrong shape, a missing
            or unexpected dish item id, or a dish id outside the enabled options
    """
    if content is None or not content.strip():
        raise OracleResponseError("No content in response from AI")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"AI response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise OracleResponseError("AI response is not a JSON object")

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, list) or not all(isinstance(r, str) for r in reasoning):
        raise OracleResponseError("AI response has no reasoning list")

    selections = data.get("selections")
    if not isinstance(selections, dict):
        raise OracleResponseError("AI response has no selections object")

    submitted = [item.id for item in items]
    missing = [item_id for item_id in submitted if item_id not in selections]
    if missing:
        raise OracleResponseError(f"AI response is missing selections for {missing}")
    unexpected = [key for key in selections if key not in submitted]
    if unexpected:
        raise OracleResponseError(f"AI response has selections for unknown dish items {unexpected}")

    return Recommendation(
        reasoning=list(reasoning),
        selections={item.id: _parse_selection(item, selections[item.id]) for item in items},
    )


# =============================================================================
# ORACLE
# =============================================================================

class MenuOracle:
    """
    Chat-completions client for dish recommendations.

    Args:
        api_url: OpenAI-compatible base URL (default: config.CHAT_API_URL)
        api_key: Bearer key (default: OPENAI_API_KEY / secrets.yaml)
        model: Chat model name
        temperature: Sampling temperature (0 for repeatable picks)
        max_tokens: Response token cap
    """

    def __init__(
        self,
        api_url: str = CHAT_API_URL,
        api_key: Optional[str] = CHAT_API_KEY,
        model: str = CHAT_MODEL,
        temperature: float = CHAT_TEMPERATURE,
        max_tokens: int = CHAT_MAX_TOKENS,
    ):
        self.api_url = api_url.rstrip('/')
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        # No overall timeout: a slow completion blocks, it is never cut off
        self.timeout = aiohttp.ClientTimeout(total=None)

    async def select_dishes(
        self,
        day: date,
        items: List[DishItem],
        history: Dict[str, DayBundle],
        adjustments: List[UserAdjustment],
    ) -> Recommendation:
        """Ask the model for one dish per item and return the validated answer."""
        question = build_oracle_question(day, items, history, adjustments)
        response_format = build_selection_schema(items)
        logger.debug(f"Schema: {json.dumps(response_format, indent=2, ensure_ascii=False)}")

        messages = [
            {"role": "system", "content": build_system_prompt()},
            {"role": "user", "content": json.dumps(question, ensure_ascii=False)},
        ]
        content = await self._complete(messages, response_format)
        recommendation = parse_recommendation(content, items)
        logger.info(f"✅ AI selected dishes for {day.isoformat()} ({len(items)} items)")
        return recommendation

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Tuple[int, str]:
        """Send one POST and return (status, text)."""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                return response.status, await response.text()

    async def _complete(self, messages: List[Dict[str, str]], response_format: Dict[str, Any]) -> Optional[str]:
        """
        Send one chat completion and return the first choice's content.

        Raises:
            OracleError: Missing key, transport failure, non-200 status or API error body
            OracleResponseError: No usable choice in the response
        """
        if not self.api_key:
            raise OracleError("Chat API key is not configured (set OPENAI_API_KEY or openai.api_key in secrets.yaml)")

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": response_format,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            status, text = await self._post(f"{self.api_url}/chat/completions", payload, headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise OracleError(f"Chat API call failed: {e!r}") from e

        if status != 200:
            logger.error(f"❌ Chat API error {status}: {text[:500]}")
            raise OracleError(f"Chat API error {status}: {text[:200]}")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise OracleError(f"Chat API returned malformed JSON: {e}") from e

        if not isinstance(data, dict):
            raise OracleError("Chat API returned an unexpected payload")

        if "error" in data:
            error_msg = data["error"]
            error_text = error_msg.get("message", str(error_msg)) if isinstance(error_msg, dict) else str(error_msg)
            raise OracleError(f"Chat API error: {error_text}")

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise OracleResponseError("No response from AI")

        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise OracleResponseError("AI response has no message")
        return message.get("content")
