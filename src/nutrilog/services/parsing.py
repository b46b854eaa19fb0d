"""Parsing of nutrition estimation responses."""

import json
import logging
import math
import re

from nutrilog.domain.entries import NutritionDisplay, ParsedNutrition
from nutrilog.services.json_values import (
    JsonKind,
    as_array,
    as_number,
    as_object,
    as_string,
    json_kind,
)

DEFAULT_CARBS_TEXT = "15g"
_CARB_KEYS = ("total_carbs_g", "carbs_g", "carbs", "total_carbs")
_NUMBER_PATTERN = re.compile(r"(\d+(\.\d+)?)")
_DECIMAL_PATTERN = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_CARBS_WORD_PATTERN = re.compile("carbs", re.IGNORECASE)

_logger = logging.getLogger(__name__)


def parse_nutrition(response_text: str) -> ParsedNutrition | None:
    """Parse a structured estimation response.

    Accepts a JSON object, a JSON object encoded once more as a JSON string, or
    a JSON object embedded in prose or code fences. Returns None when no JSON
    object can be decoded; callers then use ``extract_carb_text``.
    """
    candidate = _extract_object_span(_unwrap_json_string_once(response_text))
    try:
        decoded = json.loads(candidate)
    except ValueError:
        return None
    payload = as_object(decoded)
    if payload is None:
        return None

    foods: list[str] = []
    for item in as_array(payload.get("food_items")) or []:
        name = as_string(item)
        if name is None:
            continue
        name = name.strip()
        if name:
            foods.append(name)

    carbs_grams = None
    for key in _CARB_KEYS:
        carbs_grams = number_from_any(payload.get(key))
        if carbs_grams is not None:
            break

    steps = as_string(payload.get("calculation_steps"))
    return ParsedNutrition(
        foods=foods,
        carbs_grams=carbs_grams,
        steps=steps.strip() if steps is not None else None,
    )


def extract_carb_text(text: str | None) -> str | None:
    """Pull a carb amount out of free text such as ``"Total carbs = 45g"``."""
    if text is None:
        return None
    stripped = text.strip()
    if not stripped:
        return None

    lines = [line for line in stripped.splitlines() if line.strip()]
    last_line = lines[-1] if lines else stripped
    if "=" in last_line:
        last_line = last_line.rsplit("=", 1)[1]
    last_line = last_line.split("\n", 1)[0]

    cleaned = last_line.strip().strip("\"'")
    if cleaned.endswith("."):
        cleaned = cleaned[:-1]
    cleaned = _WHITESPACE_PATTERN.sub(" ", cleaned)
    return cleaned or None


def number_from_any(value: object) -> float | None:
    """Coerce a number or a string with an embedded number to a finite float."""
    kind = json_kind(value)
    if kind is JsonKind.NUMBER:
        return as_number(value)
    if kind is not JsonKind.STRING:
        return None
    text = str(value)
    if _DECIMAL_PATTERN.fullmatch(text) is not None:
        return decimal_from_text(text)
    return _first_number(text)


def decimal_from_text(text: str) -> float | None:
    """Parse a plain decimal literal such as ``"12"``, ``"-3.5"`` or ``"1e3"``."""
    if _DECIMAL_PATTERN.fullmatch(text) is None:
        return None
    number = float(text)
    return number if math.isfinite(number) else None


def carbs_grams(carbs_text: str) -> float | None:
    """Return grams from display strings like ``"48g"`` or ``"48.2 g"``."""
    return _first_number(carbs_text.lower())


def format_carbs(grams: float) -> str:
    """Format grams for display on an entry."""
    return f"{grams:.0f}g"


def resolve_nutrition(
    food_text: str,
    response_text: str | None,
    *,
    fallback: NutritionDisplay | None = None,
) -> NutritionDisplay:
    """Derive display fields from a response, applying defaults.

    ``fallback`` supplies the carbs and explanation to keep when the response
    does not provide them (used by edits); otherwise the hard defaults apply.
    """
    display_food = food_text
    carbs_text = fallback.carbs_text if fallback else DEFAULT_CARBS_TEXT
    explanation = fallback.explanation if fallback else None
    if response_text is None:
        return NutritionDisplay(display_food, carbs_text, explanation)

    parsed = parse_nutrition(response_text)
    if parsed is not None:
        if parsed.foods:
            display_food = ", ".join(parsed.foods)
        if parsed.carbs_grams is not None:
            carbs_text = format_carbs(parsed.carbs_grams)
        explanation = parsed.steps
    else:
        extracted = extract_carb_text(response_text)
        if extracted is not None:
            cleaned = _CARBS_WORD_PATTERN.sub("", extracted).replace(" ", "")
            carbs_text = cleaned or DEFAULT_CARBS_TEXT
        else:
            _logger.info("Estimation response had no usable carb value")
    if not display_food.strip():
        display_food = food_text.strip() or "Food"
    return NutritionDisplay(display_food, carbs_text, explanation)


def _first_number(text: str) -> float | None:
    match = _NUMBER_PATTERN.search(text)
    if match is None:
        return None
    number = float(match.group(1))
    return number if math.isfinite(number) else None


def _unwrap_json_string_once(text: str) -> str:
    """Decode one level of JSON string encoding, if present."""
    try:
        decoded = json.loads(f"[{text}]")
    except ValueError:
        return text
    items = as_array(decoded)
    if items and len(items) == 1:
        inner = as_string(items[0])
        if inner is not None:
            return inner
    return text


def _extract_object_span(text: str) -> str:
    """Keep the segment from the first ``{`` to the last ``}``."""
    trimmed = text.strip()
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start == -1 or end == -1 or end < start:
        return trimmed
    return trimmed[start : end + 1]
