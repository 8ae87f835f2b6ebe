# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import json
import logging
import random
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Common backoff constants
INITIAL_BACKOFF = 2  # seconds
MAX_BACKOFF = 300    # 5 minutes

DEFAULT_DATE_FORMAT = "%m/%d/%Y"

# Input formats accepted by parse_date, tried in order
_DATE_INPUT_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def calculate_backoff(attempt: int, initial_backoff: float = INITIAL_BACKOFF,
                     max_backoff: float = MAX_BACKOFF) -> float:
    """
    Calculate exponential backoff with jitter

    Args:
        attempt: The current retry attempt number (0-based)
        initial_backoff: Starting backoff in seconds
        max_backoff: Maximum backoff cap in seconds

    Returns:
        Backoff time in seconds
    """
    backoff = min(max_backoff, initial_backoff * (2 ** attempt))
    jitter = random.uniform(0, 0.1 * backoff)  # 10% jitter
    return backoff + jitter


def merge_metering_data(existing_metering: Dict[str, Any],
                       new_metering: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge metering data from multiple provider calls

    Args:
        existing_metering: Existing metering data to merge into
        new_metering: New metering data to add

    Returns:
        Merged metering data
    """
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in existing_metering.items()}

    for service_api, metrics in new_metering.items():
        if isinstance(metrics, dict):
            for unit, value in metrics.items():
                if service_api not in merged:
                    merged[service_api] = {}
                merged[service_api][unit] = merged[service_api].get(unit, 0) + value
        else:
            logger.warning(f"Unexpected metering data format for {service_api}: {metrics}")

    return merged


def normalize_key(key: Any) -> str:
    """
    Normalize a field key to lowercase snake case.

    Every run of characters outside [a-z0-9] becomes a single underscore and
    leading/trailing underscores are trimmed: ``"Patient's  Name:"`` becomes
    ``"patient_s_name"``.
    """
    if key is None:
        return ""
    return _NON_ALNUM.sub("_", str(key).lower()).strip("_")


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute all cost 1) between two strings."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                current[j - 1] + 1,      # insertion
                previous[j] + 1,         # deletion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """
    Normalized similarity ``1 - levenshtein / max_len`` in [0, 1].

    Two empty strings are identical (1.0); one empty string scores 0.0.
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


def best_fuzzy_match(target: str, candidates: Iterable[str],
                     threshold: float) -> Optional[tuple]:
    """
    Return ``(candidate, score)`` for the best-scoring candidate strictly above threshold.

    The first candidate wins ties, so results follow the iteration order of
    ``candidates``.
    """
    best = None
    best_score = threshold
    for candidate in candidates:
        score = string_similarity(target, candidate)
        if score > best_score:
            best, best_score = candidate, score
    if best is None:
        return None
    return best, best_score


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def create_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split items into consecutive batches of at most batch_size."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


def parse_date(value: Any) -> Optional[date]:
    """Parse a date, datetime or common date string; returns None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def format_date(value: Any, date_format: str = DEFAULT_DATE_FORMAT) -> Any:
    """
    Format a date-like value for display on a form.

    Unparseable values are returned unchanged.
    """
    parsed = parse_date(value)
    if parsed is None:
        return value
    return parsed.strftime(date_format)


def calculate_age(date_of_birth: Any, today: Optional[date] = None) -> Optional[int]:
    """Age in whole years on ``today``; None when the birth date is missing or unparseable."""
    birth = parse_date(date_of_birth)
    if birth is None:
        return None
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def extract_json_from_text(text: str) -> str:
    """
    Extract JSON string from LLM response text.

    This function handles multiple common formats:
    - JSON wrapped in ```json code blocks
    - JSON wrapped in ``` code blocks
    - Raw JSON objects or top-level arrays with proper bracket matching
    - Multi-line JSON with literal newlines in string values

    Args:
        text: The text response from the model

    Returns:
        Extracted JSON string, or original text if no JSON found
    """
    if not text:
        logger.warning("Empty text provided to extract_json_from_text")
        return text

    # Strategy 1: Check for code block format with json tag
    if "```json" in text:
        start_idx = text.find("```json") + len("```json")
        end_idx = text.find("```", start_idx)
        if end_idx > start_idx:
            json_str = text[start_idx:end_idx].strip()
            try:
                json.loads(json_str)
                return json_str
            except json.JSONDecodeError:
                logger.debug(
                    "Found code block but content is not valid JSON, trying other strategies"
                )

    # Strategy 2: Check for generic code block format
    elif "```" in text:
        start_idx = text.find("```") + len("```")
        end_idx = text.find("```", start_idx)
        if end_idx > start_idx:
            json_str = text[start_idx:end_idx].strip()
            try:
                json.loads(json_str)
                return json_str
            except json.JSONDecodeError:
                logger.debug(
                    "Found code block but content is not valid JSON, trying other strategies"
                )

    # A top-level array is taken when "[" comes before the first "{"
    opener, closer = "{", "}"
    array_idx = text.find("[")
    if array_idx != -1 and (array_idx < text.find("{") or "{" not in text):
        opener, closer = "[", "]"

    # Strategy 3: Extract JSON between brackets with string-aware matching
    if opener in text and closer in text:
        start_idx = text.find(opener)
        open_braces = 0
        in_string = False
        escape_next = False

        for i in range(start_idx, len(text)):
            char = text[i]

            if escape_next:
                escape_next = False
                continue

            if char == "\\":
                escape_next = True
                continue

            if char == '"':
                in_string = not in_string
                continue

            if not in_string:
                if char == opener:
                    open_braces += 1
                elif char == closer:
                    open_braces -= 1
                    if open_braces == 0:
                        json_str = text[start_idx : i + 1].strip()
                        try:
                            json.loads(json_str)
                            return json_str
                        except json.JSONDecodeError:
                            logger.debug(
                                "Found JSON-like content but direct parsing failed, trying normalization"
                            )
                            break

    # Strategy 4: Outermost brackets, then whitespace normalization
    if opener in text and closer in text:
        start_idx = text.find(opener)
        end_idx = text.rfind(closer)
        if end_idx > start_idx:
            json_str = text[start_idx : end_idx + 1]
            for candidate in (
                json_str,
                " ".join(line.strip() for line in json_str.splitlines()),
                re.sub(r"\s+", " ", json_str),
            ):
                try:
                    json.loads(candidate)
                    return candidate
                except json.JSONDecodeError:
                    continue
            logger.debug("All normalization attempts failed")

    logger.warning("Could not extract valid JSON, returning original text")
    return text
