import json
import logging
import re
from typing import Iterator, List, Optional
import json5
import demjson3

logger = logging.getLogger(__name__)


def iter_json_objects(response_text: str) -> Iterator[str]:
    """
    Yield every balanced ``{...}`` substring of model output, in order.

    Each opening brace is tried as a start, so prose like "the {hero}
    section" yields its own candidate before the real object does. Braces
    inside string literals are ignored so a "{" in the roast text does not
    confuse the scan.
    """
    if not response_text:
        return

    start = response_text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False

        for index in range(start, len(response_text)):
            char = response_text[index]

            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    yield response_text[start : index + 1]
                    break

        start = response_text.find("{", start + 1)


def extract_json_object(response_text: str) -> Optional[str]:
    """
    Locate the first balanced JSON object in free-form model output.

    Args:
        response_text: Raw text response from a model

    Returns:
        The substring holding the first balanced ``{...}`` object, or None
    """
    return next(iter_json_objects(response_text), None)


def _parse_candidate(candidate: str, errors: List[str]) -> Optional[dict]:
    # Layer 1: Try standard JSON parser first
    try:
        result = json.loads(candidate)
        if isinstance(result, dict):
            return result
        errors.append(f"Standard JSON: expected object, got {type(result).__name__}")
    except json.JSONDecodeError as e:
        errors.append(f"Standard JSON: {str(e)}")

    # Layer 2: Clean common model JSON mistakes
    try:
        cleaned = candidate

        # Remove trailing commas before closing braces/brackets
        cleaned = re.sub(r",(\s*[}\]])", r"\1", cleaned)

        # Remove single-line comments (// ...)
        cleaned = re.sub(r"(?<!:)//.*?\n", "\n", cleaned)

        # Remove multi-line comments (/* ... */)
        cleaned = re.sub(r"/\*.*?\*/", "", cleaned, flags=re.DOTALL)

        result = json.loads(cleaned)
        if isinstance(result, dict):
            logger.debug("🔧 Parsed JSON after cleaning")
            return result
    except json.JSONDecodeError as e:
        errors.append(f"Cleaned JSON: {str(e)}")

    # Layer 3: Try json5 (tolerates trailing commas, comments, single quotes)
    try:
        result = json5.loads(candidate)
        if isinstance(result, dict):
            logger.debug("🔧 Parsed JSON with json5")
            return result
    except Exception as e:
        errors.append(f"JSON5: {str(e)}")

    # Layer 4: Try demjson3 (auto-repairs many JSON errors)
    try:
        result = demjson3.decode(candidate)
        if isinstance(result, dict):
            logger.debug("🔧 Parsed JSON with demjson3")
            return result
    except Exception as e:
        errors.append(f"DemJSON: {str(e)}")

    return None


# JSON Repair and Parsing Function
def repair_and_parse_json(response_text: str) -> dict:
    """
    Multi-layered JSON parsing with auto-repair capabilities.

    Each balanced object in the text is tried in order, through:
    1. Standard json.loads()
    2. Clean common issues (trailing commas, comments)
    3. json5 parser (tolerates comments and trailing commas)
    4. demjson3 parser (auto-repairs many errors)
    The first candidate that parses to an object wins.

    Args:
        response_text: Raw text response from a model

    Returns:
        Parsed dictionary

    Raises:
        ValueError: If no JSON object is found or every candidate fails to parse
    """
    errors: List[str] = []
    found = False

    for candidate in iter_json_objects(response_text):
        found = True
        result = _parse_candidate(candidate, errors)
        if result is not None:
            return result
        logger.debug(f"🔧 Skipping unparseable candidate: {candidate[:40]}")

    if not found:
        raise ValueError("No JSON object found in response")

    raise ValueError(
        f"Failed to parse JSON after all attempts. Errors: {'; '.join(errors[:2])}"
    )
