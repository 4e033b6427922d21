"""
Task extraction from transcribed speech.

The language model does the segmentation; this module owns the prompt and
enforces the response contract: a JSON array of {title, estimatedTime}.
There is no local fallback when the model breaks the contract.
"""
import json
import logging
import math
from typing import Any, List

from errors import InvalidUpstreamResponse
from schemas import MAX_INT4, ExtractedTask

logger = logging.getLogger(__name__)

EXTRACTION_SYSTEM_PROMPT = """You are a task extraction assistant. When given text input in any language, first translate it to English if needed, then identify and separate distinct tasks and estimate time for each.
Return only a JSON array of tasks in English, where each task has a title and estimatedTime in minutes.
Example input: "Buy groceries, call mom, and finish report"
Example output: [
  {"title": "Buy groceries", "estimatedTime": 30},
  {"title": "Call mom", "estimatedTime": 15},
  {"title": "Finish report", "estimatedTime": 60}
]"""


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _coerce_estimate(value: Any) -> int:
    # bool is an int subclass; "true" minutes is not an estimate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidUpstreamResponse()
    # json.loads accepts Infinity and NaN
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidUpstreamResponse()
    minutes = int(round(value))
    if not 0 < minutes <= MAX_INT4:
        raise InvalidUpstreamResponse()
    return minutes


def parse_task_response(response_text: str) -> List[ExtractedTask]:
    """
    Parse the model's answer into extracted tasks.

    Raises:
        InvalidUpstreamResponse: If the text is not a JSON array whose elements
            all carry a non-empty string title and a positive numeric estimatedTime
    """
    try:
        data = json.loads(strip_code_fences(response_text or ""))
    except json.JSONDecodeError as e:
        logger.error("=" * 80)
        logger.error("JSON PARSING FAILED - Raw model output:")
        logger.error(response_text)
        logger.error("=" * 80)
        logger.error(f"JSON decode error: {e}")
        raise InvalidUpstreamResponse() from e

    if not isinstance(data, list):
        logger.error(f"Model returned {type(data).__name__}, expected a JSON array: {response_text}")
        raise InvalidUpstreamResponse()

    tasks = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            logger.error(f"Task #{i} is not an object: {item!r}")
            raise InvalidUpstreamResponse()
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            logger.error(f"Task #{i} has no usable title: {item!r}")
            raise InvalidUpstreamResponse()
        if "estimatedTime" not in item:
            logger.error(f"Task #{i} has no estimatedTime: {item!r}")
            raise InvalidUpstreamResponse()
        tasks.append(ExtractedTask(title=title.strip(), estimated_time=_coerce_estimate(item["estimatedTime"])))
    return tasks


async def extract_tasks(gateway, text: str) -> List[ExtractedTask]:
    """
    Ask the model to split ``text`` into timed tasks.

    Args:
        gateway: ModelGateway used for the completion
        text: Transcribed speech, any language

    Returns:
        Extracted tasks in the order the model listed them
    """
    logger.info(f"Extracting tasks: transcript length={len(text)}")
    logger.info(f"Transcript preview: {text[:200]}")
    response_text = await gateway.complete(EXTRACTION_SYSTEM_PROMPT, text)
    if not response_text:
        logger.error("No response received from the extraction model")
        raise InvalidUpstreamResponse()
    tasks = parse_task_response(response_text)
    logger.info(f"Tasks extracted: {[t.title for t in tasks]}")
    return tasks
