"""
Intent recognition - maps a free-text utterance to a tool invocation.

Rule based and deterministic:
1. Scan the utterance for project and customer ids and record them in the
   session context (a key that is already set is never overwritten).
2. Pick the first registered tool whose name matches the utterance, or
   whose description contains it as whole words.
3. Fill the tool's parameters from the context and from values stated in
   the utterance itself (voucher code, name, discount, tier level).
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..tools.base import ToolInfo, ToolInvoker

logger = structlog.get_logger()

NO_TOOL = "system.fallback"

FALLBACK_RESPONSE = (
    "I'm not sure which action you want me to take. I can create and list vouchers, "
    "campaigns, membership tiers and customers - try something like "
    "\"Create a voucher for project-abc123\" or ask \"what can you do?\"."
)

_TOKEN = r"([A-Za-z0-9][\w-]*)"

ENTITY_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "projectId": [
        re.compile(r"\bproject[-_ ]?id\b\s*[:=#-]?\s*" + _TOKEN, re.IGNORECASE),
        re.compile(r"\bproject[-:#]\s*" + _TOKEN, re.IGNORECASE),
        re.compile(r"\bfor project\s+" + _TOKEN, re.IGNORECASE),
    ],
    "customerId": [
        re.compile(r"\bcustomer[-_ ]?id\b\s*[:=#-]?\s*" + _TOKEN, re.IGNORECASE),
        re.compile(r"\bcustomer[-:#]\s*" + _TOKEN, re.IGNORECASE),
        re.compile(r"\bfor customer\s+" + _TOKEN, re.IGNORECASE),
    ],
}

_CODE_RE = re.compile(r"\bcode\b\s*[:=]?\s*\"?([A-Za-z0-9_-]+)\"?", re.IGNORECASE)
_NAME_RE = re.compile(r"\b(?:named|called)\s+(?:\"([^\"]+)\"|([^,.\"]+?))(?=\s+(?:for|with|at|on)\b|[,.]|$)", re.IGNORECASE)
_DISCOUNT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(%|percent\b|dollars?\b|usd\b|\$)", re.IGNORECASE)
_LEVEL_RE = re.compile(r"\blevel\s+(\d+)", re.IGNORECASE)
_WORD_RE = re.compile(r"[a-z0-9]+")

STOPWORDS = frozenset({
    "a", "an", "and", "at", "by", "for", "in", "is", "it", "me", "my",
    "of", "on", "or", "please", "the", "to", "with",
})


@dataclass
class Intent:
    """Recognized target tool (or ``NO_TOOL``) and its arguments."""

    name: str
    mcp_tool_params: dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool(self) -> bool:
        return self.name != NO_TOOL


def extract_entities(text: str) -> dict[str, str]:
    """Find project and customer ids in ``text``."""
    entities: dict[str, str] = {}
    for key, patterns in ENTITY_PATTERNS.items():
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                entities[key] = match.group(1)
                break
    return entities


def extract_arguments(text: str) -> dict[str, Any]:
    """Find tool arguments stated directly in the utterance."""
    args: dict[str, Any] = {}

    match = _CODE_RE.search(text)
    if match:
        args["code"] = match.group(1).upper()

    match = _NAME_RE.search(text)
    if match:
        args["name"] = (match.group(1) or match.group(2)).strip()

    match = _DISCOUNT_RE.search(text)
    if match:
        args["discountValue"] = float(match.group(1))
        unit = match.group(2).lower()
        args["discountType"] = "PERCENTAGE" if unit in ("%", "percent") else "FIXED_AMOUNT"

    match = _LEVEL_RE.search(text)
    if match:
        args["level"] = int(match.group(1))

    return args


def _fold(word: str) -> str:
    # naive plural folding: vouchers -> voucher, campaigns -> campaign
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def normalize(text: str) -> list[str]:
    return [_fold(w) for w in _WORD_RE.findall(text.lower().replace("-", " ").replace("_", " "))]


def _contains_phrase(words: list[str], phrase: list[str]) -> bool:
    size = len(phrase)
    return any(words[i:i + size] == phrase for i in range(len(words) - size + 1))


def _schema_properties(tool: ToolInfo) -> set[str]:
    try:
        schema = json.loads(tool.input_schema or "{}")
    except json.JSONDecodeError:
        return set()
    properties = schema.get("properties", {}) if isinstance(schema, dict) else {}
    return set(properties) if isinstance(properties, dict) else set()


class IntentRecognizer:
    """Recognizes intents against the catalog of an invoker and executes them."""

    def __init__(self, invoker: ToolInvoker):
        self.invoker = invoker
        self._catalog: list[ToolInfo] | None = None

    async def get_catalog(self) -> list[ToolInfo]:
        if self._catalog is None:
            self._catalog = await self.invoker.list_tools()
        return self._catalog

    def invalidate_catalog(self) -> None:
        self._catalog = None

    def select_tool(self, text: str, catalog: list[ToolInfo]) -> ToolInfo | None:
        """First tool whose name words all occur in the utterance, else one whose description holds the utterance."""
        words = normalize(text)
        if not words:
            return None
        word_set = set(words)

        for tool in catalog:
            name_words = normalize(tool.name)
            if name_words and set(name_words) <= word_set:
                return tool

        if word_set <= STOPWORDS:
            return None
        for tool in catalog:
            if _contains_phrase(normalize(tool.description), words):
                return tool
        return None

    async def recognize_intent(self, text: str, context: dict[str, str]) -> Intent:
        """Recognize the intent of ``text``, recording new entities in ``context``."""
        for key, value in extract_entities(text).items():
            if key not in context:
                context[key] = value

        tool = self.select_tool(text, await self.get_catalog())
        if tool is None:
            logger.info("No tool matched", text=text[:50])
            return Intent(name=NO_TOOL)

        accepted = _schema_properties(tool)
        candidates: dict[str, Any] = dict(context)
        candidates.update(extract_arguments(text))
        params = {k: v for k, v in candidates.items() if k in accepted}

        logger.info("Intent recognized", tool=tool.name, params=params)
        return Intent(name=tool.name, mcp_tool_params=params)

    async def execute_tool(self, intent: Intent) -> str:
        """Run the intent's tool and return user-facing text. Never raises."""
        if not intent.has_tool:
            return FALLBACK_RESPONSE

        try:
            result = await self.invoker.call_tool(intent.name, json.dumps(intent.mcp_tool_params))
        except Exception as e:
            logger.error("Tool call failed", tool=intent.name, error=str(e))
            return f"Sorry, I couldn't run {intent.name}: {e}"

        if result.error:
            return f"Sorry, I couldn't run {intent.name}: {result.error}"
        return result.content
