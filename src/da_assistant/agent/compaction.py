"""
Conversation compaction - folds older messages into a running summary.

When the active history of a session grows past the token budget, every
message except a trailing window of recent ones is condensed into a
summary, which the model receives in their place. The summary is built
deterministically from the folded messages, so compacting the same history
twice yields the same text.
"""

import re
from dataclasses import dataclass

import structlog

from ..llm.base import LLMMessage
from .tokens import TokenCounter

logger = structlog.get_logger()

DEFAULT_MAX_CONTEXT_TOKENS = 8000
DEFAULT_RECENT_MESSAGES = 20
EXCERPT_CHARS = 150
MAX_EXCERPTS = 10

_SPACE_RE = re.compile(r"\s+")

_FACT_MARKERS = (
    "my name is", "i work", "i prefer", "remember that", "don't forget",
    "important:", "project", "voucher", "campaign", "tier",
)


@dataclass
class CompactionConfig:
    """Configuration for conversation compaction."""

    max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS
    recent_messages_count: int = DEFAULT_RECENT_MESSAGES
    excerpt_chars: int = EXCERPT_CHARS
    max_excerpts: int = MAX_EXCERPTS
    enabled: bool = True

    @property
    def summary_token_limit(self) -> int:
        return max(1, self.max_context_tokens // 4)


@dataclass
class CompactionResult:
    """Outcome of a compaction check."""

    summary: str | None
    folded_count: int
    tokens_before: int
    compacted: bool


def _excerpt(text: str, limit: int) -> str:
    text = _SPACE_RE.sub(" ", text).strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def _extract_key_facts(messages: list[LLMMessage], config: CompactionConfig) -> list[str]:
    """User statements worth keeping close to verbatim."""
    facts = []
    for msg in messages:
        if msg.role != "user":
            continue
        lowered = msg.content.lower()
        if any(marker in lowered for marker in _FACT_MARKERS):
            facts.append(_excerpt(msg.content, config.excerpt_chars))
    return facts[:config.max_excerpts]


def build_summary(
    previous: str | None,
    folded: list[LLMMessage],
    counter: TokenCounter,
    config: CompactionConfig,
) -> str:
    """Summary covering ``previous`` and the newly ``folded`` messages."""
    topics = [
        _excerpt(m.content, config.excerpt_chars)
        for m in folded
        if m.role == "user" and m.content.strip()
    ][:config.max_excerpts]

    paragraph = (
        f"This conversation includes {len(folded)} older messages where the user and "
        f"assistant discussed: {'; '.join(topics) if topics else 'no user requests'}."
    )

    facts = _extract_key_facts(folded, config)
    if facts:
        paragraph += "\nKey information:\n" + "\n".join(f"  - {fact}" for fact in facts)

    limit = config.summary_token_limit
    paragraph = counter.truncate_to_fit(paragraph, limit)
    if not previous:
        return paragraph

    # Older summary text gives way first
    remaining = limit - counter.count_tokens(paragraph) - counter.count_tokens("\n\n")
    if remaining <= 0:
        return paragraph
    kept = counter.truncate_to_fit(previous, remaining)
    return f"{kept}\n\n{paragraph}" if kept else paragraph


def plan_compaction(
    messages: list[LLMMessage],
    previous_summary: str | None,
    counter: TokenCounter,
    config: CompactionConfig | None = None,
) -> CompactionResult:
    """Decide whether the active ``messages`` must be folded into the summary.

    Returns the new summary and how many leading messages it covers. A
    history within budget, or one no longer than the recent window, is
    left alone.
    """
    config = config or CompactionConfig()
    tokens = counter.count_messages(m.content for m in messages)

    if not config.enabled or tokens <= config.max_context_tokens:
        return CompactionResult(summary=previous_summary, folded_count=0, tokens_before=tokens, compacted=False)

    fold = len(messages) - config.recent_messages_count
    if fold <= 0:
        return CompactionResult(summary=previous_summary, folded_count=0, tokens_before=tokens, compacted=False)

    summary = build_summary(previous_summary, messages[:fold], counter, config)

    logger.info(
        "Compacting conversation",
        message_count=len(messages),
        folded=fold,
        tokens=tokens,
        threshold=config.max_context_tokens,
    )
    return CompactionResult(summary=summary, folded_count=fold, tokens_before=tokens, compacted=True)
