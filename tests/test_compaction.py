"""
Tests for conversation compaction.
"""

from da_assistant.agent.compaction import CompactionConfig, build_summary, plan_compaction
from da_assistant.agent.tokens import TokenCounter
from da_assistant.llm.base import LLMMessage


def _history(turns: int, size: int = 200) -> list[LLMMessage]:
    messages = []
    for i in range(turns):
        messages.append(LLMMessage(role="user", content=f"question {i} " + "q" * size))
        messages.append(LLMMessage(role="assistant", content=f"answer {i} " + "a" * size))
    return messages


def test_no_compaction_under_budget():
    """Test a short history is left alone."""
    counter = TokenCounter(use_encoder=False)
    messages = _history(2, size=10)

    result = plan_compaction(messages, None, counter, CompactionConfig(max_context_tokens=1000))

    assert not result.compacted
    assert result.folded_count == 0
    assert result.summary is None


def test_compaction_keeps_recent_window():
    """Test everything but the recent window is folded."""
    counter = TokenCounter(use_encoder=False)
    messages = _history(10)
    config = CompactionConfig(max_context_tokens=200, recent_messages_count=4)

    result = plan_compaction(messages, None, counter, config)

    assert result.compacted
    assert result.folded_count == len(messages) - 4
    assert result.summary.startswith("This conversation includes 16 older messages")
    assert "question 0" in result.summary


def test_no_compaction_when_only_recent_messages():
    """Test a history no longer than the window is never folded."""
    counter = TokenCounter(use_encoder=False)
    messages = _history(2, size=2000)
    config = CompactionConfig(max_context_tokens=10, recent_messages_count=4)

    result = plan_compaction(messages, "earlier summary", counter, config)

    assert not result.compacted
    assert result.summary == "earlier summary"


def test_summary_is_deterministic():
    """Test the same input gives the same summary."""
    counter = TokenCounter(use_encoder=False)
    messages = _history(10)
    config = CompactionConfig(max_context_tokens=200, recent_messages_count=4)

    first = plan_compaction(messages, "before", counter, config)
    second = plan_compaction(messages, "before", counter, config)

    assert first.summary == second.summary


def test_summary_carries_previous_and_fits_budget():
    """Test the previous summary is kept within the summary budget."""
    counter = TokenCounter(use_encoder=False)
    config = CompactionConfig(max_context_tokens=400)
    folded = _history(3, size=50)

    summary = build_summary("Earlier: the user asked about tiers.", folded, counter, config)

    assert summary.startswith("Earlier: the user asked about tiers.")
    assert counter.count_tokens(summary) <= config.summary_token_limit


def test_summary_lists_key_facts():
    """Test user statements with key markers are kept."""
    counter = TokenCounter(use_encoder=False)
    folded = [
        LLMMessage(role="user", content="Remember that our project is p-77"),
        LLMMessage(role="assistant", content="Noted."),
    ]

    summary = build_summary(None, folded, counter, CompactionConfig())

    assert "Key information:" in summary
    assert "Remember that our project is p-77" in summary


def test_disabled_compaction():
    """Test compaction can be switched off."""
    counter = TokenCounter(use_encoder=False)
    config = CompactionConfig(max_context_tokens=10, recent_messages_count=1, enabled=False)

    assert not plan_compaction(_history(5), None, counter, config).compacted
