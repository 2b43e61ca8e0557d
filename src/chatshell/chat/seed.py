"""Sample conversations loaded into a fresh console session."""

from __future__ import annotations

from typing import Sequence

from .models import ChatRole
from .responses import synthesize_response
from .thread_store import ThreadStore

SampleThread = tuple[str, Sequence[tuple[ChatRole, str]]]

_QUESTIONS: Sequence[tuple[str, str | None]] = (
    ("Empty Chat", None),
    (
        "JavaScript promises",
        "Can you explain how promises and async/await relate to each other?",
    ),
    (
        "API Integration Help",
        "What are the best practices for API design? I'm building a REST API for a "
        "mobile app and want it to stay maintainable.",
    ),
    (
        "React Components Design",
        "How do I create a reusable button component in React with variants like "
        "primary, secondary and danger?",
    ),
)


def sample_threads() -> list[SampleThread]:
    """Oldest first, each question paired with the reply the store would give."""

    samples: list[SampleThread] = []
    for title, question in _QUESTIONS:
        turns: list[tuple[ChatRole, str]] = []
        if question is not None:
            turns = [("user", question), ("assistant", synthesize_response(question))]
        samples.append((title, turns))
    return samples


def seed_store(store: ThreadStore) -> list[str]:
    return store.seed(sample_threads())
