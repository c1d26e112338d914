"""Shared fixtures: a scripted LLM client and fast retry settings."""
import inspect
import json
import re
from typing import Callable, List, Optional

import pytest

from execution.llm_client import BaseLLMClient, Completion, ModelInfo
from execution.retry_handler import RetryHandler
from extraction.models import PipelinePolicy

CONTINUATION_MARKER = "Your previous reply was cut off"
SUMMARY_MARKER = "Summarize this excerpt"
ROSTER_MARKER = "identify its main characters"
DETAIL_PATTERN = re.compile(r"Write a detailed character profile for (.+?) from the book below")


def prompt_kind(prompt: str) -> str:
    if CONTINUATION_MARKER in prompt:
        return "continuation"
    if prompt.startswith(SUMMARY_MARKER):
        return "summary"
    if DETAIL_PATTERN.search(prompt):
        return "detail"
    if ROSTER_MARKER in prompt:
        return "roster"
    return "unknown"


def detail_name(prompt: str) -> Optional[str]:
    match = DETAIL_PATTERN.search(prompt)
    return match.group(1) if match else None


def reply(content: str, finish_reason: str = "stop") -> Completion:
    return Completion(content=content, finish_reason=finish_reason)


def roster_json(names: List[str], title: str = "The Test Book") -> str:
    return json.dumps({
        "bookTitle": title,
        "characters": [
            {"name": name, "role": "protagonist" if i == 0 else "supporting", "briefDescription": f"{name} is here"}
            for i, name in enumerate(names)
        ],
        "worldInfo": {
            "setting": "A small harbour town",
            "locations": [{"name": "The Docks", "description": "Busy", "keywords": ["docks", "Harbour Row"]}],
            "factions": [],
            "items": [],
            "concepts": [],
        },
    })


def detail_json(name: str) -> str:
    return json.dumps({
        "name": name,
        "role": "supporting",
        "background": f"{name} grew up by the sea.",
        "physicalDescription": "Tall.",
        "personality": "Stubborn.",
        "commonPhrases": ["Aye."],
        "scenario": "{{user}} meets them at the docks.",
        "firstMessages": ["*waves* \"Hello.\""],
        "exampleDialogue": "{{user}}: Hi\n{{char}}: Hello",
        "tags": ["sailor"],
        "canBePersona": False,
    })


class FakeLLMClient(BaseLLMClient):
    """Answers chat calls from a responder function and records every prompt.

    The responder receives (prompt, allow_empty) and returns a Completion,
    raises, or returns an awaitable of either.
    """

    def __init__(self, responder: Callable, models: Optional[List[ModelInfo]] = None):
        self.responder = responder
        self.models = models or []
        self.calls: List[str] = []

    async def chat(self, model, prompt, max_tokens, allow_empty=False):
        self.calls.append(prompt)
        result = self.responder(prompt, allow_empty)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def list_models(self):
        return self.models

    def calls_of(self, kind: str) -> List[str]:
        return [p for p in self.calls if prompt_kind(p) == kind]


def book_responder(names: List[str], failing: Optional[set] = None) -> Callable:
    """Responder for a well-behaved model; characters in ``failing`` always get prose."""
    failing = failing or set()

    def _respond(prompt, allow_empty):
        kind = prompt_kind(prompt)
        if kind == "summary":
            return reply("A short summary.")
        if kind == "roster":
            return reply(roster_json(names))
        if kind == "detail":
            name = detail_name(prompt)
            if name in failing:
                return reply("I'm sorry, I can't help with that.")
            return reply(detail_json(name))
        raise AssertionError(f"Unexpected prompt: {prompt[:80]}")

    return _respond


@pytest.fixture
def policy():
    return PipelinePolicy(max_retries=3, max_continuations=2, max_reduction_passes=3)


@pytest.fixture
def fast_retry():
    return RetryHandler(max_retries=3, base_delay=0, max_delay=0)
