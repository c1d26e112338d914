"""Test per-character profile generation."""
import asyncio
import json

import httpx
import pytest
from conftest import FakeLLMClient, book_responder, detail_json, detail_name, prompt_kind, reply
from execution.llm_client import LLMTransportError, OpenAICompatibleClient
from extraction.budget import compute_budget
from extraction.character_detailer import CharacterDetailer, is_item_failure, validate_detail
from extraction.models import CharacterRole, CharacterSummary, Roster
from extraction.repair import ResponseParseError, ResponseValidationError

BUDGET = compute_budget(32000)


def make_roster(names):
    return Roster(
        book_title="Test",
        characters=[CharacterSummary(name=n, role="supporting", brief_description=f"{n} is here") for n in names],
    )


def test_validate_detail_forces_roster_name_and_role():
    """Test that the roster supplies the name and a missing role."""
    character = CharacterSummary(name="Ann", role="mentor", brief_description="")

    detail = validate_detail({"name": "Annie B.", "background": "Sailor"}, character)

    assert detail.name == "Ann"
    assert detail.role == CharacterRole.MENTOR
    assert detail.background == "Sailor"


def test_validate_detail_unwraps_envelopes():
    """Test that list and character wrappers around a profile are unwrapped."""
    character = CharacterSummary(name="Ann", role="mentor", brief_description="")

    assert validate_detail([{"background": "A"}], character).background == "A"
    assert validate_detail({"character": {"background": "B"}}, character).background == "B"
    with pytest.raises(ResponseValidationError):
        validate_detail(["a", "b"], character)


def test_item_failures():
    """Test which errors count as a failed profile attempt."""
    assert is_item_failure(LLMTransportError("down"))
    assert is_item_failure(ResponseParseError("bad"))
    assert not is_item_failure(ValueError("bug"))


@pytest.mark.asyncio
async def test_detail_all_keeps_roster_order(policy, fast_retry):
    """Test that profiles come back in roster order whatever finishes first."""
    async def respond(prompt, allow_empty):
        name = detail_name(prompt)
        # First character answers last
        await asyncio.sleep(0.02 if name == "Ann" else 0)
        return reply(detail_json(name))

    client = FakeLLMClient(respond)
    detailer = CharacterDetailer(client, "m", BUDGET, policy, max_parallel=3, retry_handler=fast_retry)

    details = await detailer.detail_all(make_roster(["Ann", "Bo", "Cy"]), "book text")

    assert [d.name for d in details] == ["Ann", "Bo", "Cy"]
    assert len(client.calls_of("detail")) == 3


@pytest.mark.asyncio
async def test_failed_character_is_isolated(policy, fast_retry):
    """Test that one unusable profile becomes None without sinking the batch."""
    client = FakeLLMClient(book_responder(["Ann", "Bo", "Cy"], failing={"Bo"}))
    detailer = CharacterDetailer(client, "m", BUDGET, policy, max_parallel=2, retry_handler=fast_retry)

    details = await detailer.detail_all(make_roster(["Ann", "Bo", "Cy"]), "book text")

    assert details[0].name == "Ann"
    assert details[1] is None
    assert details[2].name == "Cy"
    # Bo was attempted max_retries times from scratch
    assert [detail_name(p) for p in client.calls_of("detail")].count("Bo") == policy.max_retries


@pytest.mark.asyncio
async def test_truncated_profile_is_continued(policy, fast_retry):
    """Test that a cut-off profile is completed with a continuation call."""
    full = detail_json("Ann")

    def respond(prompt, allow_empty):
        if prompt_kind(prompt) == "continuation":
            return reply(full[100:])
        return reply(full[:100], "length")

    client = FakeLLMClient(respond)
    detailer = CharacterDetailer(client, "m", BUDGET, policy, max_parallel=1, retry_handler=fast_retry)

    detail = await detailer.detail_one(make_roster(["Ann"]).characters[0], [], "book text")

    assert detail.background == "Ann grew up by the sea."
    assert detail.first_messages == ["*waves* \"Hello.\""]
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_transient_error_is_retried(policy, fast_retry):
    """Test that a timed-out profile request is retried."""
    failures = [LLMTransportError("timed out")]

    def respond(prompt, allow_empty):
        if failures:
            raise failures.pop()
        return reply(detail_json("Ann"))

    client = FakeLLMClient(respond)
    detailer = CharacterDetailer(client, "m", BUDGET, policy, max_parallel=1, retry_handler=fast_retry)

    detail = await detailer.detail_one(make_roster(["Ann"]).characters[0], [], "book text")

    assert detail.name == "Ann"
    assert len(client.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_body", [
    {"choices": [{"message": "plain string message"}]},
    {"choices": [{"message": {"content": {"oops": 1}}}]},
])
async def test_malformed_provider_reply_is_isolated(policy, fast_retry, bad_body):
    """Test that an unusable provider envelope fails only its own character."""
    def handler(request: httpx.Request):
        prompt = json.loads(request.content)["messages"][0]["content"]
        name = detail_name(prompt)
        if name == "Bo":
            return httpx.Response(200, json=bad_body)
        return httpx.Response(200, json={"choices": [{"message": {"content": detail_json(name)}, "finish_reason": "stop"}]})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with OpenAICompatibleClient(api_key="sk-test", base_url="https://llm.example/v1/", http_client=http_client) as client:
        detailer = CharacterDetailer(client, "m", BUDGET, policy, max_parallel=2, retry_handler=fast_retry)
        details = await detailer.detail_all(make_roster(["Ann", "Bo", "Cy"]), "book text")

    assert details[0].name == "Ann"
    assert details[1] is None
    assert details[2].name == "Cy"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
