"""Test continuation of truncated replies."""
import json

import pytest
from conftest import reply
from extraction.continuation import ContinuationController
from extraction.repair import IncompleteResponseError, ResponseParseError, parse_model_json


class ScriptedSender:
    """Returns queued completions in order and records prompts."""

    def __init__(self, completions):
        self.completions = list(completions)
        self.prompts = []

    async def __call__(self, prompt, allow_empty):
        self.prompts.append((prompt, allow_empty))
        return self.completions.pop(0)


def validate_dict(content, allow_truncation_repair):
    data = parse_model_json(content, allow_truncation_repair)
    if not isinstance(data, dict) or "done" not in data:
        raise ResponseParseError("missing 'done'", "missing", "missing")
    return data


@pytest.mark.asyncio
async def test_complete_reply_needs_no_continuation():
    sender = ScriptedSender([reply('{"done": true}')])

    result = await ContinuationController(sender, 3).complete("PROMPT", validate_dict)

    assert result == {"done": True}
    assert len(sender.prompts) == 1


@pytest.mark.asyncio
async def test_truncated_reply_is_continued_and_appended():
    full = json.dumps({"items": list(range(30)), "done": True})
    sender = ScriptedSender([
        reply(full[:20], "length"),
        reply(full[20:40], "length"),
        reply(full[40:], "stop"),
    ])

    result = await ContinuationController(sender, 3).complete("PROMPT", validate_dict)

    assert result == {"items": list(range(30)), "done": True}
    assert len(sender.prompts) == 3
    # Continuations carry the original prompt and the partial reply so far
    second_prompt, allow_empty = sender.prompts[2]
    assert second_prompt.startswith("PROMPT")
    assert full[:40] in second_prompt
    assert allow_empty is True


@pytest.mark.asyncio
async def test_stops_after_max_continuations_with_both_errors():
    sender = ScriptedSender(
        [reply('{"items": [1', "length")] + [reply(", 2", "length") for _ in range(5)]
    )

    with pytest.raises(IncompleteResponseError) as exc_info:
        await ContinuationController(sender, 2).complete("PROMPT", validate_dict, label="Test")

    assert len(sender.prompts) == 3  # initial call + exactly 2 continuations
    error = exc_info.value
    assert error.continuations == 2
    assert "Last error" in str(error) and "Original error" in str(error)
    assert error.original_error and error.repair_error


@pytest.mark.asyncio
async def test_empty_continuation_ends_loop_then_salvages():
    sender = ScriptedSender([
        reply('{"done": true, "items": [1, 2', "length"),
        reply("", "stop"),
    ])

    result = await ContinuationController(sender, 5).complete("PROMPT", validate_dict)

    assert result == {"done": True, "items": [1, 2]}
    assert len(sender.prompts) == 2


@pytest.mark.asyncio
async def test_untruncated_parse_failure_is_not_continued():
    sender = ScriptedSender([reply("no json here", "stop")])

    with pytest.raises(ResponseParseError) as exc_info:
        await ContinuationController(sender, 3).complete("PROMPT", validate_dict)

    assert not isinstance(exc_info.value, IncompleteResponseError)
    assert len(sender.prompts) == 1


@pytest.mark.asyncio
async def test_salvageable_buffer_is_not_used_once_continuations_run_out():
    """Test that a still-truncated reply fails at the bound even if bracket-closing could fix it."""
    sender = ScriptedSender(
        [reply('{"done": true, "items": [1', "length")] + [reply(", 2", "length") for _ in range(2)]
    )

    with pytest.raises(IncompleteResponseError) as exc_info:
        await ContinuationController(sender, 2).complete("PROMPT", validate_dict, label="Test")

    assert len(sender.prompts) == 3
    assert exc_info.value.continuations == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
