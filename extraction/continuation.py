"""Continuation of length-truncated replies."""
from typing import Awaitable, Callable, TypeVar

from execution.llm_client import Completion
from extraction import prompts
from extraction.repair import IncompleteResponseError, ResponseParseError
from utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")

# send(prompt, allow_empty) -> Completion
Sender = Callable[[str, bool], Awaitable[Completion]]
# validate(buffer, allow_truncation_repair) -> parsed record, raising ResponseParseError
Validator = Callable[[str, bool], T]


class ContinuationController:
    """Keeps asking for more when a reply was cut off at the output limit.

    The accumulated buffer is re-validated after every continuation. While the
    provider still reports truncation only lossless repair is allowed, so a
    reply is never bracket-closed while the rest of it may still arrive. A reply
    still truncated when the continuations run out is an error; only an empty
    continuation lets the partial buffer be salvaged by bracket-closing.
    """

    def __init__(self, send: Sender, max_continuations: int):
        self.send = send
        self.max_continuations = max_continuations

    async def complete(self, prompt: str, validate: Validator, label: str = "Request") -> T:
        """Request ``prompt`` and return the first buffer ``validate`` accepts.

        Raises:
            ResponseParseError: The reply was complete but unusable
            IncompleteResponseError: The reply was truncated and continuations did not fix it
        """
        completion = await self.send(prompt, False)
        buffer = completion.content
        truncated = completion.truncated

        try:
            return validate(buffer, not truncated)
        except ResponseParseError as e:
            original_error = e

        if not truncated:
            raise original_error

        last_error = original_error
        continuations = 0
        exhausted = False
        while truncated:
            if continuations >= self.max_continuations:
                exhausted = True
                break
            continuations += 1
            logger.warning(
                f"{label}: reply truncated at {len(buffer)} chars, "
                f"continuation {continuations}/{self.max_continuations}"
            )
            completion = await self.send(prompts.continuation_prompt(prompt, buffer), True)
            if not completion.content:
                logger.warning(f"{label}: provider returned an empty continuation")
                break

            buffer += completion.content
            truncated = completion.truncated
            try:
                return validate(buffer, not truncated)
            except ResponseParseError as e:
                last_error = e

        if truncated and not exhausted:
            # Provider has nothing left to send: accept whatever bracket-closing can salvage
            try:
                result = validate(buffer, True)
                logger.warning(f"{label}: using a partial reply after {continuations} continuation(s)")
                return result
            except ResponseParseError as e:
                last_error = e

        raise IncompleteResponseError(label, continuations, original_error, last_error)
