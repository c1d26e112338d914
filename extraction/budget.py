"""Context budget calculation.

Sizes are estimated with a fixed characters-per-token ratio rather than a
real tokenizer. This underestimates tokens for non-English or code-heavy
text; callers needing exact token accounting must not rely on it.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict

import config


class ContextBudget(BaseModel):
    """Size limits derived from one model's context window."""
    model_config = ConfigDict(frozen=True)

    context_length_tokens: int
    safe_input_tokens: int
    max_chars_for_input: int
    max_response_tokens: int

    @property
    def chunk_tokens(self) -> int:
        """Per-chunk token allowance during reduction."""
        return max(1, int(self.safe_input_tokens * config.CHUNK_FILL_RATIO))

    @property
    def chunk_chars(self) -> int:
        return self.chunk_tokens * config.CHARS_PER_TOKEN

    def fits(self, text: str) -> bool:
        return len(text) <= self.max_chars_for_input


def compute_budget(
    context_length_tokens: Optional[int] = None,
    max_completion_tokens: Optional[int] = None
) -> ContextBudget:
    """Derive a ContextBudget from model metadata.

    Args:
        context_length_tokens: Model context window (DEFAULT_CONTEXT_LENGTH if None)
        max_completion_tokens: Provider-declared output cap, if any

    Returns:
        ContextBudget

    Raises:
        ValueError: If the context length is not positive
    """
    if context_length_tokens is None:
        context_length_tokens = config.DEFAULT_CONTEXT_LENGTH
    if context_length_tokens <= 0:
        raise ValueError(f"Context length must be positive, got {context_length_tokens}")

    safe_input_tokens = int(context_length_tokens * config.CONTEXT_INPUT_RATIO)

    response_caps = [config.MAX_RESPONSE_TOKENS, context_length_tokens - safe_input_tokens]
    if max_completion_tokens:
        response_caps.append(max_completion_tokens)

    return ContextBudget(
        context_length_tokens=context_length_tokens,
        safe_input_tokens=safe_input_tokens,
        max_chars_for_input=safe_input_tokens * config.CHARS_PER_TOKEN,
        max_response_tokens=max(1, min(response_caps)),
    )
