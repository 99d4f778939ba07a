from __future__ import annotations

"""Prompt assembly for knowledge-grounded chat completions."""

from earthie.rag.types import ChatMessage, CompletionRequest, RetrievalResult

CONTEXT_SEPARATOR = "\n\n---\n\n"

SYSTEM_PROMPT = (
    "### Context and Role\n"
    "- You are Earthie, Earth2's first AI companion. "
    "You help players understand Earth2: tiles and properties, Essence, Jewels, "
    "Civilians, Raiding, Droids, resources and the wider metaverse roadmap.\n"
    "- Be friendly and enthusiastic, but stay factual.\n"
    "### Response Rules\n"
    "- Keep responses concise: a short paragraph or a few bullets.\n"
    "- Base answers on the provided Earth2 knowledge. "
    "If the knowledge does not cover the question, say you don't know "
    "instead of guessing.\n"
    "- Do not invent prices, dates, or release timelines.\n"
    "- When you rely on the knowledge, mention the topic it came from; "
    "do not quote long passages verbatim.\n"
    "- Never give financial advice."
)

_AUGMENTED_TEMPLATE = (
    "Use the following Earth2 knowledge to answer the question at the end.\n\n"
    "Knowledge:\n"
    "{context}\n\n"
    "Question: {question}"
)


class PromptError(ValueError):
    """Raised when a prompt cannot be assembled from the given input."""
    pass


def build_context_block(results: list[RetrievalResult]) -> str:
    """Join retrieved passages in retrieval order."""
    return CONTEXT_SEPARATOR.join(result.content for result in results)


def build_augmented_prompt(question: str, results: list[RetrievalResult]) -> str:
    """Wrap the question and retrieved knowledge in the instruction template."""
    if not question.strip():
        raise PromptError("Question must not be empty")
    return _AUGMENTED_TEMPLATE.format(
        context=build_context_block(results),
        question=question,
    )


def assemble_request(
    messages: list[ChatMessage],
    results: list[RetrievalResult],
    system_prompt: str = SYSTEM_PROMPT,
) -> CompletionRequest:
    """Keep prior turns verbatim and replace the last one with the augmented prompt."""
    if not messages:
        raise PromptError("At least one message is required")
    question = messages[-1].content
    augmented = ChatMessage(role="user", content=build_augmented_prompt(question, results))
    return CompletionRequest(
        system_prompt=system_prompt,
        messages=[*messages[:-1], augmented],
    )
