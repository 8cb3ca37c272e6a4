"""
Prompt construction for the sales and support reply paths.
"""

from __future__ import annotations

from typing import Any, Sequence

GERMAN_INSTRUCTION = "\n\nIMPORTANT: Respond ONLY in German. All responses must be in German language."

STRUCTURED_REPLY_INSTRUCTIONS = """

CRITICAL: You must return your response as a valid JSON object with the following EXACT structure (no additional text, only valid JSON):
{
  "response": "Your sales responses in A, B, C format (e.g., 'Response A: ...\\nResponse B: ...\\nResponse C: ...')",
  "keyHighlights": {
    "budget": "budget information explicitly mentioned by customer" or null,
    "timeline": "timeline information explicitly mentioned by customer" or null,
    "objections": "customer objections or concerns explicitly mentioned" or null,
    "importantInfo": "other important information explicitly mentioned" or null
  }
}

IMPORTANT for key highlights:
- Only extract information that is EXPLICITLY mentioned by the customer in their query
- Return null for fields where no relevant information is found
- Keep extracted text concise but meaningful
- Do NOT make assumptions or add information not mentioned
- The "response" field must contain your sales responses in the exact format: "Response A: ...\\nResponse B: ...\\nResponse C: ..."
- Return ONLY the JSON object, no additional text or markdown formatting"""

GENERAL_SALES_PROMPT = "You are a sales assistant. Be persuasive and helpful. Keep responses short."
SUPPORT_PROMPT = "You are a helpful customer support assistant. Be empathetic and provide clear solutions."


def with_language(prompt: str, language: str = "en-US") -> str:
    if language == "de-DE":
        return prompt + GERMAN_INSTRUCTION
    return prompt


def history_block(history: Sequence[Any], max_turns: int = 5) -> str:
    """
    Render the most recent turns.

    Entries need `user_input` and `prior_response` attributes.
    """
    if not history:
        return ""

    lines = ["", "", "CONVERSATION HISTORY:"]
    for index, turn in enumerate(list(history)[-max_turns:]):
        lines.append(f"Previous {index + 1}:")
        lines.append(f"Customer: {turn.user_input}")
        lines.append(f"Your Response: {turn.prior_response}")
        lines.append("")
    lines.append(
        "Use this conversation history to provide contextually relevant responses "
        "that build on previous interactions."
    )
    return "\n".join(lines)


def structured(system_prompt: str) -> str:
    """Ask for the JSON reply payload on top of `system_prompt`."""
    return system_prompt + STRUCTURED_REPLY_INSTRUCTIONS


def _example(index: int, related: Any) -> str:
    answers = {option.label: option.text for option in related.answers}
    return (
        f"Example {index}:\n"
        f"Q: {related.matched_question}\n"
        f"A: {answers.get('A', '')}\n"
        f"B: {answers.get('B', '')}\n"
        f"C: {answers.get('C', '')}\n"
        f"Category: {related.category}"
    )


def sales_system_prompt(
    related: Sequence[Any],
    history: Sequence[Any] = (),
    language: str = "en-US",
    max_turns: int = 5,
) -> str:
    """Sales prompt seeded with related corpus answers as style examples."""
    examples = "\n\n".join(_example(i + 1, r) for i, r in enumerate(related))
    prompt = (
        "You are an expert sales assistant. You have access to a database of proven sales responses.\n"
        "Here are some related sales scenarios and their successful responses:\n"
        f"{examples}"
        f"{history_block(history, max_turns)}\n\n"
        "Your task: Analyze the customer's question and provide 3 persuasive sales responses "
        "(A, B, C format) that are relevant to their specific concern. Use the context above to "
        "understand the sales approach and tone. Consider the conversation history to provide "
        "contextually relevant responses."
    )
    return with_language(prompt, language)


def sales_user_prompt(question: str, language: str = "en-US") -> str:
    prompt = (
        f'Customer asked: "{question}".\n'
        "Based on the sales context above and conversation history, provide 3 short, persuasive "
        "sales responses (A, B, C format) that directly address their question. Make sure each "
        "response is different and covers different angles of persuasion."
    )
    return with_language(prompt, language)


def general_system_prompt(history: Sequence[Any] = (), language: str = "en-US", max_turns: int = 5) -> str:
    return with_language(GENERAL_SALES_PROMPT + history_block(history, max_turns), language)


def general_user_prompt(transcript: str, language: str = "en-US") -> str:
    prompt = (
        f'Customer: "{transcript}". Give 3 short sales responses (A, B, C format). '
        "Consider the conversation history to provide contextually relevant responses."
    )
    return with_language(prompt, language)


def support_system_prompt(language: str = "en-US") -> str:
    return with_language(SUPPORT_PROMPT, language)


def support_user_prompt(transcript: str, language: str = "en-US") -> str:
    prompt = (
        f'Customer said: "{transcript}". Please provide a helpful response. '
        "Keep it concise and professional."
    )
    return with_language(prompt, language)
