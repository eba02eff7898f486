import logging
from typing import Sequence

from pal.core.errors import GenerationError
from pal.services.providers import GenerationParams, GenerationResult, LLMProvider
from pal.services.retrieval import ContextFragment

logger = logging.getLogger(__name__)

PERSONA_PROMPT = """You are Pal, a friendly and helpful AI assistant. Give natural, conversational answers to the user's questions.

PERSONALITY & TONE:
- Be warm, approachable and genuinely helpful
- Talk the way you would with a friend or colleague
- Avoid stiff phrases such as "Based on the provided text" or "According to the documentation"
- Use simple, clear language and be encouraging

RESPONSE STYLE:
- Open with the answer or the most useful information
- When drawing on reference material, say things like "I see that..." or "From what I know..."
- If you are unsure, say so honestly: "I'm not entirely sure about that, but..."
- Close helpfully, for example "Let me know if you need anything else!"

GUIDELINES:
- Use the available information when it answers the question
- If you lack specific information, say so and offer general guidance
- Be concise but thorough
- Stay solution-oriented"""

CLOSING_PROMPT = "Remember: respond naturally and conversationally, and be genuinely helpful!"


def build_system_prompt(context: Sequence[ContextFragment] | None = None) -> str:
    prompt = PERSONA_PROMPT

    if context:
        references = "\n\n".join(
            f"[{i}] {fragment.content}" for i, fragment in enumerate(context, start=1)
        )
        prompt += f"\n\nHERE'S SOME RELEVANT INFORMATION I FOUND:\n{references}"

    prompt += f"\n\n{CLOSING_PROMPT}"
    return prompt


def format_messages(history: Sequence[dict[str, str]], system_prompt: str) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for msg in history:
        messages.append({"role": msg["role"], "content": msg["content"]})
    return messages


class ResponseGenerator:
    """Grounds the conversation in retrieved context and calls the selected provider."""

    def __init__(self, provider: LLMProvider, default_params: GenerationParams | None = None):
        self.provider = provider
        self.default_params = default_params or GenerationParams()

    async def generate(
        self,
        history: Sequence[dict[str, str]],
        context: Sequence[ContextFragment] | None = None,
        params: GenerationParams | None = None,
    ) -> GenerationResult:
        messages = format_messages(history, build_system_prompt(context))
        try:
            return await self.provider.generate(messages, params or self.default_params)
        except GenerationError:
            raise
        except Exception as e:
            logger.error("Error generating LLM response: %s", e)
            raise GenerationError(str(e) or "Unknown error occurred") from e
