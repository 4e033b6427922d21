"""
OpenAI client wrapper for chat completions.
"""
import os
import logging
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


async def complete_chat(
    system_prompt: str,
    user_prompt: str,
    model: str = "gpt-3.5-turbo",
    temperature: float = 0.7
) -> str:
    """
    Run a single system+user chat completion and return the raw message text.

    The task array is not a JSON object, so ``response_format`` is left unset
    and parsing is the caller's job.

    Args:
        system_prompt: System message for the model
        user_prompt: User message/input
        model: OpenAI model to use (default: gpt-3.5-turbo)
        temperature: Sampling temperature (default: 0.7)

    Returns:
        The assistant message content

    Raises:
        ValueError: If API key is not configured or the response is empty
        openai.OpenAIError: For OpenAI API errors
    """
    api_key = os.environ.get('OPENAI_API_KEY')
    if not api_key:
        raise ValueError("OPENAI_API_KEY not configured")

    client = AsyncOpenAI(api_key=api_key)

    try:
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            temperature=temperature,
        )
    except Exception as e:
        logger.error(f"OpenAI API error: {str(e)}")
        raise

    response_text = response.choices[0].message.content if response.choices else None
    if not response_text:
        logger.error("OpenAI returned empty response")
        raise ValueError("Empty response from OpenAI API")
    return response_text
