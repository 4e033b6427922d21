"""
OpenAI audio transcription module.
Handles audio file transcription using OpenAI Whisper API.
"""
import os
import logging
from typing import Optional
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

TODO_TRANSCRIPTION_PROMPT = "This is a todo list. The audio will contain tasks in English."


async def transcribe_audio_file(
    audio_file_path: str,
    model: str = "whisper-1",
    language: Optional[str] = "en",
    prompt: Optional[str] = TODO_TRANSCRIPTION_PROMPT
) -> str:
    """
    Transcribe audio file using OpenAI Whisper API.

    Args:
        audio_file_path: Path to the audio file to transcribe
        model: Whisper model to use (default: whisper-1)
        language: Language code (default: en). Set to None for auto-detection.
        prompt: Hint text that steers vocabulary and style

    Returns:
        The transcribed text

    Raises:
        ValueError: If OPENAI_API_KEY is not configured
        openai.OpenAIError: For OpenAI API errors (auth, rate limits, network issues, etc.)
    """
    api_key = os.environ.get('OPENAI_API_KEY')
    if not api_key:
        raise ValueError("OPENAI_API_KEY not configured")

    client = AsyncOpenAI(api_key=api_key)

    kwargs = {"model": model, "response_format": "json"}
    if language:
        kwargs["language"] = language
    if prompt:
        kwargs["prompt"] = prompt

    try:
        with open(audio_file_path, "rb") as audio_file:
            transcript = await client.audio.transcriptions.create(file=audio_file, **kwargs)
    except Exception as e:
        logger.error(f"OpenAI Whisper transcription error: {str(e)}")
        raise

    # Handle both dict and object access
    if isinstance(transcript, dict):
        return transcript.get("text", "")
    return getattr(transcript, "text", "")
