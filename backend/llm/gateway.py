"""
Model gateway: the two external model capabilities the server depends on.

Handlers only talk to ``ModelGateway``. ``OpenAIModelGateway`` goes over the
network; ``FakeModelGateway`` answers deterministically for tests and for
local runs with MODEL_BACKEND=fake.
"""
import abc
import json
import logging
import re
from typing import List, Optional, Tuple

import openai

from errors import UpstreamAuthFailure, UpstreamFailure
from .openai_audio import transcribe_audio_file, TODO_TRANSCRIPTION_PROMPT
from .openai_client import complete_chat

logger = logging.getLogger(__name__)


class ModelGateway(abc.ABC):

    @abc.abstractmethod
    async def transcribe(self, audio_path: str) -> str:
        """Speech-to-text for an audio file on disk, English output."""

    @abc.abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Single-turn chat completion returning the raw assistant text."""


class OpenAIModelGateway(ModelGateway):

    def __init__(self, transcription_model: str = "whisper-1", extraction_model: str = "gpt-3.5-turbo"):
        self.transcription_model = transcription_model
        self.extraction_model = extraction_model

    async def transcribe(self, audio_path: str) -> str:
        try:
            return await transcribe_audio_file(
                audio_path,
                model=self.transcription_model,
                language="en",
                prompt=TODO_TRANSCRIPTION_PROMPT,
            )
        except Exception as e:
            raise _as_upstream_error(e) from e

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            return await complete_chat(system_prompt, user_prompt, model=self.extraction_model)
        except Exception as e:
            raise _as_upstream_error(e) from e


def _as_upstream_error(error: Exception) -> UpstreamFailure:
    if isinstance(error, openai.AuthenticationError):
        return UpstreamAuthFailure()
    if isinstance(error, ValueError) and "API_KEY" in str(error):
        return UpstreamAuthFailure()
    logger.error(f"Model call failed: {type(error).__name__}: {error}")
    return UpstreamFailure()


class FakeModelGateway(ModelGateway):
    """
    Deterministic stand-in for the OpenAI models.

    Without a canned ``completion`` it splits the user prompt on commas and
    "and" and gives every piece 30 minutes.
    """

    DEFAULT_TRANSCRIPT = "Buy groceries, call mom"

    def __init__(
        self,
        transcript: Optional[str] = None,
        completion: Optional[str] = None,
        transcribe_error: Optional[Exception] = None,
        complete_error: Optional[Exception] = None,
    ):
        self.transcript = self.DEFAULT_TRANSCRIPT if transcript is None else transcript
        self.completion = completion
        self.transcribe_error = transcribe_error
        self.complete_error = complete_error
        # (path, bytes) for every transcribed file, captured while the file exists
        self.transcribed_files: List[Tuple[str, bytes]] = []
        self.prompts: List[Tuple[str, str]] = []

    async def transcribe(self, audio_path: str) -> str:
        with open(audio_path, "rb") as f:
            self.transcribed_files.append((audio_path, f.read()))
        if self.transcribe_error:
            raise self.transcribe_error
        return self.transcript

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append((system_prompt, user_prompt))
        if self.complete_error:
            raise self.complete_error
        if self.completion is not None:
            return self.completion
        parts = [p.strip(" .") for p in re.split(r',|\band\b', user_prompt)]
        tasks = [{"title": p[:1].upper() + p[1:], "estimatedTime": 30} for p in parts if p]
        return json.dumps(tasks)


def create_model_gateway(config) -> ModelGateway:
    if config.MODEL_BACKEND == "fake":
        logger.warning("Using FakeModelGateway - audio is not sent to any model")
        return FakeModelGateway()
    return OpenAIModelGateway(
        transcription_model=config.TRANSCRIPTION_MODEL,
        extraction_model=config.EXTRACTION_MODEL,
    )
