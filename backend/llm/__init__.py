"""LLM client modules."""
from .openai_client import complete_chat
from .openai_audio import transcribe_audio_file
from .gateway import ModelGateway, OpenAIModelGateway, FakeModelGateway, create_model_gateway

__all__ = [
    "complete_chat",
    "transcribe_audio_file",
    "ModelGateway",
    "OpenAIModelGateway",
    "FakeModelGateway",
    "create_model_gateway",
]
