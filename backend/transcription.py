"""
Transcription gateway: data URI in, text out.

The decoded audio only ever lives in a temporary file that is removed
before the caller sees a result or an error.
"""
import base64
import binascii
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Tuple

from errors import InvalidInput, UpstreamFailure

logger = logging.getLogger(__name__)

AUDIO_PREFIX = "data:audio"

# MIME subtype -> file suffix the transcription API recognises
AUDIO_SUFFIXES = {
    "wav": ".wav",
    "x-wav": ".wav",
    "wave": ".wav",
    "webm": ".webm",
    "ogg": ".ogg",
    "mpeg": ".mp3",
    "mp3": ".mp3",
    "mp4": ".mp4",
    "m4a": ".m4a",
    "x-m4a": ".m4a",
    "flac": ".flac",
}


def decode_audio_data_uri(audio: str) -> Tuple[bytes, str]:
    """
    Validate a ``data:audio/...;base64,...`` URI and decode it.

    Returns:
        (audio bytes, file suffix)

    Raises:
        InvalidInput: If the field is missing, not an audio data URI, or the
            base64 payload is missing or malformed
    """
    if not audio:
        logger.error("No audio data received")
        raise InvalidInput("No audio data provided")

    if not isinstance(audio, str) or not audio.startswith(AUDIO_PREFIX):
        logger.error("Invalid audio format received")
        raise InvalidInput("Invalid audio format. Expected base64 audio data.")

    header, _, payload = audio.partition(",")
    if not payload:
        raise InvalidInput("Invalid base64 audio data")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInput("Invalid base64 audio data")
    if not data:
        raise InvalidInput("Invalid base64 audio data")

    # "data:audio/webm;codecs=opus;base64" -> "webm"
    mime = header[len("data:"):].split(";")[0]
    subtype = mime.split("/", 1)[1] if "/" in mime else ""
    return data, AUDIO_SUFFIXES.get(subtype.lower(), ".wav")


@contextmanager
def scoped_audio_file(data: bytes, suffix: str = ".wav"):
    """Write ``data`` to a temp file, yield its path, always delete it."""
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(delete=False, prefix="audio-", suffix=suffix) as tmp:
            tmp_path = tmp.name
            tmp.write(data)
        yield tmp_path
    finally:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError as e:
                logger.error(f"Error deleting temporary file {tmp_path}: {e}")


async def transcribe_data_uri(gateway, audio: str) -> str:
    """
    Decode ``audio`` and run it through the transcription model.

    Raises:
        InvalidInput: On a missing or malformed payload (nothing is sent upstream)
        UpstreamAuthFailure: If the model rejects our credentials
        UpstreamFailure: On any other model error or an empty transcription
    """
    data, suffix = decode_audio_data_uri(audio)
    logger.info(f"Processing audio data: {len(data)} bytes ({suffix})")

    with scoped_audio_file(data, suffix) as audio_path:
        text = await gateway.transcribe(audio_path)

    if not text or not text.strip():
        logger.error("No transcription received from the model")
        raise UpstreamFailure()
    logger.info(f"Transcription received: {text}")
    return text
