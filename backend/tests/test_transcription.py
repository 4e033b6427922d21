"""
Tests for data URI decoding and the temporary audio file lifecycle.

To run these tests:
    pip install pytest pytest-asyncio
    pytest backend/tests/test_transcription.py -v
"""
import base64
import os

import pytest

from errors import InvalidInput, UpstreamAuthFailure, UpstreamFailure
from llm.gateway import FakeModelGateway
from transcription import decode_audio_data_uri, scoped_audio_file, transcribe_data_uri

AUDIO_BYTES = b"RIFF fake wav payload"
AUDIO_URI = "data:audio/wav;base64," + base64.b64encode(AUDIO_BYTES).decode("ascii")


def test_decode_wav_uri():
    data, suffix = decode_audio_data_uri(AUDIO_URI)
    assert data == AUDIO_BYTES
    assert suffix == ".wav"


@pytest.mark.parametrize("mime,suffix", [
    ("audio/webm;codecs=opus", ".webm"),
    ("audio/mpeg", ".mp3"),
    ("audio/ogg", ".ogg"),
    ("audio/unknown-thing", ".wav"),
])
def test_suffix_follows_mime_type(mime, suffix):
    uri = f"data:{mime};base64," + base64.b64encode(AUDIO_BYTES).decode("ascii")
    assert decode_audio_data_uri(uri)[1] == suffix


@pytest.mark.parametrize("audio,message", [
    (None, "No audio data provided"),
    ("", "No audio data provided"),
    ("data:image/png;base64,AAAA", "Invalid audio format. Expected base64 audio data."),
    ("hello world", "Invalid audio format. Expected base64 audio data."),
    ("data:audio/wav;base64,", "Invalid base64 audio data"),
    ("data:audio/wav;base64,***not base64***", "Invalid base64 audio data"),
])
def test_invalid_payloads(audio, message):
    with pytest.raises(InvalidInput) as exc_info:
        decode_audio_data_uri(audio)
    assert exc_info.value.message == message
    assert exc_info.value.status_code == 400


def test_scoped_file_removed_after_use():
    with scoped_audio_file(AUDIO_BYTES, ".wav") as path:
        assert os.path.exists(path)
        assert path.endswith(".wav")
        with open(path, "rb") as f:
            assert f.read() == AUDIO_BYTES
    assert not os.path.exists(path)


def test_scoped_file_removed_on_error():
    with pytest.raises(RuntimeError):
        with scoped_audio_file(AUDIO_BYTES) as path:
            raise RuntimeError("upload failed")
    assert not os.path.exists(path)


@pytest.mark.asyncio
async def test_transcribe_uploads_decoded_bytes_then_cleans_up():
    gateway = FakeModelGateway(transcript="buy milk")

    text = await transcribe_data_uri(gateway, AUDIO_URI)

    assert text == "buy milk"
    [(path, uploaded)] = gateway.transcribed_files
    assert uploaded == AUDIO_BYTES
    assert not os.path.exists(path)


@pytest.mark.asyncio
async def test_temp_file_removed_when_model_fails():
    gateway = FakeModelGateway(transcribe_error=UpstreamAuthFailure())

    with pytest.raises(UpstreamAuthFailure):
        await transcribe_data_uri(gateway, AUDIO_URI)

    [(path, _)] = gateway.transcribed_files
    assert not os.path.exists(path)


@pytest.mark.asyncio
async def test_invalid_payload_never_reaches_model():
    gateway = FakeModelGateway()
    with pytest.raises(InvalidInput):
        await transcribe_data_uri(gateway, "data:video/mp4;base64,AAAA")
    assert gateway.transcribed_files == []


@pytest.mark.asyncio
async def test_blank_transcript_is_upstream_failure():
    with pytest.raises(UpstreamFailure) as exc_info:
        await transcribe_data_uri(FakeModelGateway(transcript="   "), AUDIO_URI)
    assert exc_info.value.message == "Failed to process audio"
