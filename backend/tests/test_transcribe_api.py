"""
Tests for POST /api/transcribe: audio in, extracted tasks out (nothing saved).

To run these tests:
    pip install -e ".[test]"
    pytest backend/tests/test_transcribe_api.py -v
"""
import json
import os

from audio_encoding import encode_wav, to_data_uri
from errors import InvalidUpstreamResponse, UpstreamAuthFailure, UpstreamFailure

RECORDING = to_data_uri(encode_wav([0.0, 0.2, -0.2, 0.4] * 400, 16000))


def transcribe(client, headers, audio=RECORDING):
    return client.post("/api/transcribe", json={"audio": audio}, headers=headers)


def test_requires_auth(client, gateway):
    response = client.post("/api/transcribe", json={"audio": RECORDING})
    assert response.status_code == 401
    assert gateway.transcribed_files == []


def test_returns_extracted_tasks_without_saving(client, gateway, auth_headers):
    gateway.completion = json.dumps([
        {"title": "Buy groceries", "estimatedTime": 30},
        {"title": "Call mom", "estimatedTime": 15},
    ])

    response = transcribe(client, auth_headers)

    assert response.status_code == 200
    assert response.json() == [
        {"title": "Buy groceries", "estimatedTime": 30},
        {"title": "Call mom", "estimatedTime": 15},
    ]
    assert gateway.prompts[0][1] == "Buy groceries, call mom"
    assert client.get("/api/todos", headers=auth_headers).json() == []


def test_uploaded_audio_is_the_recording_and_is_removed(client, gateway, auth_headers):
    transcribe(client, auth_headers)

    [(path, uploaded)] = gateway.transcribed_files
    assert uploaded.startswith(b"RIFF")
    assert uploaded[8:12] == b"WAVE"
    assert not os.path.exists(path)


def test_missing_audio(client, gateway, auth_headers):
    response = client.post("/api/transcribe", json={}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "No audio data provided"}
    assert gateway.transcribed_files == []


def test_non_audio_payload_is_rejected_before_upload(client, gateway, auth_headers):
    response = transcribe(client, auth_headers, audio="data:text/plain;base64,aGVsbG8=")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid audio format. Expected base64 audio data."}
    assert gateway.transcribed_files == []
    assert gateway.prompts == []


def test_bad_base64(client, auth_headers):
    response = transcribe(client, auth_headers, audio="data:audio/wav;base64,%%%")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid base64 audio data"}


def test_upstream_auth_failure_is_401(client, gateway, auth_headers):
    gateway.transcribe_error = UpstreamAuthFailure()

    response = transcribe(client, auth_headers)

    assert response.status_code == 401
    assert response.json() == {"error": "OpenAI API key is invalid or missing"}
    [(path, _)] = gateway.transcribed_files
    assert not os.path.exists(path)


def test_upstream_failure_is_500(client, gateway, auth_headers):
    gateway.transcribe_error = UpstreamFailure()
    response = transcribe(client, auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process audio"}


def test_extraction_failure_is_500(client, gateway, auth_headers):
    gateway.complete_error = UpstreamFailure()
    response = transcribe(client, auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process audio"}


def test_malformed_model_output_is_parse_failure(client, gateway, auth_headers):
    gateway.completion = "Here are your tasks: groceries, mom"
    response = transcribe(client, auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": InvalidUpstreamResponse.default_message}


def test_voice_tasks_saved_in_spoken_order(client, gateway, auth_headers):
    gateway.completion = json.dumps([
        {"title": "Buy groceries", "estimatedTime": 30},
        {"title": "Call mom", "estimatedTime": 15},
    ])

    for task in transcribe(client, auth_headers).json():
        client.post("/api/todos", json=task, headers=auth_headers)

    todos = client.get("/api/todos", headers=auth_headers).json()
    assert [(t["title"], t["estimatedTime"], t["order"], t["completed"]) for t in todos] == [
        ("Buy groceries", 30, 0, False),
        ("Call mom", 15, 1, False),
    ]


def test_non_finite_estimate_is_parse_failure(client, gateway, auth_headers):
    gateway.completion = '[{"title": "Buy milk", "estimatedTime": Infinity}]'
    response = transcribe(client, auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to parse task data"}
