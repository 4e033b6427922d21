"""
WAV encoding for recorded audio.

Recorders hand us decoded PCM as floats in [-1, 1]; the transcription
endpoint wants a plain 16-bit PCM WAV, uploaded as a base64 data URI.
"""
import base64
import struct
import wave
from typing import List, Sequence, Tuple

WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
PCM_FORMAT = 1

# Negative samples scale by 2**15, non-negative by 2**15 - 1
NEGATIVE_SCALE = 0x8000
POSITIVE_SCALE = 0x7FFF


def interleave(channels: Sequence[Sequence[float]]) -> List[float]:
    """Merge per-channel sample arrays into one frame-ordered sequence."""
    if not channels:
        return []
    length = len(channels[0])
    if any(len(channel) != length for channel in channels):
        raise ValueError("All channels must have the same number of samples")
    interleaved = []
    for i in range(length):
        for channel in channels:
            interleaved.append(channel[i])
    return interleaved


def float_to_pcm16(sample: float) -> int:
    # Clamp first; int() truncates toward zero like a typed-array store does
    sample = max(-1.0, min(1.0, float(sample)))
    if sample < 0:
        return int(sample * NEGATIVE_SCALE)
    return int(sample * POSITIVE_SCALE)


def pcm16_to_float(value: int) -> float:
    if value < 0:
        return value / NEGATIVE_SCALE
    return value / POSITIVE_SCALE


def build_wav_header(sample_count: int, sample_rate: int, channels: int) -> bytes:
    data_size = sample_count * BYTES_PER_SAMPLE
    return struct.pack(
        '<4sI4s4sIHHIIHH4sI',
        b'RIFF',
        WAV_HEADER_SIZE - 8 + data_size,
        b'WAVE',
        b'fmt ',
        16,                                      # fmt subchunk size
        PCM_FORMAT,
        channels,
        sample_rate,
        sample_rate * channels * BYTES_PER_SAMPLE,   # byte rate
        channels * BYTES_PER_SAMPLE,                 # block align
        BITS_PER_SAMPLE,
        b'data',
        data_size,
    )


def encode_wav(samples: Sequence[float], sample_rate: int, channels: int = 1) -> bytes:
    """
    Serialize interleaved float samples into a 16-bit PCM WAV container.

    Args:
        samples: Interleaved samples in [-1, 1]; out-of-range values are clamped
        sample_rate: Frames per second
        channels: Number of interleaved channels

    Returns:
        The 44-byte header followed by little-endian int16 samples. The output
        depends only on the arguments, so identical input gives identical bytes.

    Raises:
        ValueError: On a non-positive sample rate or channel count, or when the
            sample count is not a whole number of frames
    """
    if channels < 1:
        raise ValueError(f"channels must be >= 1, got {channels}")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if len(samples) % channels != 0:
        raise ValueError(
            f"{len(samples)} samples do not divide into {channels}-channel frames"
        )

    header = build_wav_header(len(samples), sample_rate, channels)
    pcm = struct.pack(f'<{len(samples)}h', *(float_to_pcm16(s) for s in samples))
    return header + pcm


def to_data_uri(wav_bytes: bytes, mime: str = "audio/wav") -> str:
    return f"data:{mime};base64,{base64.b64encode(wav_bytes).decode('ascii')}"


def read_wav_samples(path: str) -> Tuple[List[float], int, int]:
    """
    Read a 16-bit PCM WAV file back into interleaved float samples.

    Returns:
        (samples, sample_rate, channels)
    """
    try:
        with wave.open(str(path), "rb") as wav_file:
            sample_width = wav_file.getsampwidth()
            channels = wav_file.getnchannels()
            sample_rate = wav_file.getframerate()
            frames = wav_file.readframes(wav_file.getnframes())
    except (wave.Error, EOFError) as e:
        raise ValueError(f"Not a readable PCM WAV file: {e}") from e

    if sample_width != BYTES_PER_SAMPLE:
        raise ValueError(f"Only 16-bit PCM WAV is supported (got {sample_width * 8}-bit)")

    count = len(frames) // BYTES_PER_SAMPLE
    values = struct.unpack(f'<{count}h', frames[:count * BYTES_PER_SAMPLE])
    return [pcm16_to_float(v) for v in values], sample_rate, channels
