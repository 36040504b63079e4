"""Helpers that wrap raw call audio into a WAV container for transcription."""

from __future__ import annotations

import wave
from io import BytesIO

import numpy as np


def mulaw_decode(ulaw_bytes: bytes) -> np.ndarray:
    """Decode G.711 mu-law bytes to 16-bit PCM int16 numpy array."""

    data = np.frombuffer(ulaw_bytes, dtype=np.uint8)

    # Vectorized mu-law decode.
    mu = np.bitwise_not(data)
    sign = np.bitwise_and(mu, 0x80)
    exponent = np.right_shift(np.bitwise_and(mu, 0x70), 4)
    mantissa = np.bitwise_and(mu, 0x0F)

    magnitude = ((mantissa.astype(np.int32) << 1) + 33) << (exponent.astype(np.int32) + 2)
    pcm = magnitude.astype(np.int32) - 33
    pcm = np.where(sign != 0, -pcm, pcm)

    return pcm.astype(np.int16)


def pcm16_resample(pcm: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    if src_rate == dst_rate:
        return pcm
    if pcm.size == 0:
        return pcm.astype(np.int16)

    x_old = np.arange(pcm.size, dtype=np.float32)
    x_new = np.linspace(0, pcm.size - 1, int(pcm.size * dst_rate / src_rate), dtype=np.float32)

    y_new = np.interp(x_new, x_old, pcm.astype(np.float32))
    return np.clip(y_new, -32768, 32767).astype(np.int16)


def pcm16_to_wav_bytes(pcm: np.ndarray, sample_rate: int) -> bytes:
    buffer = BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.astype(np.int16).tobytes())
    return buffer.getvalue()


def to_wav_container(
    audio: bytes,
    *,
    encoding: str,
    src_rate: int,
    dst_rate: int,
) -> bytes:
    """Return `audio` as WAV bytes; `wav` input is passed through untouched."""

    if encoding == "wav":
        return audio
    if encoding == "mulaw":
        pcm = mulaw_decode(audio)
    elif encoding == "pcm16":
        # Drop a trailing half-sample rather than fail the whole segment.
        usable = len(audio) - (len(audio) % 2)
        pcm = np.frombuffer(audio[:usable], dtype="<i2")
    else:
        raise ValueError(f"Unsupported inbound audio encoding: {encoding}")

    return pcm16_to_wav_bytes(pcm16_resample(pcm, src_rate, dst_rate), dst_rate)
