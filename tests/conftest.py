import io
import struct

import numpy as np
import pytest
import redis

from audiosearch.config import AudioConfig
from audiosearch.database import FingerprintDatabase


def wav_bytes(samples, channels=1, bits=16, sample_rate=AudioConfig.SAMPLE_RATE,
              audio_format=1, wave_tag=b"WAVE"):
    """
    Build a canonical 44-byte-header WAV.

    samples: raw integer sample values, interleaved for multi-channel
    """
    if bits == 16:
        body = np.asarray(samples, dtype="<i2").tobytes()
    elif bits == 8:
        body = np.asarray(samples, dtype=np.uint8).tobytes()
    else:
        body = bytes(len(samples) * bits // 8)

    block_align = channels * bits // 8
    header = b"RIFF" + struct.pack("<I", 36 + len(body)) + wave_tag
    header += b"fmt " + struct.pack(
        "<IHHIIHH",
        16,
        audio_format,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        bits,
    )
    header += b"data" + struct.pack("<I", len(body))
    return header + body


def tone(freqs, amplitudes, duration, sample_rate=AudioConfig.SAMPLE_RATE):
    t = np.arange(int(duration * sample_rate)) / sample_rate
    signal = np.zeros_like(t)
    for freq, amp in zip(freqs, amplitudes):
        signal += amp * np.sin(2 * np.pi * freq * t)
    return signal


def melody(segments, segment_sec=0.25):
    """Concatenate tone mixtures, one (freqs, amplitudes) pair per segment"""
    return np.concatenate([tone(f, a, segment_sec) for f, a in segments])


def to_pcm16(signal):
    return np.round(np.clip(signal, -1.0, 1.0) * 32767).astype(np.int16)


MELODY_A = [
    ([880, 2200, 4400], [0.3, 0.2, 0.1]),
    ([660, 1760, 3520], [0.3, 0.15, 0.1]),
    ([990, 2970, 5000], [0.25, 0.2, 0.12]),
    ([740, 1480, 6000], [0.3, 0.18, 0.08]),
    ([1200, 3600, 7200], [0.28, 0.14, 0.09]),
    ([520, 2600, 5200], [0.3, 0.2, 0.1]),
]

MELODY_B = [
    ([1500, 3300, 8000], [0.3, 0.2, 0.1]),
    ([1300, 2800, 9000], [0.25, 0.2, 0.1]),
    ([1700, 4100, 10000], [0.3, 0.15, 0.1]),
    ([1100, 5300, 7700], [0.28, 0.2, 0.12]),
]


@pytest.fixture
def melody_a_wav():
    return wav_bytes(to_pcm16(melody(MELODY_A)))


@pytest.fixture
def melody_b_wav():
    return wav_bytes(to_pcm16(melody(MELODY_B)))


class InMemoryRedis:
    """The four redis set commands used by FingerprintDatabase"""

    def __init__(self):
        self.sets = {}
        self.calls = []

    def sadd(self, key, *members):
        self.calls.append(("sadd", key, len(members)))
        if not members:
            raise redis.ResponseError("wrong number of arguments for 'sadd' command")
        target = self.sets.setdefault(key, set())
        before = len(target)
        target.update(str(m) for m in members)
        return len(target) - before

    def smembers(self, key):
        self.calls.append(("smembers", key))
        return set(self.sets.get(key, set()))

    def delete(self, *keys):
        self.calls.append(("delete",) + keys)
        return sum(1 for k in keys if self.sets.pop(k, None) is not None)

    def srem(self, key, *members):
        self.calls.append(("srem", key))
        target = self.sets.get(key, set())
        removed = sum(1 for m in members if m in target)
        target.difference_update(members)
        if not target:
            self.sets.pop(key, None)
        return removed


class FlakyRedis(InMemoryRedis):
    """Fails every command after the first `ok_calls` ones"""

    def __init__(self, ok_calls=0):
        super().__init__()
        self.ok_calls = ok_calls
        self.attempts = 0

    def _tick(self):
        self.attempts += 1
        if self.attempts > self.ok_calls:
            raise redis.ConnectionError("Connection refused")

    def sadd(self, key, *members):
        self._tick()
        return super().sadd(key, *members)

    def smembers(self, key):
        self._tick()
        return super().smembers(key)

    def delete(self, *keys):
        self._tick()
        return super().delete(*keys)

    def srem(self, key, *members):
        self._tick()
        return super().srem(key, *members)


@pytest.fixture
def client():
    return InMemoryRedis()


@pytest.fixture
def database(client):
    return FingerprintDatabase(client)


@pytest.fixture
def flac_bytes():
    import soundfile as sf

    def build(signal, sample_rate=AudioConfig.SAMPLE_RATE):
        buffer = io.BytesIO()
        sf.write(buffer, signal, sample_rate, format="FLAC", subtype="PCM_16")
        return buffer.getvalue()

    return build


@pytest.fixture
def mp3_bytes():
    import soundfile as sf

    if "MP3" not in sf.available_formats():
        pytest.skip("libsndfile built without MP3 support")

    def build(signal, sample_rate=AudioConfig.SAMPLE_RATE):
        buffer = io.BytesIO()
        sf.write(buffer, signal, sample_rate, format="MP3")
        return buffer.getvalue()

    return build
