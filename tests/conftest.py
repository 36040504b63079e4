from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from integrations.telephony import TelephonyControlPlane  # noqa: E402
from llm.base import BaseLLMClient  # noqa: E402
from relay.accumulator import AudioAccumulator  # noqa: E402
from relay.dispatcher import TranslationDispatcher  # noqa: E402
from relay.gateway import ConnectionGateway  # noqa: E402
from relay.registry import ConnectionRegistry, ConnectionState  # noqa: E402
from relay.router import ResponseRouter  # noqa: E402
from speech.transcriber import BaseTranscriber  # noqa: E402
from speech.translator import TextTranslator  # noqa: E402


class FakeTranscriber(BaseTranscriber):
    """Echoes which connection spoke; can fail or block on demand."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bytes]] = []
        self.fail_next = 0
        self.gate: asyncio.Event | None = None

    async def transcribe(self, wav_bytes: bytes, *, connection_id: str) -> str:
        self.calls.append((connection_id, wav_bytes))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next -= 1
            raise RuntimeError("transcription service unavailable")
        if connection_id.startswith("es"):
            return f"hola desde {connection_id}"
        return f"hello from {connection_id}"


class FakeLLM(BaseLLMClient):
    def __init__(self) -> None:
        self.calls: list[list[dict[str, str]]] = []
        self.fail = False

    async def chat(self, messages, *, temperature: float = 0.1) -> str:
        messages = list(messages)
        self.calls.append(messages)
        if self.fail:
            raise RuntimeError("translation service unavailable")
        return "translated: " + messages[-1]["content"].split(": ", 1)[-1]


class RecordingTelephony(TelephonyControlPlane):
    def __init__(self) -> None:
        self.spoken: list[dict] = []
        self.fail = False

    async def speak(self, entry, text: str, *, voice: str, language: str | None) -> None:
        if self.fail:
            raise RuntimeError("call already ended")
        self.spoken.append(
            {"connection_id": entry.connection_id, "text": text, "voice": voice, "language": language}
        )


def fake_detector(text: str) -> str | None:
    return "es" if "hola" in text.lower() else "en"


class Harness:
    """A gateway wired to fakes, passing raw audio straight to the transcriber."""

    def __init__(self, threshold: int, grace: float = 1.0) -> None:
        self.registry = ConnectionRegistry()
        self.accumulator = AudioAccumulator(threshold)
        self.transcriber = FakeTranscriber()
        self.llm = FakeLLM()
        self.telephony = RecordingTelephony()
        self.router = ResponseRouter(
            self.registry,
            self.telephony,
            voices={"es": "Polly.Miguel", "en": "Polly.Matthew"},
            locales={"es": "es-US", "en": "en-US"},
        )
        self.dispatcher = TranslationDispatcher(
            self.transcriber,
            TextTranslator(self.llm, detector=fake_detector),
            inbound_encoding="wav",
        )
        self.gateway = ConnectionGateway(
            self.registry, self.accumulator, self.dispatcher, self.router, shutdown_grace_seconds=grace
        )

    async def open_leg(self, connection_id: str, *, role: str = "caller", room_id: str | None = None):
        entry = await self.registry.register(connection_id, role, room_id=room_id)
        entry.state = ConnectionState.OPEN
        return entry


@pytest.fixture(autouse=True, scope="session")
def _test_env(tmp_path_factory: pytest.TempPathFactory):
    tmp_dir = tmp_path_factory.mktemp("runtime")
    os.environ["DATA_DIR"] = str(tmp_dir)
    os.environ.pop("OPENAI_API_KEY", None)

    from config.settings import get_settings

    get_settings.cache_clear()
    yield tmp_dir
    get_settings.cache_clear()


@pytest.fixture()
def make_harness():
    return Harness


@pytest.fixture(scope="session")
def app(_test_env):
    import importlib

    # Imported after the session env is in place: main reads settings at import.
    main = importlib.import_module("main")
    return main.app
