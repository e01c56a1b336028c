"""Speech engine port — event-emitting TTS with word-boundary callbacks.

The synchronizer only sees SpeechEngine: speak/cancel/pause/resume plus a
stream of SpeechEvent (boundary, end, error). Pyttsx3Engine implements it on
top of the platform speech driver (SAPI5, NSSpeech, eSpeak).
"""

import asyncio
import logging
import queue
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .types import VoiceInfo

log = logging.getLogger("tts")

MIN_RATE = 0.5
MAX_RATE = 2.0
BASE_WORDS_PER_MINUTE = 180

BOUNDARY = "boundary"
END = "end"
ERROR = "error"

INTERRUPTED = "interrupted"


@dataclass
class Utterance:
    """Text handed to the engine in one go."""
    text: str
    rate: float = 1.0
    voice: Optional[VoiceInfo] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass(frozen=True)
class SpeechEvent:
    kind: str                  # boundary | end | error
    utterance_id: str
    char_index: int = 0        # offset into the utterance text (boundary only)
    error: str = ""


Listener = Callable[[SpeechEvent], None]


class SpeechEngine(ABC):
    """Abstract speech engine with an explicit event channel."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SpeechEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    @abstractmethod
    def speak(self, utterance: Utterance) -> None:
        """Start speaking. Any current utterance must be cancelled first."""

    @abstractmethod
    def cancel(self) -> None:
        """Drop the current utterance. It reports an "interrupted" error."""

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def resume(self) -> None: ...

    @abstractmethod
    def list_voices(self) -> List[VoiceInfo]: ...

    def close(self) -> None:
        """Release engine resources."""


def select_voice(voice_type: str, voices: List[VoiceInfo]) -> Optional[VoiceInfo]:
    """Pick a voice for "male" / "female", falling back to any English voice."""
    wanted = {"male": "mark", "female": "libby"}.get(voice_type)
    if wanted:
        for v in voices:
            name = v.name.lower()
            if wanted in name and "microsoft" in name:
                return v
        for v in voices:
            if v.gender.lower() == voice_type:
                return v
    english = [v for v in voices if v.lang.lower().startswith("en")]
    if english:
        return english[0]
    return voices[0] if voices else None


# ── pyttsx3 adapter ───────────────────────────────────────────

def _voice_lang(voice) -> str:
    langs = getattr(voice, "languages", None) or []
    if not langs:
        return ""
    lang = langs[0]
    if isinstance(lang, bytes):
        # eSpeak reports languages as b"\x05en-us"
        lang = lang.decode("utf-8", errors="ignore").lstrip("\x00\x01\x02\x03\x04\x05\x06\x07\x08")
    return str(lang).replace("_", "-")


class Pyttsx3Engine(SpeechEngine):
    """pyttsx3 driven from a single worker thread through a command queue.

    pyttsx3 has no pause, so pause stops the driver and resume re-speaks
    the remainder from the last word boundary. Boundary offsets of the
    re-spoken segment are shifted back into the original utterance text.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None,
                 words_per_minute: int = BASE_WORDS_PER_MINUTE,
                 driver_name: Optional[str] = None) -> None:
        super().__init__()
        self._loop = loop
        self._wpm = words_per_minute
        self._driver_name = driver_name
        self._commands: "queue.Queue[tuple]" = queue.Queue()
        self._voices: List[VoiceInfo] = []
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_error: Optional[Exception] = None

        # Worker-thread state
        self._current: Optional[Utterance] = None
        self._last_boundary = 0
        self._segments: dict[str, tuple[str, int]] = {}   # driver name -> (utterance id, offset)
        self._silenced: set[str] = set()                  # stopped for pause, no events
        self._cancelled: set[str] = set()

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> None:
        if self._thread is not None:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._thread = threading.Thread(target=self._run, name="pyttsx3", daemon=True)
        self._thread.start()
        if not self._ready.wait(timeout=10.0):
            raise RuntimeError("pyttsx3 engine did not start within 10s")
        if self._start_error is not None:
            error, self._start_error = self._start_error, None
            self._thread = None
            self._ready.clear()
            raise RuntimeError(f"pyttsx3 engine failed to start: {error}") from error

    def close(self) -> None:
        if self._thread is None:
            return
        self._commands.put(("shutdown",))
        self._thread.join(timeout=5.0)
        self._thread = None

    # ── Public API (any thread) ───────────────────────────────

    def speak(self, utterance: Utterance) -> None:
        self.start()
        self._commands.put(("speak", utterance))

    def cancel(self) -> None:
        if self._thread is not None:
            self._commands.put(("cancel",))

    def pause(self) -> None:
        if self._thread is not None:
            self._commands.put(("pause",))

    def resume(self) -> None:
        if self._thread is not None:
            self._commands.put(("resume",))

    def list_voices(self) -> List[VoiceInfo]:
        self.start()
        return list(self._voices)

    # ── Worker thread ─────────────────────────────────────────

    def _post(self, event: SpeechEvent) -> None:
        self._loop.call_soon_threadsafe(self._emit, event)

    def _run(self) -> None:
        try:
            import pyttsx3

            driver = pyttsx3.init(self._driver_name)
            driver.connect("started-word", self._on_word)
            driver.connect("finished-utterance", self._on_finished)
            driver.connect("error", self._on_error)
            self._voices = [
                VoiceInfo(id=v.id, name=v.name or v.id, lang=_voice_lang(v), gender=(v.gender or "").lower())
                for v in driver.getProperty("voices")
            ]
            driver.startLoop(False)
        except Exception as e:
            # Driver backends raise their own types (OSError, RuntimeError, COM errors)
            self._start_error = e
            self._ready.set()
            return
        log.info("pyttsx3 engine ready: %d voices", len(self._voices))
        self._ready.set()

        try:
            while True:
                try:
                    command = self._commands.get(timeout=0.02)
                except queue.Empty:
                    driver.iterate()
                    continue
                if command[0] == "shutdown":
                    break
                self._handle(driver, command)
                driver.iterate()
        finally:
            driver.endLoop()
            log.info("pyttsx3 engine stopped")

    def _handle(self, driver, command: tuple) -> None:
        op = command[0]
        if op == "speak":
            utterance = command[1]
            self._current = utterance
            self._say(driver, utterance, 0)
        elif op == "cancel":
            if self._current is not None:
                self._cancelled.update(
                    name for name, (uid, _) in self._segments.items() if uid == self._current.id
                )
                driver.stop()
                self._current = None
        elif op == "pause":
            if self._current is not None:
                self._silenced.update(self._segments)
                driver.stop()
        elif op == "resume":
            if self._current is not None:
                self._say(driver, self._current, self._last_boundary)

    def _say(self, driver, utterance: Utterance, offset: int) -> None:
        rate = min(max(utterance.rate, MIN_RATE), MAX_RATE)
        driver.setProperty("rate", int(self._wpm * rate))
        if utterance.voice is not None:
            driver.setProperty("voice", utterance.voice.id)
        name = f"{utterance.id}@{offset}"
        self._segments[name] = (utterance.id, offset)
        self._last_boundary = offset
        driver.say(utterance.text[offset:], name)
        log.debug("Speaking %s from char %d (rate=%.2f)", utterance.id, offset, rate)

    def _on_word(self, name, location, length) -> None:
        segment = self._segments.get(name)
        if segment is None or name in self._silenced:
            return
        uid, offset = segment
        self._last_boundary = offset + int(location)
        self._post(SpeechEvent(BOUNDARY, uid, char_index=offset + int(location)))

    def _on_finished(self, name, completed) -> None:
        segment = self._segments.pop(name, None)
        if segment is None:
            return
        uid = segment[0]
        if name in self._silenced:
            self._silenced.discard(name)
            return
        if name in self._cancelled or not completed:
            self._cancelled.discard(name)
            self._post(SpeechEvent(ERROR, uid, error=INTERRUPTED))
            return
        if self._current is not None and self._current.id == uid:
            self._current = None
        self._post(SpeechEvent(END, uid))

    def _on_error(self, name, exception) -> None:
        segment = self._segments.pop(name, None)
        uid = segment[0] if segment else str(name)
        log.error("Speech driver error on %s: %s", uid, exception)
        self._post(SpeechEvent(ERROR, uid, error=str(exception)))
