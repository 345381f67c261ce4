"""Speech capture and playback adapters.

Speech primitives live in the candidate's browser. ``WebSocketSpeech`` turns
the capability contract into JSON commands for the browser and routes the
browser's events back to the registered callbacks. ``TextOnlySpeech`` is used
when the browser cannot do speech at all.
"""
import asyncio
import re
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Sequence

import structlog

from ..core.config import Settings, get_settings
from ..core.exceptions import CaptureError, PlaybackError, SpeechUnavailableError
from ..core.interfaces import (
    CaptureResultCallback,
    DoneCallback,
    ErrorCallback,
    SpeechCapabilities,
)

logger = structlog.get_logger(__name__)

SendFn = Callable[[Dict[str, Any]], Awaitable[None]]

TRANSIENT_CAPTURE_ERRORS = frozenset({"no-speech"})

_LOCALE = re.compile(r"^[a-z]{2}(-[A-Za-z]{2})?$")


def select_voice(voices: Iterable[Dict[str, Any]],
                 preferences: Sequence[str]) -> Optional[Dict[str, Any]]:
    """Pick the first voice matching the preference order, or None.

    Preferences that look like locales ("en", "en-IN") match the start of a
    voice's ``lang``; anything else matches inside the voice ``name``.
    """
    voices = list(voices)
    for preference in preferences:
        is_locale = bool(_LOCALE.match(preference))
        for voice in voices:
            lang = str(voice.get("lang", ""))
            name = str(voice.get("name", ""))
            if is_locale and lang.lower().startswith(preference.lower()):
                return voice
            if not is_locale and preference.lower() in name.lower():
                return voice
    return None


class WebSocketSpeech(SpeechCapabilities):
    def __init__(self,
                 send: SendFn,
                 settings: Optional[Settings] = None,
                 capture_supported: bool = False,
                 playback_supported: bool = False,
                 voices: Iterable[Dict[str, Any]] = ()):
        self._send = send
        self.settings = settings or get_settings()
        self.capture_supported = capture_supported
        self.playback_supported = playback_supported
        self.voice = select_voice(voices, self.settings.VOICE_PREFERENCES)

        self._utterance_id: Optional[str] = None
        self._on_done: Optional[DoneCallback] = None
        self._on_speech_error: Optional[ErrorCallback] = None

        self._capture_id: Optional[str] = None
        self._on_result: Optional[CaptureResultCallback] = None
        self._on_capture_error: Optional[ErrorCallback] = None
        self._capture_idle = asyncio.Event()
        self._capture_idle.set()
        self._retry_task: Optional[asyncio.Task] = None

    def capability_check(self) -> bool:
        return self.capture_supported and self.playback_supported

    @property
    def is_speaking(self) -> bool:
        return self._utterance_id is not None

    @property
    def is_capturing(self) -> bool:
        return self._capture_id is not None

    # Playback

    async def speak(self,
                    text: str,
                    on_done: Optional[DoneCallback] = None,
                    on_error: Optional[ErrorCallback] = None) -> bool:
        if not self.playback_supported:
            raise SpeechUnavailableError("Speech playback is not supported on this device.")
        if self._utterance_id is not None:
            logger.warning("speak_rejected", reason="utterance_active")
            return False

        utterance_id = uuid.uuid4().hex
        self._utterance_id = utterance_id
        self._on_done = on_done
        self._on_speech_error = on_error
        try:
            await self._send({
                "type": "speak",
                "utterance_id": utterance_id,
                "text": text,
                "lang": self.settings.SPEECH_LANG,
                "voice": self.voice.get("name") if self.voice else None,
            })
        except Exception as e:
            self._clear_utterance()
            raise PlaybackError("Could not start speech playback.", details={"error": str(e)}) from e
        return True

    async def cancel_speech(self) -> None:
        if self._utterance_id is None:
            return
        utterance_id = self._utterance_id
        self._clear_utterance()
        try:
            await self._send({"type": "cancel_speech", "utterance_id": utterance_id})
        except Exception as e:
            logger.warning("cancel_speech_send_failed", error=str(e))

    def _clear_utterance(self) -> None:
        self._utterance_id = None
        self._on_done = None
        self._on_speech_error = None

    # Capture

    async def start_capture(self,
                            on_result: CaptureResultCallback,
                            on_error: Optional[ErrorCallback] = None) -> None:
        if not self.capture_supported:
            raise SpeechUnavailableError("Speech capture is not supported on this device.")
        if self._capture_id is not None:
            await self.stop_capture()
        await self._wait_for_teardown()

        capture_id = uuid.uuid4().hex
        self._capture_id = capture_id
        self._on_result = on_result
        self._on_capture_error = on_error
        await self._send_start(capture_id)

    async def stop_capture(self) -> None:
        self._cancel_retry()
        if self._capture_id is None:
            return
        capture_id = self._capture_id
        self._capture_id = None
        self._on_result = None
        self._on_capture_error = None
        try:
            await self._send({"type": "stop_capture", "capture_id": capture_id})
        except Exception as e:
            logger.warning("stop_capture_send_failed", error=str(e))
            self._capture_idle.set()

    async def _wait_for_teardown(self) -> None:
        try:
            await asyncio.wait_for(
                self._capture_idle.wait(),
                timeout=self.settings.CAPTURE_TEARDOWN_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning("capture_teardown_timeout")
            self._capture_idle.set()

    async def _send_start(self, capture_id: str) -> None:
        self._capture_idle.clear()
        try:
            await self._send({
                "type": "start_capture",
                "capture_id": capture_id,
                "lang": self.settings.SPEECH_LANG,
                "continuous": True,
                "interim_results": True,
            })
        except Exception as e:
            self._capture_id = None
            self._capture_idle.set()
            raise CaptureError("Could not start speech capture.", details={"error": str(e)}) from e

    async def _retry_capture(self, capture_id: str) -> None:
        await asyncio.sleep(self.settings.CAPTURE_RETRY_DELAY_SECONDS)
        await self._wait_for_teardown()
        if self._capture_id != capture_id:
            return
        logger.debug("capture_restarted", reason="no_speech")
        try:
            await self._send_start(capture_id)
        except CaptureError as e:
            self._fail_capture(e)

    def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    def _fail_capture(self, error: CaptureError) -> None:
        callback = self._on_capture_error
        self._capture_id = None
        self._on_result = None
        self._on_capture_error = None
        if callback is not None:
            callback(error)

    # Browser events

    async def handle_message(self, message: Dict[str, Any]) -> bool:
        """Route one browser event. Returns False for messages it does not own."""
        kind = message.get("type")

        if kind == "speech_done":
            if message.get("utterance_id") == self._utterance_id and self._utterance_id is not None:
                callback = self._on_done
                self._clear_utterance()
                if callback is not None:
                    callback()
            return True

        if kind == "speech_error":
            if message.get("utterance_id") == self._utterance_id and self._utterance_id is not None:
                on_error, on_done = self._on_speech_error, self._on_done
                self._clear_utterance()
                error = PlaybackError(
                    "Speech playback failed.", details={"error": message.get("error")}
                )
                logger.warning("playback_error", error=message.get("error"))
                if on_error is not None:
                    on_error(error)
                elif on_done is not None:
                    on_done()
            return True

        if kind == "capture_result":
            if message.get("capture_id") == self._capture_id and self._on_result is not None:
                self._on_result(str(message.get("text") or ""), bool(message.get("is_final")))
            return True

        if kind == "capture_error":
            capture_id = message.get("capture_id")
            if capture_id != self._capture_id or capture_id is None:
                return True
            code = str(message.get("error") or "unknown")
            if code in TRANSIENT_CAPTURE_ERRORS:
                logger.debug("capture_transient_error", error=code)
                self._cancel_retry()
                self._retry_task = asyncio.create_task(self._retry_capture(capture_id))
            else:
                logger.warning("capture_fatal_error", error=code)
                self._capture_idle.set()
                self._fail_capture(CaptureError(
                    "Speech capture failed. You can keep going by typing your answers.",
                    transient=False,
                    details={"error": code},
                ))
            return True

        if kind == "capture_ended":
            self._capture_idle.set()
            capture_id = message.get("capture_id")
            retrying = self._retry_task is not None and not self._retry_task.done()
            if capture_id is not None and capture_id == self._capture_id and not retrying:
                # the browser ended a capture we still want
                try:
                    await self._send_start(capture_id)
                except CaptureError as e:
                    self._fail_capture(e)
            return True

        if kind == "voices_changed":
            self.voice = select_voice(message.get("voices") or [], self.settings.VOICE_PREFERENCES)
            return True

        return False


class TextOnlySpeech(SpeechCapabilities):
    """Adapter for devices without speech support; answers are typed."""

    def __init__(self):
        self._pending: Optional[asyncio.Handle] = None

    def capability_check(self) -> bool:
        return False

    async def start_capture(self,
                            on_result: CaptureResultCallback,
                            on_error: Optional[ErrorCallback] = None) -> None:
        raise SpeechUnavailableError("Speech capture is not supported on this device.")

    async def stop_capture(self) -> None:
        return None

    async def speak(self,
                    text: str,
                    on_done: Optional[DoneCallback] = None,
                    on_error: Optional[ErrorCallback] = None) -> bool:
        if self._pending is not None:
            return False

        def _finish():
            self._pending = None
            if on_done is not None:
                on_done()

        self._pending = asyncio.get_running_loop().call_soon(_finish)
        return True

    async def cancel_speech(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
