"""Continuous code-word listening as a cancellable background task.

Each cycle records a short chunk, transcribes it and runs the detector. The
first detection stops listening and fires ``on_detected`` exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from safenight.collaborators import AudioRecorder, Transcriber
from safenight.detector import Detection, detect

logger = logging.getLogger(__name__)

IDLE = "idle"
LISTENING = "listening"
PAUSED = "paused"

BACKGROUND_STATES = ("inactive", "background")


class CodeWordListener:
    def __init__(
        self,
        recorder: AudioRecorder,
        transcriber: Transcriber,
        code_word: str,
        on_detected: Callable[[Detection], Awaitable[Any]],
        chunk_s: float = 3.0,
        interval_s: float = 5.0,
    ):
        self._recorder = recorder
        self._transcriber = transcriber
        self.code_word = code_word
        self._on_detected = on_detected
        self.chunk_s = chunk_s
        self.interval_s = interval_s
        self.state = IDLE
        self._task: asyncio.Task | None = None
        self._handle: Any = None

    @property
    def listening(self) -> bool:
        return self.state == LISTENING

    def start(self) -> None:
        """Begin listening; must be called from inside a running event loop."""
        if not (self.code_word or "").strip():
            raise ValueError("no SOS code word set")
        if self.listening:
            return
        self.state = LISTENING
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop listening. No detection callback fires after this returns."""
        await self._halt(IDLE)

    async def pause(self) -> None:
        if self.listening:
            await self._halt(PAUSED)

    def resume(self) -> None:
        """Explicit re-activation after a pause; does nothing otherwise."""
        if self.state == PAUSED:
            self.start()

    async def on_app_state(self, app_state: str) -> None:
        if app_state in BACKGROUND_STATES:
            await self.pause()

    async def _halt(self, new_state: str) -> None:
        self.state = new_state
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release()

    async def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                await self._recorder.discard(handle)
            except Exception as exc:
                logger.warning("Could not release recording: %s", exc)

    async def _listen_once(self) -> Detection:
        self._handle = await self._recorder.start()
        await asyncio.sleep(self.chunk_s)
        handle, self._handle = self._handle, None
        audio = await self._recorder.stop(handle)
        result = await self._transcriber.transcribe(audio)
        return detect(result.text or "", self.code_word)

    async def _run(self) -> None:
        while self.listening:
            try:
                detection = await self._listen_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Voice chunk failed: %s", exc)
                await self._release()
                detection = None

            if detection is not None and detection.detected and self.listening:
                logger.info("Code word detected (confidence %.2f)", detection.confidence)
                self.state = IDLE
                self._task = None
                await self._on_detected(detection)
                return

            await asyncio.sleep(max(0.0, self.interval_s - self.chunk_s))
