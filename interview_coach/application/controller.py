"""Turn-taking controller for one mock interview.

Everything that can change the session (UI intents, speech callbacks, the
oracle reply, timers) is turned into an intent and put on one queue. A single
consumer task applies intents in order, so SessionState is never mutated
re-entrantly. Callbacks armed for an asynchronous operation carry the
generation that was current when they were armed; the generation moves on
every phase change, which turns late callbacks into no-ops.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from ..core.exceptions import (
    InterviewCoachError,
    InvalidSetupError,
    QuestionGenerationError,
    SessionFailedError,
)
from ..core.models import Feedback, SetupData, Turn
from .context import SessionContext
from .interview_session import Phase, SessionSnapshot, SessionState

CLOSING_REMARK = "That was the last question. The interview is now complete. Great job!"
FEEDBACK_ERROR_MESSAGE = "Sorry, I had trouble processing your response."
EMPTY_ANSWER_MESSAGE = "Please provide an answer before submitting."


@dataclass(frozen=True)
class Begin:
    pass


@dataclass(frozen=True)
class Submit:
    text: Optional[str]


@dataclass(frozen=True)
class Skip:
    pass


@dataclass(frozen=True)
class Stop:
    reason: str


@dataclass(frozen=True)
class SpeechDone:
    generation: int


@dataclass(frozen=True)
class PlaybackFailed:
    generation: int
    message: str


@dataclass(frozen=True)
class CaptureResult:
    generation: int
    text: str
    is_final: bool


@dataclass(frozen=True)
class CaptureFailed:
    generation: int
    message: str


@dataclass(frozen=True)
class RearmCapture:
    generation: int


@dataclass(frozen=True)
class FeedbackReady:
    generation: int
    question: str
    answer: str
    feedback: Feedback
    error: Optional[str]


Intent = Union[Begin, Submit, Skip, Stop, SpeechDone, PlaybackFailed,
               CaptureResult, CaptureFailed, RearmCapture, FeedbackReady]


def _error_message(error: Exception) -> str:
    if isinstance(error, InterviewCoachError):
        return error.message
    return str(error)


class SessionController:
    def __init__(self, context: SessionContext):
        self.context = context
        self.settings = context.settings
        self.log = context.log

        self._setup: Optional[SetupData] = None
        self._state: Optional[SessionState] = None
        self._queue: "asyncio.Queue[Intent]" = asyncio.Queue()
        self._generation = 0
        self._finished: Optional[asyncio.Future] = None
        self._subscribers: List[asyncio.Queue] = []

        self._runner: Optional[asyncio.Task] = None
        self._oracle_task: Optional[asyncio.Task] = None
        self._rearm_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None

    # Public surface

    @property
    def state(self) -> SessionSnapshot:
        return (self._state or SessionState(questions=())).snapshot()

    @property
    def setup(self) -> Optional[SetupData]:
        return self._setup

    async def start(self, setup: Union[SetupData, Mapping[str, Any]]) -> SessionSnapshot:
        """Validate setup, fetch questions and queue the first question.

        Raises InvalidSetupError for bad setup data and QuestionGenerationError
        when no questions could be produced; nothing else aborts a session.
        """
        if self._state is not None:
            raise RuntimeError("SessionController serves exactly one interview")

        setup = self._validate(setup)
        questions = await self.context.question_source.generate(
            setup.role,
            setup.difficulty.value,
            setup.topics,
            setup.resume,
            setup.question_bank,
        )
        if not questions:
            raise QuestionGenerationError("No questions were generated or provided.")

        voice = self.context.speech.capability_check() and not setup.text_only
        self._setup = setup
        self._state = SessionState(
            questions=tuple(questions), capture_enabled=voice, playback_enabled=voice
        )
        self._finished = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(self._run())

        minutes = setup.duration_minutes or self.settings.MAX_SESSION_MINUTES
        if minutes:
            self._timer_task = asyncio.create_task(
                self._post_later(minutes * 60, Stop("time_up"))
            )

        self.log.info(
            "session_started",
            role=setup.role,
            difficulty=setup.difficulty.value,
            questions=len(questions),
            voice=voice,
        )
        self._post(Begin())
        return self.state

    def submit_answer(self, text: Optional[str] = None) -> None:
        """Submit a typed answer, or the live transcript when text is None."""
        self._post(Submit(text))

    def skip(self) -> None:
        self._post(Skip())

    async def stop(self, reason: str = "user") -> Tuple[Turn, ...]:
        """End the interview now and return the turns recorded so far.

        Raises SessionFailedError if the controller itself crashed.
        """
        if self._finished is None:
            return ()
        if not self._finished.done():
            self._post(Stop(reason))
        return await asyncio.shield(self._finished)

    async def wait(self) -> Tuple[Turn, ...]:
        if self._finished is None:
            raise RuntimeError("Interview has not been started")
        return await asyncio.shield(self._finished)

    async def snapshots(self) -> AsyncIterator[SessionSnapshot]:
        """Yield the current snapshot, then one per processed intent until COMPLETE."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            if self._state is not None:
                current = self._state.snapshot()
                yield current
                if current.phase is Phase.COMPLETE:
                    return
            while True:
                snapshot = await queue.get()
                yield snapshot
                if snapshot.phase is Phase.COMPLETE:
                    return
        finally:
            self._subscribers.remove(queue)

    # Event loop

    def _post(self, intent: Intent) -> None:
        self._queue.put_nowait(intent)

    async def _post_later(self, delay: float, intent: Intent) -> None:
        await asyncio.sleep(delay)
        self._post(intent)

    def _publish(self) -> None:
        snapshot = self._state.snapshot()
        for queue in self._subscribers:
            queue.put_nowait(snapshot)

    async def _run(self) -> None:
        try:
            while self._state.phase is not Phase.COMPLETE:
                intent = await self._queue.get()
                await self._dispatch(intent)
                self._publish()
        except Exception as e:
            self.log.exception("session_controller_failed")
            self._cancel_background()
            self._state.phase = Phase.COMPLETE
            self._state.stopped_reason = "error"
            if not self._finished.done():
                self._finished.set_exception(SessionFailedError(
                    "The interview stopped unexpectedly.", details={"error": str(e)}
                ))
            self._publish()

    async def _dispatch(self, intent: Intent) -> None:
        state = self._state

        if isinstance(intent, Begin):
            await self._enter_asking()
            return

        if isinstance(intent, Stop):
            await self._complete(intent.reason)
            return

        if isinstance(intent, Submit):
            await self._handle_submit(intent.text)
            return

        if isinstance(intent, Skip):
            await self._handle_skip()
            return

        if intent.generation != self._generation:
            self.log.debug("stale_intent_dropped", intent=type(intent).__name__,
                           generation=intent.generation, current=self._generation)
            return

        if isinstance(intent, SpeechDone):
            await self._on_speech_done()
        elif isinstance(intent, PlaybackFailed):
            self.log.warning("playback_failed", error=intent.message, phase=state.phase.value)
            await self._on_speech_done()
            if state.phase is not Phase.COMPLETE:
                state.error = intent.message
        elif isinstance(intent, CaptureResult):
            await self._handle_capture_result(intent.text, intent.is_final)
        elif isinstance(intent, CaptureFailed):
            if state.phase is Phase.LISTENING:
                await self.context.speech.stop_capture()
                self._disable_capture(intent.message)
        elif isinstance(intent, RearmCapture):
            if state.phase is Phase.LISTENING and state.capture_enabled:
                await self._start_capture()
        elif isinstance(intent, FeedbackReady):
            await self._handle_feedback(intent)

    # Transitions

    def _enter(self, phase: Phase) -> None:
        previous = self._state.phase
        self._state.phase = phase
        self._state.error = None
        self._generation += 1
        self.log.debug("phase_changed", previous=previous.value, phase=phase.value,
                       index=self._state.current_index, generation=self._generation)

    async def _enter_asking(self) -> None:
        state = self._state
        self._enter(Phase.ASKING)
        state.live_transcript = ""
        state.feedback = None
        await self._speak_then_continue(state.current_question)

    async def _enter_listening(self) -> None:
        self._enter(Phase.LISTENING)
        if self._state.capture_enabled:
            await self._start_capture()

    async def _on_speech_done(self) -> None:
        if self._state.phase is Phase.ASKING:
            await self._enter_listening()
        elif self._state.phase is Phase.FEEDBACK:
            await self._advance()

    async def _advance(self) -> None:
        if self._state.is_last_question:
            await self._complete(None)
        else:
            self._state.current_index += 1
            await self._enter_asking()

    async def _handle_submit(self, text: Optional[str]) -> None:
        state = self._state
        if state.phase not in (Phase.ASKING, Phase.LISTENING):
            self.log.debug("submit_ignored", phase=state.phase.value)
            return
        answer = (state.live_transcript if text is None else text).strip()
        if not answer:
            state.error = EMPTY_ANSWER_MESSAGE
            return
        await self._begin_processing(answer)

    async def _handle_skip(self) -> None:
        state = self._state
        if state.phase not in (Phase.ASKING, Phase.LISTENING):
            self.log.debug("skip_ignored", phase=state.phase.value)
            return
        await self._silence()
        state.turns.append(Turn(question=state.current_question, response="", feedback=Feedback.skipped()))
        self.log.info("question_skipped", index=state.current_index)
        await self._advance()

    async def _handle_capture_result(self, text: str, is_final: bool) -> None:
        state = self._state
        if state.phase is not Phase.LISTENING:
            return
        state.live_transcript = text
        if not is_final:
            return
        if text.strip():
            await self._begin_processing(text.strip())
            return

        # nothing usable was heard; restart capture after a short pause
        await self.context.speech.stop_capture()
        self._cancel_task(self._rearm_task)
        self._rearm_task = asyncio.create_task(
            self._post_later(self.settings.EMPTY_CAPTURE_GUARD_SECONDS, RearmCapture(self._generation))
        )

    async def _begin_processing(self, answer: str) -> None:
        state = self._state
        self._enter(Phase.PROCESSING)
        state.live_transcript = answer
        await self._silence()
        self._oracle_task = asyncio.create_task(
            self._request_feedback(self._generation, state.current_question, answer)
        )

    async def _request_feedback(self, generation: int, question: str, answer: str) -> None:
        setup = self._setup
        try:
            feedback = await self.context.oracle.feedback(
                question, answer, setup.role, setup.difficulty.value
            )
            error = None
        except Exception as e:
            self.log.warning("feedback_failed", error=_error_message(e))
            feedback = Feedback.error(FEEDBACK_ERROR_MESSAGE)
            error = FEEDBACK_ERROR_MESSAGE
        self._post(FeedbackReady(generation, question, answer, feedback, error))

    async def _handle_feedback(self, intent: FeedbackReady) -> None:
        state = self._state
        if state.phase is not Phase.PROCESSING:
            return
        state.turns.append(Turn(question=intent.question, response=intent.answer, feedback=intent.feedback))
        self._enter(Phase.FEEDBACK)
        state.feedback = intent.feedback
        state.error = intent.error
        self.log.info("turn_recorded", index=state.current_index, feedback=intent.feedback.kind.value)

        spoken = intent.error or f"Here's some feedback. {intent.feedback.text}"
        await self._speak_then_continue(spoken)

    async def _complete(self, reason: Optional[str]) -> None:
        state = self._state
        if state.phase is Phase.COMPLETE:
            return
        self._cancel_background()
        await self._silence()
        self._enter(Phase.COMPLETE)
        state.stopped_reason = reason
        state.live_transcript = ""
        turns = tuple(state.turns)
        if not self._finished.done():
            self._finished.set_result(turns)
        self.log.info("session_complete", turns=len(turns), questions=len(state.questions),
                      reason=reason or "finished")

        if reason is None and state.playback_enabled:
            try:
                await self.context.speech.speak(CLOSING_REMARK)
            except InterviewCoachError as e:
                self.log.warning("closing_remark_failed", error=e.message)

    # Speech helpers

    async def _speak_then_continue(self, text: str) -> None:
        """Play text; its completion (or failure) arrives as an intent."""
        generation = self._generation
        if not self._state.playback_enabled:
            self._post(SpeechDone(generation))
            return

        speech = self.context.speech
        await speech.cancel_speech()
        try:
            started = await speech.speak(
                text,
                on_done=lambda: self._post(SpeechDone(generation)),
                on_error=lambda e: self._post(PlaybackFailed(generation, _error_message(e))),
            )
        except InterviewCoachError as e:
            self._post(PlaybackFailed(generation, e.message))
            return
        if not started:
            self._post(PlaybackFailed(generation, "Speech playback is busy."))

    async def _start_capture(self) -> None:
        generation = self._generation
        try:
            await self.context.speech.start_capture(
                on_result=lambda text, is_final: self._post(CaptureResult(generation, text, is_final)),
                on_error=lambda e: self._post(CaptureFailed(generation, _error_message(e))),
            )
        except InterviewCoachError as e:
            self._disable_capture(e.message)

    def _disable_capture(self, message: str) -> None:
        """Answers are typed from now on; questions and feedback are still spoken."""
        self._state.capture_enabled = False
        self._state.error = message
        self.log.warning("capture_disabled", error=message)

    async def _silence(self) -> None:
        self._cancel_task(self._rearm_task)
        await self.context.speech.cancel_speech()
        await self.context.speech.stop_capture()

    # Background tasks

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()

    def _cancel_background(self) -> None:
        for task in (self._oracle_task, self._rearm_task, self._timer_task):
            self._cancel_task(task)

    @staticmethod
    def _validate(setup: Union[SetupData, Mapping[str, Any]]) -> SetupData:
        if isinstance(setup, SetupData):
            return setup
        try:
            return SetupData.model_validate(setup)
        except ValidationError as e:
            raise InvalidSetupError(
                "Invalid interview setup.",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e
