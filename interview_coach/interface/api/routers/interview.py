"""WebSocket transport for one live interview.

Client -> server messages:
    {"type": "setup", "setup": {...}, "user_id": "...",
     "capabilities": {"capture": bool, "playback": bool, "voices": [...]}}
    {"type": "submit", "text": "..."}   (text omitted: submit what was heard)
    {"type": "skip"} / {"type": "stop"} / {"type": "save"}
    speech events: speech_done, speech_error, capture_result,
    capture_error, capture_ended, voices_changed

Server -> client messages:
    state, result, saved, notice, error, and the speech commands sent by
    WebSocketSpeech (speak, cancel_speech, start_capture, stop_capture).
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from ....application.context import SessionContext
from ....application.controller import SessionController
from ....application.interview_session import Phase
from ....application.results import build_record, save_session, score_session
from ....core.exceptions import InvalidSetupError, QuestionGenerationError, SessionFailedError
from ....managers.questions import OracleQuestionSource
from ....processors.speech import TextOnlySpeech, WebSocketSpeech

logger = structlog.get_logger(__name__)


async def _send_error(send, error: SessionFailedError) -> None:
    try:
        await send({"type": "error", "code": error.code, "message": error.message})
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.info("error_not_delivered", error=str(e))


async def _publish_states(controller: SessionController, send) -> None:
    try:
        async for snapshot in controller.snapshots():
            await send({"type": "state", **snapshot.to_dict()})
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.info("state_stream_closed", error=str(e))


async def _finish(controller: SessionController,
                  context: SessionContext,
                  publisher: asyncio.Task,
                  started_at: datetime,
                  result: Dict[str, Any],
                  send) -> None:
    await publisher
    try:
        turns = await controller.wait()
    except SessionFailedError as e:
        context.log.error("session_failed", error=e.details.get("error"))
        await _send_error(send, e)
        return
    score = await score_session(context.oracle, controller.setup, turns)
    result["record"] = build_record(context.user_id, controller.setup, score, turns, started_at)
    try:
        await send({
            "type": "result",
            "score": score.score,
            "summary": score.summary,
            "degraded": score.degraded,
            "stopped_reason": controller.state.stopped_reason,
            "turns": [turn.model_dump(mode="json") for turn in turns],
        })
    except (WebSocketDisconnect, RuntimeError) as e:
        context.log.info("result_not_delivered", error=str(e))


async def interview_socket(websocket: WebSocket):
    await websocket.accept()
    app_state = websocket.app.state
    settings = app_state.settings
    send_lock = asyncio.Lock()

    async def send(payload: Dict[str, Any]) -> None:
        async with send_lock:
            await websocket.send_json(payload)

    try:
        hello = await websocket.receive_json()
    except WebSocketDisconnect:
        return
    if hello.get("type") != "setup":
        await send({"type": "error", "code": "PROTOCOL", "message": "Expected a setup message."})
        await websocket.close(code=1003)
        return

    capabilities = hello.get("capabilities") or {}
    if capabilities.get("capture") and capabilities.get("playback"):
        speech = WebSocketSpeech(
            send,
            settings,
            capture_supported=True,
            playback_supported=True,
            voices=capabilities.get("voices") or [],
        )
    else:
        speech = TextOnlySpeech()

    context = SessionContext(
        settings=settings,
        oracle=app_state.oracle,
        question_source=OracleQuestionSource(app_state.oracle, settings),
        speech=speech,
        user_id=str(hello.get("user_id") or "anonymous"),
    )
    controller = SessionController(context)

    async with context:
        try:
            await controller.start(hello.get("setup") or {})
        except (InvalidSetupError, QuestionGenerationError) as e:
            context.log.warning("session_not_started", code=e.code, error=e.message)
            await send({"type": "error", "code": e.code, "message": e.message, "details": e.details})
            await websocket.close()
            return

        result: Dict[str, Any] = {}
        publisher = asyncio.create_task(_publish_states(controller, send))
        finisher = asyncio.create_task(
            _finish(controller, context, publisher, datetime.now(timezone.utc), result, send)
        )
        try:
            while True:
                message = await websocket.receive_json()
                kind = message.get("type")

                if kind == "submit":
                    controller.submit_answer(message.get("text"))
                elif kind == "skip":
                    controller.skip()
                elif kind == "stop":
                    try:
                        await controller.stop("user")
                    except SessionFailedError as e:
                        await _send_error(send, e)
                elif kind == "save":
                    record = result.get("record")
                    if record is None:
                        await send({"type": "notice", "message": "The interview is still in progress."})
                        continue
                    outcome = await save_session(app_state.store, record)
                    result["record"] = outcome.record
                    if outcome.saved:
                        await send({"type": "saved", "id": outcome.record_id})
                    else:
                        await send({"type": "notice", "message": outcome.notice})
                elif isinstance(speech, WebSocketSpeech) and await speech.handle_message(message):
                    continue
                else:
                    context.log.debug("message_ignored", type=kind)
        except WebSocketDisconnect:
            context.log.info("client_disconnected")
        finally:
            if controller.state.phase is not Phase.COMPLETE:
                try:
                    await controller.stop("disconnected")
                except SessionFailedError as e:
                    context.log.warning("session_failed_on_disconnect", error=e.message)
            for task in (finisher, publisher):
                if not task.done():
                    task.cancel()
