# tests/test_controller.py
import asyncio

import pytest

from interview_coach.application.controller import (
    CLOSING_REMARK,
    EMPTY_ANSWER_MESSAGE,
    FEEDBACK_ERROR_MESSAGE,
)
from interview_coach.application.interview_session import Phase
from interview_coach.core.exceptions import (
    CaptureError,
    InvalidSetupError,
    OracleError,
    PlaybackError,
    QuestionGenerationError,
    SessionFailedError,
)
from interview_coach.core.models import FeedbackKind, Turn

from conftest import FakeSpeech

FIVE_QUESTIONS = ["Q1", "Q2", "Q3", "Q4", "Q5"]


def bank_setup(questions, **extra):
    setup = {"role": "Backend Engineer", "difficulty": "Medium", "question_bank": questions}
    setup.update(extra)
    return setup


@pytest.mark.asyncio
async def test_voice_session_runs_every_phase(make_controller, speech, oracle, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1", "Q2"]))

    await wait_until(lambda: controller.state.phase is Phase.ASKING)
    assert speech.spoken[-1] == "Q1"
    assert controller.state.voice_enabled is True

    speech.finish_speaking()
    await wait_until(lambda: speech.capturing)
    assert controller.state.phase is Phase.LISTENING

    speech.hear("I would use", is_final=False)
    await wait_until(lambda: controller.state.live_transcript == "I would use")
    assert controller.state.phase is Phase.LISTENING

    speech.hear("I would use a queue ", is_final=True)
    await wait_until(lambda: controller.state.phase is Phase.FEEDBACK)
    state = controller.state
    assert oracle.feedback_calls == [("Q1", "I would use a queue", "Backend Engineer", "Medium")]
    assert len(state.turns) == state.current_index + 1
    assert state.turns[0].response == "I would use a queue"
    assert speech.spoken[-1].startswith("Here's some feedback.")

    speech.finish_speaking()
    await wait_until(lambda: controller.state.phase is Phase.ASKING)
    assert controller.state.current_index == 1
    assert controller.state.live_transcript == ""
    assert controller.state.feedback is None
    assert speech.spoken[-1] == "Q2"

    speech.finish_speaking()
    await wait_until(lambda: controller.state.phase is Phase.LISTENING)
    speech.hear("A hash map", is_final=True)
    await wait_until(lambda: controller.state.phase is Phase.FEEDBACK)
    speech.finish_speaking()

    turns = await asyncio.wait_for(controller.wait(), 2)
    assert [t.question for t in turns] == ["Q1", "Q2"]
    assert controller.state.phase is Phase.COMPLETE
    assert controller.state.stopped_reason is None
    assert speech.spoken[-1] == CLOSING_REMARK


@pytest.mark.asyncio
async def test_every_question_produces_one_turn(make_controller, wait_until):
    controller = make_controller(FakeSpeech(supported=False))
    await controller.start(bank_setup(["Q1", "Q2", "Q3"]))

    for index, action in enumerate(["answer", "skip", "answer"]):
        await wait_until(lambda: controller.state.phase is Phase.LISTENING
                         and controller.state.current_index == index)
        if action == "skip":
            controller.skip()
        else:
            controller.submit_answer(f"answer {index}")

    turns = await asyncio.wait_for(controller.wait(), 2)
    assert len(turns) == 3
    assert turns[1].response == ""
    assert turns[1].feedback.kind is FeedbackKind.SKIPPED


@pytest.mark.asyncio
async def test_blank_submission_is_ignored(make_controller, oracle, wait_until):
    controller = make_controller(FakeSpeech(supported=False))
    await controller.start(bank_setup(["Q1", "Q2"]))
    await wait_until(lambda: controller.state.phase is Phase.LISTENING)

    controller.submit_answer("   \n ")
    await wait_until(lambda: controller.state.error == EMPTY_ANSWER_MESSAGE)

    state = controller.state
    assert state.turns == ()
    assert state.current_index == 0
    assert state.phase is Phase.LISTENING
    assert oracle.feedback_calls == []
    await controller.stop()


@pytest.mark.asyncio
async def test_stop_and_submit_uses_live_transcript(make_controller, speech, oracle, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1"]))
    speech.finish_speaking()
    await wait_until(lambda: speech.capturing)

    speech.hear("partial thought", is_final=False)
    await wait_until(lambda: controller.state.live_transcript == "partial thought")
    controller.submit_answer()

    await wait_until(lambda: controller.state.phase is Phase.FEEDBACK)
    assert controller.state.turns[0].response == "partial thought"
    assert not speech.capturing
    await controller.stop()


@pytest.mark.asyncio
async def test_empty_final_capture_rearms_listening(make_controller, speech, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1"]))
    speech.finish_speaking()
    await wait_until(lambda: speech.capture_starts == 1)

    speech.hear("   ", is_final=True)
    await wait_until(lambda: speech.capture_starts == 2)

    state = controller.state
    assert state.phase is Phase.LISTENING
    assert state.turns == ()
    assert speech.capture_stops == 1
    await controller.stop()


@pytest.mark.asyncio
async def test_failed_feedback_still_records_turn(make_controller, speech, oracle, wait_until):
    oracle.feedback_error = OracleError("unreachable")
    controller = make_controller()
    await controller.start(bank_setup(FIVE_QUESTIONS))
    speech.finish_speaking()
    await wait_until(lambda: speech.capturing)

    controller.submit_answer("I don't know")
    await wait_until(lambda: controller.state.phase is Phase.FEEDBACK)

    state = controller.state
    assert len(state.turns) == 1
    assert state.turns[0].response == "I don't know"
    assert state.turns[0].feedback.kind is FeedbackKind.ERROR
    assert state.error == FEEDBACK_ERROR_MESSAGE
    assert speech.spoken[-1] == FEEDBACK_ERROR_MESSAGE

    speech.finish_speaking()
    await wait_until(lambda: controller.state.phase is Phase.ASKING)
    assert controller.state.current_index == 1
    assert controller.state.current_question == "Q2"
    assert controller.state.error is None
    await controller.stop()


@pytest.mark.asyncio
async def test_stop_after_two_questions_returns_partial_transcript(make_controller, wait_until):
    controller = make_controller(FakeSpeech(supported=False))
    await controller.start(bank_setup(FIVE_QUESTIONS))

    for index in range(2):
        await wait_until(lambda: controller.state.phase is Phase.LISTENING
                         and controller.state.current_index == index)
        controller.submit_answer(f"answer {index + 1}")

    await wait_until(lambda: controller.state.current_index == 2)
    turns = await asyncio.wait_for(controller.stop(), 2)

    assert len(turns) == 2
    assert all(isinstance(turn, Turn) for turn in turns)
    assert [t.response for t in turns] == ["answer 1", "answer 2"]
    assert [t.question for t in turns] == ["Q1", "Q2"]
    assert controller.state.phase is Phase.COMPLETE
    assert controller.state.stopped_reason == "user"


@pytest.mark.asyncio
async def test_stop_while_processing_drops_unanswered_turn(make_controller, speech, oracle, wait_until):
    oracle.feedback_gate = asyncio.Event()
    controller = make_controller()
    await controller.start(bank_setup(["Q1", "Q2"]))
    speech.finish_speaking()
    await wait_until(lambda: speech.capturing)

    controller.submit_answer("thinking out loud")
    await wait_until(lambda: controller.state.phase is Phase.PROCESSING)

    turns = await asyncio.wait_for(controller.stop(), 2)
    assert turns == ()
    oracle.feedback_gate.set()
    await asyncio.sleep(0.01)
    assert controller.state.turns == ()


@pytest.mark.asyncio
async def test_late_capture_result_after_submit_is_dropped(make_controller, speech, oracle, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1", "Q2"]))
    speech.finish_speaking()
    await wait_until(lambda: speech.capturing)

    controller.submit_answer("typed answer")
    speech.hear("spoken answer", is_final=True)

    await wait_until(lambda: controller.state.phase is Phase.FEEDBACK)
    await asyncio.sleep(0.01)
    assert len(controller.state.turns) == 1
    assert controller.state.turns[0].response == "typed answer"
    assert len(oracle.feedback_calls) == 1
    await controller.stop()


@pytest.mark.asyncio
async def test_cancelled_question_playback_does_not_advance(make_controller, speech, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1", "Q2"]))
    await wait_until(lambda: speech.spoken == ["Q1"])
    stale_done = speech._on_done

    controller.skip()
    await wait_until(lambda: controller.state.current_index == 1
                     and controller.state.phase is Phase.ASKING)
    stale_done()
    await asyncio.sleep(0.01)

    assert controller.state.phase is Phase.ASKING
    assert not speech.capturing
    await controller.stop()


@pytest.mark.asyncio
async def test_typed_answer_while_question_is_spoken(make_controller, speech, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1"]))
    await wait_until(lambda: controller.state.phase is Phase.ASKING)

    cancels = speech.cancel_count
    controller.submit_answer("I know this one")
    await wait_until(lambda: controller.state.phase is Phase.FEEDBACK)

    assert speech.cancel_count > cancels
    assert controller.state.turns[0].response == "I know this one"
    await controller.stop()


@pytest.mark.asyncio
async def test_capture_failure_falls_back_to_text(make_controller, speech, oracle, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1", "Q2"]))
    speech.finish_speaking()
    await wait_until(lambda: speech.capturing)

    speech.fail_capture(CaptureError("Microphone permission denied."))
    await wait_until(lambda: controller.state.capture_enabled is False)
    assert controller.state.phase is Phase.LISTENING
    assert controller.state.playback_enabled is True
    assert controller.state.error == "Microphone permission denied."
    starts = speech.capture_starts

    controller.submit_answer("typed instead")
    await wait_until(lambda: controller.state.phase is Phase.FEEDBACK)
    assert speech.spoken[-1].startswith("Here's some feedback.")

    speech.finish_speaking()
    await wait_until(lambda: controller.state.phase is Phase.ASKING)
    assert speech.spoken[-1] == "Q2"

    speech.finish_speaking()
    await wait_until(lambda: controller.state.current_index == 1
                     and controller.state.phase is Phase.LISTENING)
    assert controller.state.turns[0].response == "typed instead"
    assert speech.capture_starts == starts
    assert not speech.capturing
    await controller.stop()


@pytest.mark.asyncio
async def test_playback_failure_does_not_stall(make_controller, speech, wait_until):
    speech.speak_error = PlaybackError("Speech playback failed.")
    controller = make_controller()
    await controller.start(bank_setup(["Q1"]))

    await wait_until(lambda: controller.state.phase is Phase.LISTENING
                     and controller.state.error is not None)
    assert controller.state.error == "Speech playback failed."
    assert speech.capturing
    await controller.stop()


@pytest.mark.asyncio
async def test_session_timer_behaves_like_stop(make_controller, wait_until):
    controller = make_controller(FakeSpeech(supported=False))
    await controller.start(bank_setup(["Q1", "Q2"], duration_minutes=0.0005))

    turns = await asyncio.wait_for(controller.wait(), 2)
    assert turns == ()
    assert controller.state.phase is Phase.COMPLETE
    assert controller.state.stopped_reason == "time_up"


@pytest.mark.asyncio
async def test_text_only_setup_overrides_voice(make_controller, speech, wait_until):
    controller = make_controller()
    await controller.start(bank_setup(["Q1"], text_only=True))
    await wait_until(lambda: controller.state.phase is Phase.LISTENING)

    assert controller.state.voice_enabled is False
    assert speech.spoken == []
    assert speech.capture_starts == 0
    await controller.stop()


@pytest.mark.asyncio
async def test_snapshot_stream_ends_at_complete(make_controller, wait_until):
    controller = make_controller(FakeSpeech(supported=False))
    await controller.start(bank_setup(["Q1"]))

    async def collect():
        return [snapshot async for snapshot in controller.snapshots()]

    collector = asyncio.create_task(collect())
    await wait_until(lambda: controller.state.phase is Phase.LISTENING)
    controller.skip()

    snapshots = await asyncio.wait_for(collector, 2)
    assert snapshots[-1].phase is Phase.COMPLETE
    assert len(snapshots[-1].turns) == 1
    assert all(s.phase is not Phase.COMPLETE for s in snapshots[:-1])


@pytest.mark.asyncio
async def test_invalid_setup_aborts_start(make_controller):
    controller = make_controller()
    with pytest.raises(InvalidSetupError):
        await controller.start({"role": "x", "difficulty": "Impossible"})
    assert controller.state.phase is Phase.IDLE


@pytest.mark.asyncio
async def test_question_failure_aborts_start(make_controller, oracle):
    oracle.complete_error = OracleError("down")
    controller = make_controller()
    with pytest.raises(QuestionGenerationError):
        await controller.start({"role": "Backend Engineer", "difficulty": "Hard"})


@pytest.mark.asyncio
async def test_stop_before_start_returns_empty(make_controller):
    controller = make_controller()
    assert await controller.stop() == ()


@pytest.mark.asyncio
async def test_unexpected_error_ends_session_as_failed(make_controller, speech):
    speech.capture_start_error = RuntimeError("audio driver crashed")
    controller = make_controller()
    await controller.start(bank_setup(["Q1", "Q2"]))
    speech.finish_speaking()

    with pytest.raises(SessionFailedError) as exc_info:
        await asyncio.wait_for(controller.wait(), 2)
    assert exc_info.value.details == {"error": "audio driver crashed"}
    assert controller.state.phase is Phase.COMPLETE
    assert controller.state.stopped_reason == "error"

    with pytest.raises(SessionFailedError):
        await controller.stop()
