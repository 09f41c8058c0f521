"""
Session API endpoints

Handles the interview session lifecycle:
- Starting the session
- Reading the current snapshot
- Applying user intents (answer, review)
- Serving recorded clips
"""

import asyncio
import base64
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from autointerview.core.session_controller import SessionController
from autointerview.api.dependencies import (
    SessionAlreadyRunning,
    get_controller,
    start_session,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class StartRequest(BaseModel):
    """Session entry parameters, threaded unchanged to the remote API."""
    job_id: str
    interview_id: str


# ============================================================================
# HELPERS
# ============================================================================

INTENTS = (
    "start_answering",
    "stop_answering",
    "repeat_question",
    "enter_review",
    "exit_review",
    "review_next",
    "review_previous",
    "review_replay",
)


async def apply_intent(controller: SessionController, intent: str) -> bool:
    """Dispatch a named user intent to the controller."""
    if intent == "exit_review":
        return await controller.exit_review()

    handlers = {
        "start_answering": controller.start_answering_now,
        "stop_answering": controller.stop_answering_now,
        "repeat_question": controller.repeat_question,
        "enter_review": controller.enter_review,
        "review_next": controller.review_next,
        "review_previous": controller.review_previous,
        "review_replay": controller.review_replay_narration,
    }
    handler = handlers.get(intent)
    if handler is None:
        raise ValueError(f"Unknown intent: {intent}")
    return handler()


def _require_controller() -> SessionController:
    controller = get_controller()
    if controller is None:
        raise HTTPException(status_code=404, detail="No session started")
    return controller


async def _intent_response(intent: str) -> dict[str, Any]:
    controller = _require_controller()
    accepted = await apply_intent(controller, intent)
    if not accepted:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot {intent.replace('_', ' ')} in phase: {controller.phase.value}"
        )
    return controller.snapshot().to_payload()


# ============================================================================
# REST ENDPOINTS
# ============================================================================

@router.post("/start")
async def start(request: StartRequest) -> dict[str, Any]:
    """
    Start the interview session.

    Loads questions and enters the first question; the capture device is
    acquired in the background.
    """
    try:
        controller = await start_session(request.job_id, request.interview_id)
    except SessionAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))

    return controller.snapshot().to_payload()


@router.get("")
async def get_snapshot() -> dict[str, Any]:
    """Get the current session snapshot."""
    return _require_controller().snapshot().to_payload()


@router.post("/answer/start")
async def start_answering() -> dict[str, Any]:
    """Start recording the answer now instead of waiting for the countdown."""
    return await _intent_response("start_answering")


@router.post("/answer/stop")
async def stop_answering() -> dict[str, Any]:
    """Finish the answer before the timer runs out."""
    return await _intent_response("stop_answering")


@router.post("/question/repeat")
async def repeat_question() -> dict[str, Any]:
    """Read the current question aloud again."""
    return await _intent_response("repeat_question")


@router.post("/review/enter")
async def enter_review() -> dict[str, Any]:
    return await _intent_response("enter_review")


@router.post("/review/exit")
async def exit_review() -> dict[str, Any]:
    return await _intent_response("exit_review")


@router.post("/review/next")
async def review_next() -> dict[str, Any]:
    return await _intent_response("review_next")


@router.post("/review/previous")
async def review_previous() -> dict[str, Any]:
    return await _intent_response("review_previous")


@router.post("/review/replay")
async def review_replay() -> dict[str, Any]:
    """Read the reviewed answer's question aloud."""
    return await _intent_response("review_replay")


@router.get("/clips/{index}")
async def get_clip(index: int) -> Response:
    """Serve the media of a recorded answer."""
    controller = _require_controller()
    clips = controller.clips

    if index < 0 or index >= len(clips):
        raise HTTPException(status_code=404, detail="Clip not found")

    clip = clips[index]
    return Response(content=clip.media, media_type=clip.content_type)


@router.get("/clips/{index}/audio")
async def get_clip_audio(index: int) -> Response:
    """Serve the audio track recorded next to a video answer."""
    controller = _require_controller()
    clips = controller.clips

    if index < 0 or index >= len(clips) or not clips[index].audio:
        raise HTTPException(status_code=404, detail="Audio track not found")

    clip = clips[index]
    return Response(content=clip.audio, media_type=clip.audio_content_type or "audio/wav")


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_session(websocket: WebSocket):
    """
    WebSocket endpoint for real-time session rendering.

    Client sends:
    - intent: {"type": "intent", "intent": "<name>"}
    - ping

    Server sends:
    - snapshot: Session state after every change and timer tick
    - narration_audio: Base64 audio to play for the current question
    - rejected: Intent not accepted in the current phase
    - error: Error occurred
    """
    await websocket.accept()

    controller = get_controller()
    if controller is None:
        await websocket.close(code=4004, reason="No session started")
        return

    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def on_snapshot(snapshot):
        queue.put_nowait({"type": "snapshot", "data": snapshot.to_payload()})

    def on_audio(audio: bytes, audio_format: str):
        queue.put_nowait({
            "type": "narration_audio",
            "data": {
                "audio_base64": base64.b64encode(audio).decode("utf-8"),
                "format": audio_format,
            },
        })

    async def pump():
        while True:
            message = await queue.get()
            await websocket.send_json(message)

    controller.on_snapshot(on_snapshot)
    controller.on_narration_audio(on_audio)
    on_snapshot(controller.snapshot())
    sender = asyncio.create_task(pump())

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                queue.put_nowait({"type": "error", "message": "Expected a JSON object"})
                continue
            message_type = data.get("type")

            if message_type == "intent":
                intent = data.get("intent", "")
                if intent not in INTENTS:
                    queue.put_nowait({"type": "error", "message": f"Unknown intent: {intent}"})
                    continue
                if not await apply_intent(controller, intent):
                    queue.put_nowait({
                        "type": "rejected",
                        "intent": intent,
                        "phase": controller.phase.value,
                    })

            elif message_type == "ping":
                queue.put_nowait({"type": "pong"})

    except WebSocketDisconnect:
        # Client disconnected
        pass
    finally:
        controller.remove_snapshot_callback(on_snapshot)
        controller.remove_narration_audio_callback(on_audio)
        sender.cancel()
        results = await asyncio.gather(sender, return_exceptions=True)
        if results and isinstance(results[0], Exception):
            logger.warning(f"WebSocket sender stopped: {results[0]}")
