import httpx
import pytest

from autointerview.core.errors import UploadFailed
from autointerview.core.upload_client import UploadClient, file_name
from autointerview.models.session import RecordingClip

from tests.conftest import make_settings


def make_uploader(handler) -> UploadClient:
    client = httpx.AsyncClient(
        base_url="https://interviews.test",
        transport=httpx.MockTransport(handler),
    )
    return UploadClient("interview-7", make_settings(), client=client)


CLIP = RecordingClip(question_index=1, question_text="Why?", media=b"RIFFdata", content_type="audio/wav")


async def test_upload_posts_clip_and_question():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"status": "queued"})

    uploader = make_uploader(handler)
    try:
        result = await uploader.upload(CLIP, "Why?")
    finally:
        await uploader.close()

    assert result == {"status": "queued"}
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/call/process/"
    assert request.url.params["interview_id"] == "interview-7"

    body = request.content
    assert b'name="video_file"; filename="answer_2.wav"' in body
    assert b"RIFFdata" in body
    assert b'name="question"' in body
    assert b"Why?" in body


async def test_upload_server_error_raises():
    uploader = make_uploader(lambda request: httpx.Response(503))
    try:
        with pytest.raises(UploadFailed):
            await uploader.upload(CLIP, "Why?")
    finally:
        await uploader.close()


async def test_upload_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    uploader = make_uploader(handler)
    try:
        with pytest.raises(UploadFailed):
            await uploader.upload(CLIP, "Why?")
    finally:
        await uploader.close()


async def test_upload_non_json_response_is_empty_dict():
    uploader = make_uploader(lambda request: httpx.Response(200, text="ok"))
    try:
        assert await uploader.upload(CLIP, "Why?") == {}
    finally:
        await uploader.close()


@pytest.mark.parametrize("content_type, expected", [
    ("audio/wav", "answer_1.wav"),
    ("video/webm;codecs=vp8,opus", "answer_1.webm"),
    ("video/mp4", "answer_1.mp4"),
    ("application/octet-stream", "answer_1.bin"),
])
def test_file_name_follows_content_type(content_type, expected):
    assert file_name("answer_1", content_type) == expected


async def test_upload_sends_video_and_audio_track():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    clip = RecordingClip(
        question_index=0,
        question_text="Why?",
        media=b"MP4DATA",
        content_type="video/mp4",
        audio=b"RIFFaudio",
        audio_content_type="audio/wav",
    )
    uploader = make_uploader(handler)
    try:
        await uploader.upload(clip, "Why?")
    finally:
        await uploader.close()

    body = requests[0].content
    assert b'name="video_file"; filename="answer_1.mp4"' in body
    assert b"MP4DATA" in body
    assert b'name="audio_file"; filename="answer_1.wav"' in body
    assert b"RIFFaudio" in body
