import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from src.skinny_studio.errors import (
    AuthenticationError,
    ImageUnavailableError,
    InsufficientBalanceError,
    StudioError,
)
from src.skinny_studio.models import ClientConfig, GenerationResult, ImageRetryConfig
from src.skinny_studio.service import StudioService, parse_sse_lines


def _response(status_code=200, payload=None, lines=None, content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "Error"
    response.json.return_value = payload if payload is not None else {}
    response.iter_lines.return_value = lines or []
    response.content = content
    response.__enter__.return_value = response
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def service(session):
    config = ClientConfig(base_url="http://studio.test/", user_token="tok", user_id="u1")
    return StudioService(config, session=session)


def test_parse_sse_lines() -> None:
    lines = [
        "",
        ": keep-alive",
        'data: {"content": "Hel"}',
        "data: not-json",
        'data: {"generation": {"status": "generating", "model": "flux-2-pro"}}',
        'data: {"error": "Out of credits", "code": "INSUFFICIENT_BALANCE"}',
        "data: [DONE]",
    ]
    events = list(parse_sse_lines(lines))
    assert len(events) == 3
    assert events[0].content == "Hel"
    assert events[1].generation.status == "generating"
    assert events[2].code == "INSUFFICIENT_BALANCE"


def test_headers_and_url(service, session) -> None:
    session.request.return_value = _response(payload={"folders": []})
    service.list_folders()

    method, url = session.request.call_args.args
    headers = session.request.call_args.kwargs["headers"]
    assert (method, url) == ("GET", "http://studio.test/api/folders")
    assert headers["x-whop-user-token"] == "tok"
    assert headers["x-whop-user-id"] == "u1"


def test_stream_chat(service, session) -> None:
    session.request.return_value = _response(
        lines=['data: {"content": "Hi"}', 'data: {"content": " there"}', "data: [DONE]"],
    )
    events = list(
        service.stream_chat(
            [{"role": "user", "content": "hello"}],
            model_id="flux-2-pro",
            referenced_skills=[{"name": "Product", "shortcut": "product"}],
        ),
    )
    assert [e.content for e in events] == ["Hi", " there"]
    body = session.request.call_args.kwargs["json"]
    assert body["modelId"] == "flux-2-pro"
    assert body["referencedSkills"][0]["shortcut"] == "product"
    assert session.request.call_args.kwargs["stream"] is True


def test_insufficient_balance(service, session) -> None:
    session.request.return_value = _response(
        status_code=402,
        payload={
            "error": "Insufficient balance",
            "code": "INSUFFICIENT_BALANCE",
            "required": 50,
            "available": 20,
        },
    )
    with pytest.raises(InsufficientBalanceError) as excinfo:
        list(service.stream_chat([{"role": "user", "content": "a video"}]))
    assert excinfo.value.shortfall == 30


def test_authentication_error(service, session) -> None:
    session.request.return_value = _response(status_code=401, payload={"error": "Unauthorized"})
    with pytest.raises(AuthenticationError, match="Unauthorized"):
        service.list_generations()


def test_network_error(service, session) -> None:
    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(StudioError, match="Failed to fetch generations"):
        service.list_generations()


def test_list_generations(service, session) -> None:
    session.request.return_value = _response(
        payload={
            "generations": [
                {"id": "g1", "model_slug": "flux-dev", "prompt": "fox", "output_urls": None},
            ],
            "count": 1,
            "offset": 0,
            "limit": 10,
        },
    )
    generations = service.list_generations(category="image", limit=10, include_pending=True)
    assert generations[0].output_urls == []
    params = session.request.call_args.kwargs["params"]
    assert params == {"limit": 10, "offset": 0, "category": "image", "includePending": "true"}


def test_analyze_image(service, session) -> None:
    session.request.return_value = _response(payload={"analysis": "A fox."})
    assert service.analyze_image(base64_data="abc", mime_type="image/jpeg") == "A fox."
    body = session.request.call_args.kwargs["json"]
    assert body == {"purpose": "analyze", "base64": "abc", "mimeType": "image/jpeg"}

    with pytest.raises(ValueError, match="image payload or URL"):
        service.analyze_image()


def test_estimate_cost_fallback(service, session) -> None:
    session.request.return_value = _response(status_code=500, payload={"error": "down"})
    assert service.estimate_cost("veo-3.1", duration=8, media_type="video") == 50
    assert service.estimate_cost("flux-dev") == 10


def test_estimate_cost_discards_stale(service, session) -> None:
    def respond(*args, **kwargs):
        # A newer estimate starts while this one is in flight.
        service.cost_sequence.begin()
        return _response(payload={"costCents": 12})

    session.request.side_effect = respond
    assert service.estimate_cost("flux-dev") is None


def test_move_generation(service, session) -> None:
    session.request.return_value = _response()
    service.move_generation("g1", None)
    assert session.request.call_args.args[1].endswith("/api/generations/g1/move")
    assert session.request.call_args.kwargs["json"] == {"folder_id": None}


def test_generate_shot_immediate(service, session) -> None:
    session.request.return_value = _response(
        payload={"success": True, "imageUrl": "https://cdn/s1.png", "generationId": "g1"},
    )
    result = service.generate_shot("sb1", "s1", {"modelSlug": "flux-dev"})
    assert result["generationId"] == "g1"


@patch("time.sleep")
def test_generate_shot_polls_pending(mock_sleep, service, session) -> None:
    session.request.side_effect = [
        _response(payload={"pending": True}),
        _response(payload={"status": "generating"}),
        _response(payload={"status": "completed", "imageUrl": "https://cdn/s1.png"}),
    ]
    result = service.generate_shot("sb1", "s1", {"modelSlug": "flux-dev"})
    assert result["imageUrl"] == "https://cdn/s1.png"
    assert session.request.call_count == 3


@patch("time.sleep")
def test_wait_for_shot_timeout(mock_sleep, service, session) -> None:
    session.request.return_value = _response(payload={"status": "generating"})
    with pytest.raises(StudioError, match="timed out"):
        service.wait_for_shot("sb1", "s1", attempts=3, interval=0)
    assert session.request.call_count == 3


@patch("time.sleep")
def test_wait_for_shot_error(mock_sleep, service, session) -> None:
    session.request.return_value = _response(payload={"status": "error", "error": "NSFW"})
    with pytest.raises(StudioError, match="NSFW"):
        service.wait_for_shot("sb1", "s1", attempts=3, interval=0)


@patch("time.sleep")
def test_fetch_image_retries(mock_sleep, service, session) -> None:
    session.get.side_effect = [requests.ConnectionError("reset"), _response(content=b"png")]
    assert service.fetch_image("https://tmp/a.png") == b"png"
    assert session.get.call_count == 2


@patch("time.sleep")
def test_fetch_image_library_fallback(mock_sleep, service, session) -> None:
    session.get.side_effect = [
        requests.HTTPError("expired"),
        requests.HTTPError("expired"),
        _response(content=b"permanent"),
    ]
    session.request.return_value = _response(
        payload={
            "generations": [
                {
                    "id": "g1",
                    "model_slug": "flux-2-pro",
                    "prompt": "a red fox",
                    "replicate_status": "succeeded",
                    "output_urls": ["https://tmp/a.png", "https://cdn/a.png"],
                },
            ],
        },
    )
    generation = GenerationResult(status="complete", model="flux-2-pro", prompt="a red fox")

    data = service.fetch_image(
        "https://tmp/a.png",
        generation=generation,
        config=ImageRetryConfig(retries=1, min_wait=0, max_wait=0),
    )

    assert data == b"permanent"
    assert session.get.call_args.args[0] == "https://cdn/a.png"


@patch("time.sleep")
def test_fetch_image_unavailable(mock_sleep, service, session) -> None:
    session.get.side_effect = requests.HTTPError("gone")
    with pytest.raises(ImageUnavailableError):
        service.fetch_image("https://tmp/a.png", config=ImageRetryConfig(retries=0))


def test_sse_payload_roundtrips_json() -> None:
    payload = {"skillCreation": {"name": "Neon", "shortcut": "neon"}}
    events = list(parse_sse_lines([f"data: {json.dumps(payload)}"]))
    assert events[0].skill_creation["shortcut"] == "neon"


def test_stream_chat_wraps_midstream_failure(service, session) -> None:
    def lines():
        yield 'data: {"content": "Hel"}'
        raise requests.exceptions.ChunkedEncodingError("connection reset")

    response = _response()
    response.iter_lines.return_value = lines()
    session.request.return_value = response

    events = service.stream_chat([{"role": "user", "content": "hello"}])
    assert next(events).content == "Hel"
    with pytest.raises(StudioError, match="Failed to send message"):
        next(events)


def test_update_shot(service, session) -> None:
    session.request.return_value = _response(payload={"shot": {"id": "s1", "durationSeconds": 8}})
    shot = service.update_shot("sb1", "s1", {"mediaType": "video", "durationSeconds": 8})
    assert shot["durationSeconds"] == 8
    method, url = session.request.call_args.args
    assert (method, url) == ("PATCH", "http://studio.test/api/storyboards/sb1/shots/s1")


def test_conversations(service, session) -> None:
    session.request.return_value = _response(
        payload={"conversations": [{"id": "c1", "title": "Fox shoot", "updated_at": "2026-01-02"}]},
    )
    assert [c.title for c in service.list_conversations()] == ["Fox shoot"]

    session.request.return_value = _response(payload={"conversation": {"id": "c2"}})
    created = service.create_conversation(title="New idea", model_id="flux-dev")
    assert created.id == "c2"
    assert created.title == "New Chat"
    assert session.request.call_args.kwargs["json"] == {"title": "New idea", "modelId": "flux-dev"}


def test_get_conversation_and_append(service, session) -> None:
    session.request.return_value = _response(
        payload={
            "conversation": {"id": "c1", "title": "Fox shoot"},
            "messages": [
                {"id": "m1", "role": "user", "content": "a fox", "created_at": "2026-01-02T10:00:00Z"},
                {"id": "m2", "role": "assistant", "content": None},
            ],
            "generations": [],
        },
    )
    conversation, messages = service.get_conversation("c1")
    assert conversation.title == "Fox shoot"
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[0].timestamp.year == 2026
    assert messages[1].content == ""

    session.request.return_value = _response()
    service.append_message("c1", "assistant", "Here you go", generation_id="g1")
    assert session.request.call_args.args[1].endswith("/api/conversations/c1/messages")
    assert session.request.call_args.kwargs["json"] == {
        "role": "assistant",
        "content": "Here you go",
        "generationId": "g1",
    }
