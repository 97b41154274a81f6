"""Tests for the Pydantic models."""

from src.skinny_studio.models import (
    ChatAttachment,
    ChatMessage,
    Generation,
    GenerationResult,
    ImagePurpose,
    Storyboard,
    StoryboardShot,
)


def test_generation_result_from_api() -> None:
    generation = GenerationResult.from_api(
        {
            "status": "complete",
            "model": "flux-2-pro",
            "params": {"prompt": "a red fox"},
            "result": {"imageUrl": "https://cdn/fox.png", "prompt": "a red fox"},
            "outputUrls": ["https://cdn/fox.png"],
            "pending": True,
        },
    )
    assert generation.result is not None
    assert generation.result.image_url == "https://cdn/fox.png"
    assert generation.output_urls == ["https://cdn/fox.png"]
    assert generation.is_stuck


def test_generation_result_balance_fields() -> None:
    generation = GenerationResult.from_api(
        {
            "status": "error",
            "model": "veo-3.1",
            "error": "Insufficient balance",
            "code": "INSUFFICIENT_BALANCE",
            "required": 120,
            "available": 40,
        },
    )
    assert generation.error_code == "INSUFFICIENT_BALANCE"
    assert generation.required == 120
    assert not generation.is_stuck


def test_effective_prompt_fallbacks() -> None:
    assert GenerationResult(status="generating", model="m", prompt="p").effective_prompt == "p"
    assert (
        GenerationResult(status="generating", model="m", params={"prompt": "q"}).effective_prompt
        == "q"
    )
    assert GenerationResult(status="generating", model="m").effective_prompt is None


def test_chat_message_to_api() -> None:
    message = ChatMessage(
        role="user",
        content="make it blue",
        attachments=[
            ChatAttachment(
                url="https://cdn/a.png",
                name="a.png",
                purpose=ImagePurpose.EDIT_TARGET,
            ),
        ],
    )
    payload = message.to_api()
    assert payload["role"] == "user"
    assert payload["attachments"][0]["purpose"] == "edit_target"
    assert "attachments" not in ChatMessage(role="assistant", content="hi").to_api()


def test_generation_null_outputs() -> None:
    generation = Generation.model_validate(
        {"id": "g1", "model_slug": "flux-dev", "output_urls": None},
    )
    assert generation.output_urls == []


def test_storyboard_sorts_shots() -> None:
    storyboard = Storyboard(
        id="sb1",
        title="Launch",
        shots=[
            StoryboardShot(id="s2", shot_number=2, sort_order=1),
            StoryboardShot(id="s1", shot_number=1, sort_order=0),
        ],
    )
    assert [s.id for s in storyboard.shots] == ["s1", "s2"]
