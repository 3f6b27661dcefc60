"""Tests for the image generation tool."""

import asyncio
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from slidechat.errors import ConfigurationError, ToolExecutionFailure
from slidechat.models import ImageGenerateConfig, ToolContext
from slidechat.tools import ToolOutcome, ToolStep
from slidechat.tools.image_generate import (
    CHARACTER_PROMPT_PREFIX,
    ImageGenerator,
    extension_for,
    sanitize_output_dir,
)


def _image_response(data=b"\x89PNG", mime_type="image/png"):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def _mock_client(response=None, side_effect=None) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response, side_effect=side_effect)
    return client


@pytest.fixture
def image_config(tmp_path):
    return ImageGenerateConfig(
        api_key="img-key",
        model="gemini-2.5-flash-image",
        timeout=5.0,
        characters_dir=str(tmp_path / "characters"),
    )


@pytest.fixture
def ctx():
    return ToolContext(disk_id="deck-1", session_id="s1", character_id="character1")


class TestHelpers:
    """Tests for path and MIME helpers."""

    @pytest.mark.parametrize(
        "raw, expected",
        [("slides/img", "slides/img"), ("/../a/./b/", "a/b"), ("my dir!", "my_dir_"), ("a\\b", "a/b")],
    )
    def test_sanitize_output_dir(self, raw, expected):
        assert sanitize_output_dir(raw) == expected

    @pytest.mark.parametrize(
        "mime, ext",
        [("image/png", "png"), ("image/jpeg", "jpg"), ("image/webp", "webp"), ("image/gif", "gif"), (None, "bin")],
    )
    def test_extension_for(self, mime, ext):
        assert extension_for(mime) == ext


class TestBuildRequest:
    """Tests for request assembly."""

    def test_defaults(self, image_config, disk_store):
        generator = ImageGenerator(image_config, disk_store, client=_mock_client())
        request = generator.build_request({"prompt": " A sunrise "}, ToolContext())

        assert request["model"] == "gemini-2.5-flash-image"
        assert request["contents"] == "A sunrise"
        assert request["config"].image_config.aspect_ratio == "16:9"
        assert request["config"].image_config.image_size is None

    def test_pro_model_sends_size(self, image_config, disk_store):
        image_config.model = "gemini-3-pro-image-preview"
        generator = ImageGenerator(image_config, disk_store, client=_mock_client())
        request = generator.build_request({"prompt": "x", "size": "2K"}, ToolContext())
        assert request["config"].image_config.image_size == "2K"

    def test_rejects_empty_prompt(self, image_config, disk_store):
        generator = ImageGenerator(image_config, disk_store, client=_mock_client())
        with pytest.raises(ToolExecutionFailure, match="prompt"):
            generator.build_request({"prompt": "  "}, ToolContext())

    def test_rejects_invalid_size(self, image_config, disk_store):
        generator = ImageGenerator(image_config, disk_store, client=_mock_client())
        with pytest.raises(ToolExecutionFailure, match="size must be one of"):
            generator.build_request({"prompt": "x", "size": "8K"}, ToolContext())

    def test_character_reference_is_injected(self, image_config, disk_store, tmp_path):
        character_dir = tmp_path / "characters" / "character1"
        character_dir.mkdir(parents=True)
        (character_dir / "reference.png").write_bytes(b"\x89PNGref")

        generator = ImageGenerator(image_config, disk_store, client=_mock_client())
        request = generator.build_request({"prompt": "On stage"}, ToolContext(character_id="Character1"))

        reference, prompt = request["contents"]
        assert reference.inline_data.data == b"\x89PNGref"
        assert reference.inline_data.mime_type == "image/png"
        assert prompt == CHARACTER_PROMPT_PREFIX + "On stage"

    def test_other_character_ids_are_ignored(self, image_config, disk_store):
        generator = ImageGenerator(image_config, disk_store, client=_mock_client())
        assert generator.load_character_reference("../etc") is None
        assert generator.load_character_reference("character2") is None


class TestGeneration:
    """Tests for generate, save and stream."""

    @pytest.mark.asyncio
    async def test_stream_saves_image(self, image_config, disk_store, ctx):
        client = _mock_client(_image_response())
        generator = ImageGenerator(image_config, disk_store, client=client)

        updates = [u async for u in generator.stream("image_generate", {"prompt": "Title slide"}, ctx)]

        assert [type(u) for u in updates] == [ToolStep, ToolStep, ToolOutcome]
        assert updates[0].payload["status"] == "generating"
        assert updates[1].payload == {"status": "uploading"}
        artifact = updates[-1].result["artifactPath"]
        assert artifact.startswith(f"generated/{date.today().isoformat()}/image_")
        assert artifact.endswith("_1.png")
        assert list(updates[-1].result) == ["artifactPath"]

        directory, filename = artifact.rsplit("/", 1)
        assert (disk_store.resolve("deck-1", directory, filename)).read_bytes() == b"\x89PNG"
        client.aio.models.generate_content.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_output_dir_is_sanitized(self, image_config, disk_store, ctx):
        generator = ImageGenerator(image_config, disk_store, client=_mock_client(_image_response(mime_type="image/jpeg")))
        result = await generator.execute("image_generate", {"prompt": "x", "output_dir": "../covers"}, ctx)
        assert result["artifactPath"].startswith("covers/image_")
        assert result["artifactPath"].endswith(".jpg")

    @pytest.mark.asyncio
    async def test_no_image_returns_null_path(self, image_config, disk_store, ctx):
        empty = SimpleNamespace(candidates=[])
        generator = ImageGenerator(image_config, disk_store, client=_mock_client(empty))
        assert await generator.execute("image_generate", {"prompt": "x"}, ctx) == {"artifactPath": None}

    @pytest.mark.asyncio
    async def test_timeout(self, image_config, disk_store, ctx):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        image_config.timeout = 0.01
        generator = ImageGenerator(image_config, disk_store, client=_mock_client(side_effect=slow))
        with pytest.raises(ToolExecutionFailure, match="timed out after 10ms"):
            await generator.execute("image_generate", {"prompt": "x"}, ctx)

    @pytest.mark.asyncio
    async def test_upstream_error_is_wrapped(self, image_config, disk_store, ctx):
        generator = ImageGenerator(
            image_config, disk_store, client=_mock_client(side_effect=RuntimeError("403 forbidden"))
        )
        with pytest.raises(ToolExecutionFailure, match="403 forbidden"):
            await generator.execute("image_generate", {"prompt": "x"}, ctx)

    def test_missing_api_key(self, disk_store):
        generator = ImageGenerator(ImageGenerateConfig(model="m"), disk_store)
        with pytest.raises(ConfigurationError, match="IMAGE_GEN_API_KEY"):
            generator.client
