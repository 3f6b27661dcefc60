"""
Image Generate Tool

Generates a slide image with a Gemini-compatible image model and saves the
first returned image to the session disk. Only the artifact path goes back
to the model; image bytes never enter the conversation.
"""

import asyncio
import logging
import random
import re
import string
import time
from datetime import date
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from google import genai
from google.genai import types

from ..errors import ConfigurationError, ToolExecutionFailure, mask_token
from ..models import ImageGenerateConfig, ToolContext
from .disk import LocalDiskStore
from .registry import ToolFamily, ToolOutcome, ToolStep, function_schema, names_matcher

logger = logging.getLogger(__name__)

TOOL_NAME = "image_generate"
VALID_SIZES = ("1K", "2K", "4K")
ASPECT_RATIO = "16:9"

CHARACTER_ID_PATTERN = re.compile(r"^character\d+$", re.IGNORECASE)
CHARACTER_REFERENCE_FILES = (
    "reference.png",
    "reference.webp",
    "reference.jpg",
    "reference.jpeg",
    "ppt girl.png",
)
_MIME_BY_SUFFIX = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}

CHARACTER_PROMPT_PREFIX = (
    "Use the provided character image as the MAIN SUBJECT. "
    "Preserve identity (face, hair, outfit), pose can change, keep the same person. "
    "Integrate the character naturally into the scene; match lighting/shadows; "
    "avoid cutout/sticker look.\n\n"
)

IMAGE_GENERATE_SCHEMA = function_schema(
    name=TOOL_NAME,
    description=(
        "Generate one or more images from a text prompt. The image model is selected "
        "by the server; the tool caller cannot override the model. Results are saved "
        "as artifacts to the current session disk. IMPORTANT: Return ONLY the "
        "artifactPath. Do not output any presigned/public URLs. When you mention a "
        "generated image in your natural language response, refer to it using the "
        "artifact path with a 'disk::' prefix (for example: "
        "disk::ppt_slides/image_123.jpg), not a URL."
    ),
    properties={
        "prompt": {
            "type": "string",
            "description": (
                "Text prompt describing what to generate. Be specific about subject, "
                "style, lighting, composition, and constraints."
            ),
        },
        "size": {
            "type": "string",
            "enum": list(VALID_SIZES),
            "description": "Image size preset. Default: 1K.",
        },
        "output_dir": {
            "type": "string",
            "description": (
                'Optional output directory inside the session disk. Example: '
                '"generated_images". Default: "generated/YYYY-MM-DD".'
            ),
        },
    },
    required=["prompt"],
)


def sanitize_output_dir(value: str) -> str:
    """Keep only ``[a-zA-Z0-9/_-]`` and drop empty, ``.`` and ``..`` segments."""
    normalized = value.strip().replace("\\", "/")
    segments = [p for p in normalized.split("/") if p and p not in (".", "..")]
    return re.sub(r"[^a-zA-Z0-9/_-]", "_", "/".join(segments))


def extension_for(mime_type: Optional[str]) -> str:
    mime_type = (mime_type or "").lower()
    if "png" in mime_type:
        return "png"
    if "jpeg" in mime_type or "jpg" in mime_type:
        return "jpg"
    if "webp" in mime_type:
        return "webp"
    if "gif" in mime_type:
        return "gif"
    return "bin"


def _rand_id(length: int = 8) -> str:
    return "".join(random.choices(string.digits + string.ascii_lowercase, k=length))


class ImageGenerator:
    """Runs image generation requests for the ``image_generate`` tool."""

    def __init__(
        self,
        config: ImageGenerateConfig,
        disk_store: LocalDiskStore,
        client: Optional[genai.Client] = None,
    ):
        self.config = config
        self.disk_store = disk_store
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.config.api_key:
                raise ConfigurationError("IMAGE_GEN_API_KEY is not configured")
            http_options = None
            if self.config.base_url:
                http_options = types.HttpOptions(base_url=self.config.base_url)
            logger.info(
                f"Initializing image client (key {mask_token(self.config.api_key)}, "
                f"base_url {self.config.base_url or '(default)'})"
            )
            self._client = genai.Client(api_key=self.config.api_key, http_options=http_options)
        return self._client

    def load_character_reference(self, character_id: Optional[str]) -> Optional[types.Part]:
        """Reference image part for ``character<N>`` ids, if a file exists."""
        character_id = (character_id or "").strip()
        if not CHARACTER_ID_PATTERN.match(character_id):
            return None

        directory = Path(self.config.characters_dir) / character_id.lower()
        for filename in CHARACTER_REFERENCE_FILES:
            path = directory / filename
            try:
                if not path.is_file():
                    continue
                data = path.read_bytes()
            except OSError as e:
                logger.debug(f"Skipping character reference {path}: {e}")
                continue
            mime_type = _MIME_BY_SUFFIX.get(path.suffix.lower(), "application/octet-stream")
            logger.info(f"Injecting character reference {path} ({mime_type})")
            return types.Part.from_bytes(data=data, mime_type=mime_type)
        return None

    def build_request(self, args: dict, context: ToolContext) -> dict:
        """Validate arguments and assemble the ``generate_content`` kwargs."""
        prompt = args.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ToolExecutionFailure("prompt must be a non-empty string")
        prompt = prompt.strip()

        size = args.get("size") or "1K"
        if size not in VALID_SIZES:
            raise ToolExecutionFailure(f"size must be one of {', '.join(VALID_SIZES)}")

        model = self.config.model
        if not model:
            raise ConfigurationError("IMAGE_GEN_DEFAULT_MODEL is not configured")

        # only the gemini-3 pro image models accept an explicit size
        if "gemini-3-pro-image" in model:
            image_config = types.ImageConfig(aspect_ratio=ASPECT_RATIO, image_size=size)
        else:
            image_config = types.ImageConfig(aspect_ratio=ASPECT_RATIO)

        contents: Union[str, list] = prompt
        reference = self.load_character_reference(context.character_id)
        if reference is not None:
            contents = [reference, CHARACTER_PROMPT_PREFIX + prompt]

        return {
            "model": model,
            "contents": contents,
            "config": types.GenerateContentConfig(image_config=image_config),
        }

    async def generate(self, request: dict):
        """Call the image model, bounded by the configured timeout."""
        timeout = self.config.timeout
        try:
            return await asyncio.wait_for(
                self.client.aio.models.generate_content(**request),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ToolExecutionFailure(
                f"Image generation API call timed out after {int(timeout * 1000)}ms. "
                "This usually indicates the IMAGE_GEN_BASE_URL service is unreachable or very slow."
            ) from e
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Image generation call failed for model {request.get('model')}: {e}")
            raise ToolExecutionFailure(
                f"Image generation API call failed: {e}. Check IMAGE_GEN_API_KEY, "
                "IMAGE_GEN_BASE_URL, network connectivity, and the upstream image service status."
            ) from e

    @staticmethod
    def first_image(response) -> Optional[tuple[bytes, str]]:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return None
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                return inline.data, inline.mime_type or "application/octet-stream"
        return None

    async def save(self, args: dict, context: ToolContext, data: bytes, mime_type: str) -> str:
        """Write the image to the session disk and return its artifact path."""
        output_dir = args.get("output_dir")
        prefix = sanitize_output_dir(output_dir) if output_dir else ""
        if not prefix:
            prefix = f"generated/{date.today().isoformat()}"
        filename = f"image_{int(time.time() * 1000)}_{_rand_id()}_1.{extension_for(mime_type)}"
        path = await self.disk_store.write(context.disk_id, prefix, filename, data)
        return path.lstrip("/")

    async def stream(self, name: str, args: dict, context: ToolContext) -> AsyncIterator:
        request = self.build_request(args, context)
        yield ToolStep({"status": "generating", "model": request["model"]})
        response = await self.generate(request)

        image = self.first_image(response)
        if image is None:
            logger.warning("Image model returned no image")
            yield ToolOutcome({"artifactPath": None})
            return

        yield ToolStep({"status": "uploading"})
        artifact_path = await self.save(args, context, *image)
        logger.info(f"Saved generated image to {artifact_path}")
        yield ToolOutcome({"artifactPath": artifact_path})

    async def execute(self, name: str, args: dict, context: ToolContext) -> dict:
        result = {"artifactPath": None}
        async for update in self.stream(name, args, context):
            if isinstance(update, ToolOutcome):
                result = update.result
        return result


def create_image_generate_family(
    config: ImageGenerateConfig,
    disk_store: LocalDiskStore,
    client: Optional[genai.Client] = None,
) -> ToolFamily:
    """Build the image generation tool family."""
    generator = ImageGenerator(config, disk_store, client=client)
    return ToolFamily(
        name="image_generate",
        owns=names_matcher(TOOL_NAME),
        execute=generator.execute,
        stream=generator.stream,
        schemas=[IMAGE_GENERATE_SCHEMA],
    )
