"""Image compression for stored meal photos."""

import asyncio
import base64
import binascii
import io
import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Literal, Protocol

from PIL import Image, ImageOps, UnidentifiedImageError, features
from pydantic import BaseModel, Field

from chilema.config import Settings
from chilema.errors import CodecError

ImageFormat = Literal["jpeg", "webp"]

_logger = logging.getLogger(__name__)

_PIL_FORMATS: dict[str, str] = {"jpeg": "JPEG", "webp": "WEBP"}
_MIME_TYPES: dict[str, str] = {"jpeg": "image/jpeg", "webp": "image/webp"}
_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    SyntaxError,
    ValueError,
)


class EncodeOptions(BaseModel):
    """Bounds applied when compressing a photo."""

    max_dimension: int = Field(default=1024, gt=0)
    quality: float = Field(default=0.78, gt=0.0, le=1.0)
    format: ImageFormat = "jpeg"


class ImageBackend(Protocol):
    """Interface for an image decoding and encoding backend."""

    name: str

    def supports(self, image_format: str) -> bool:
        """Return True when the backend can encode the given format."""

    def encode(self, raw_bytes: bytes, options: EncodeOptions) -> bytes:
        """Decode, downscale and re-encode an image."""


@dataclass
class PillowImageBackend(ImageBackend):
    """Pillow implementation of the image backend."""

    name: str = "pillow"

    def supports(self, image_format: str) -> bool:
        """Check that Pillow was built with the needed encoder."""
        if image_format == "jpeg":
            return bool(features.check_codec("jpg"))
        if image_format == "webp":
            return bool(features.check_module("webp"))
        return False

    def encode(self, raw_bytes: bytes, options: EncodeOptions) -> bytes:
        """Return encoded bytes no larger than ``options.max_dimension``."""
        with ExitStack() as stack:
            try:
                source = stack.enter_context(Image.open(io.BytesIO(raw_bytes)))
                source.load()
                oriented = stack.enter_context(ImageOps.exif_transpose(source))
                prepared = stack.enter_context(_prepare_mode(oriented, options.format))
                width, height = scaled_size(
                    prepared.width, prepared.height, options.max_dimension
                )
                if (width, height) != prepared.size:
                    prepared = stack.enter_context(
                        prepared.resize((width, height), Image.Resampling.LANCZOS)
                    )
            except _DECODE_ERRORS as exc:
                _logger.warning("Image decode failed: %s", exc)
                raise CodecError("The photo could not be read") from exc

            output = io.BytesIO()
            try:
                prepared.save(
                    output,
                    format=_PIL_FORMATS[options.format],
                    quality=_pil_quality(options.quality),
                )
            except (OSError, ValueError) as exc:
                _logger.warning("Image encode failed: %s", exc)
                raise CodecError("The photo could not be compressed") from exc
            return output.getvalue()


def select_backend(
    image_format: str, candidates: tuple[ImageBackend, ...] | None = None
) -> ImageBackend:
    """Return the first backend able to encode ``image_format``."""
    for backend in candidates or (PillowImageBackend(),):
        if backend.supports(image_format):
            return backend
    raise CodecError(f"No image encoder available for {image_format}")


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Scale dimensions uniformly so the longest side fits, never upscaling."""
    scale = min(1.0, max_dimension / max(width, height))
    return (
        max(1, min(max_dimension, int(width * scale + 0.5))),
        max(1, min(max_dimension, int(height * scale + 0.5))),
    )


def encode_image(
    raw_bytes: bytes,
    options: EncodeOptions | None = None,
    backend: ImageBackend | None = None,
) -> str:
    """Compress a photo into a base64 data URI suitable for storage."""
    resolved = options or EncodeOptions()
    chosen = backend or select_backend(resolved.format)
    if not chosen.supports(resolved.format):
        raise CodecError(f"No image encoder available for {resolved.format}")
    encoded = chosen.encode(raw_bytes, resolved)
    data = base64.b64encode(encoded).decode("ascii")
    return f"data:{_MIME_TYPES[resolved.format]};base64,{data}"


def decode_payload(payload: str) -> tuple[str, bytes]:
    """Split a data URI into its MIME type and raw bytes."""
    header, sep, data = payload.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise CodecError("Not an encoded image payload")
    mime_type = header[len("data:") : -len(";base64")]
    try:
        return mime_type, base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise CodecError("Encoded image payload is corrupt") from exc


def payload_dimensions(payload: str) -> tuple[int, int]:
    """Return the pixel size of an encoded payload."""
    _, raw_bytes = decode_payload(payload)
    try:
        with Image.open(io.BytesIO(raw_bytes)) as image:
            return image.size
    except _DECODE_ERRORS as exc:
        raise CodecError("Encoded image payload is not decodable") from exc


def estimate_payload_bytes(payload: str) -> int:
    """Estimate stored image bytes from the base64 length of a payload."""
    _, _, data = payload.rpartition(",")
    return len(data) * 3 // 4


@dataclass
class ImageCodec:
    """Compresses photos off the event loop with configured defaults."""

    default_options: EncodeOptions = field(default_factory=EncodeOptions)
    backend: ImageBackend = field(default_factory=PillowImageBackend)

    @classmethod
    def create(cls, settings: Settings) -> "ImageCodec":
        """Build a codec from settings, probing for a usable backend."""
        options = EncodeOptions(
            max_dimension=settings.image_max_dimension,
            quality=settings.image_quality,
            format=settings.image_format,
        )
        return cls(default_options=options, backend=select_backend(options.format))

    async def encode(
        self, raw_bytes: bytes, options: EncodeOptions | None = None
    ) -> str:
        """Compress a photo in a worker thread and return its payload."""
        return await asyncio.to_thread(
            encode_image, raw_bytes, options or self.default_options, self.backend
        )


def _prepare_mode(image: Image.Image, image_format: str) -> Image.Image:
    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if has_alpha and image_format == "webp":
        return image.convert("RGBA")
    if has_alpha:
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        rgba.close()
        return background
    return image.convert("RGB")


def _pil_quality(quality: float) -> int:
    return max(1, min(100, round(quality * 100)))
