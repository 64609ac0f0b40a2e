"""
Image Utilities
Data URL encoding, downscaling and remote image import for the try-on pipeline.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import quote

import httpx
from PIL import Image, UnidentifiedImageError

from espelho.core.config import settings

logger = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)

IMAGE_PROXY_URL = "https://wsrv.nl/"
PROXY_FETCH_TIMEOUT = 15.0
DIRECT_FETCH_TIMEOUT = 10.0


class ImageProcessingError(Exception):
    """Image bytes could not be decoded or re-encoded."""


class ImageImportError(Exception):
    """A remote image could not be fetched through the proxy nor directly."""

    def __init__(self, message: str = "Não foi possível acessar a imagem. Por favor, faça download e upload manual."):
        super().__init__(message)
        self.message = message


@dataclass
class ImportedImage:
    data: bytes
    mime_type: str

    @property
    def data_url(self) -> str:
        return to_data_url(self.data, self.mime_type)


def to_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def parse_data_url(value: str) -> Tuple[str, bytes]:
    """
    Split a data URL into (mime_type, bytes).

    Bare base64 strings are accepted and assumed to be JPEG.
    """
    if not value:
        raise ImageProcessingError("Empty image data")

    match = DATA_URL_RE.match(value.strip())
    mime_type, payload = ("image/jpeg", value) if not match else (match.group("mime"), match.group("data"))

    try:
        return mime_type, base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError(f"Invalid base64 image data: {e}")


def strip_data_url_prefix(value: str) -> str:
    """`data:image/jpeg;base64,XXX` -> `XXX`"""
    match = DATA_URL_RE.match(value.strip())
    return match.group("data") if match else value


def decode_base64_image(value: str) -> bytes:
    """Strict decode of a raw (or data URL) base64 image. Raises ImageProcessingError."""
    if not isinstance(value, str) or not value.strip():
        raise ImageProcessingError("Empty image data")
    try:
        data = base64.b64decode(strip_data_url_prefix(value), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError(f"Invalid base64 image data: {e}")
    if not data:
        raise ImageProcessingError("Empty image data")
    return data


def fit_within(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """Target size that fits the box, preserving aspect ratio. Never upscales."""
    ratio = min(max_width / width, max_height / height)
    if ratio >= 1:
        return width, height
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def resize_image(
    data: bytes,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    quality: Optional[int] = None,
) -> bytes:
    """Downscale to fit max_width x max_height and re-encode as JPEG."""
    max_width = max_width or settings.MAX_IMAGE_DIMENSION
    max_height = max_height or settings.MAX_IMAGE_DIMENSION
    quality = quality or settings.JPEG_QUALITY

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            target = fit_within(img.width, img.height, max_width, max_height)
            if target != img.size:
                img = img.resize(target, Image.LANCZOS)

            # JPEG has no alpha channel
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")

            output = io.BytesIO()
            img.save(output, format="JPEG", quality=quality)
            return output.getvalue()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ImageProcessingError(f"Falha ao carregar imagem para redimensionamento: {e}")


def resize_data_url(data_url: str, max_width: Optional[int] = None, max_height: Optional[int] = None) -> str:
    """resize_image for data URLs. Always returns a JPEG data URL."""
    _, raw = parse_data_url(data_url)
    return to_data_url(resize_image(raw, max_width, max_height), "image/jpeg")


async def url_to_base64(url: str, client: Optional[httpx.AsyncClient] = None) -> ImportedImage:
    """
    Download a remote image.

    Goes through the wsrv.nl image proxy first (normalizes to JPEG, bypasses
    hotlink protection) and falls back to a direct fetch.
    """
    logger.info(f"[ImageUtils] Downloading: {url}")
    proxy_url = f"{IMAGE_PROXY_URL}?url={quote(url, safe='')}&output=jpg&w=1024&q=80"

    owns_client = client is None
    client = client or httpx.AsyncClient(follow_redirects=True)
    try:
        try:
            response = await client.get(proxy_url, timeout=PROXY_FETCH_TIMEOUT)
            response.raise_for_status()
            mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
            return ImportedImage(data=response.content, mime_type=mime_type or "image/jpeg")
        except httpx.HTTPError as e:
            logger.warning(f"[ImageUtils] Proxy fetch failed, trying direct: {e}")

        try:
            response = await client.get(url, timeout=DIRECT_FETCH_TIMEOUT)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"[ImageUtils] Direct fetch failed for {url}: {e}")
            raise ImageImportError()

        mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
        return ImportedImage(data=response.content, mime_type=mime_type or "image/jpeg")
    finally:
        if owns_client:
            await client.aclose()
