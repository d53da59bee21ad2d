import base64
import binascii
import io
import zipfile
from typing import Iterable, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from scriptboard.errors import ValidationError
from scriptboard.models import ItemStatus, ReferenceImage, StoryboardItem

PROMPTS_FILE_NAME = "generated_prompts.txt"
IMAGES_ZIP_FILE_NAME = "generated_images.zip"

_PIL_FORMAT_TO_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def data_url_to_bytes_and_mime(data_url: str) -> Tuple[bytes, str]:
    """
    Convert a data URL (data:<mime>;base64,...) to raw bytes and mime type.
    """
    if not isinstance(data_url, str) or not data_url.startswith("data:") or "," not in data_url:
        raise ValueError("Invalid data URL")
    header, b64 = data_url.split(",", 1)
    mime = "image/png"
    if ";" in header:
        mime = header[5: header.index(";")] or mime
    try:
        return base64.b64decode(b64, validate=True), mime
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload in data URL: {e}") from e


def compress_image_bytes_to_jpeg(data: bytes, *, max_width: int = 1024, quality: int = 85) -> bytes:
    """
    Re-encode image bytes as a reasonably sized JPEG.

    - Ensures RGB colorspace
    - Resizes to max_width while preserving aspect ratio
    """
    img = Image.open(io.BytesIO(data))
    if img.mode != "RGB":
        img = img.convert("RGB")
    if img.width > max_width:
        new_height = int(img.height * (max_width / img.width))
        img = img.resize((max_width, new_height), Image.LANCZOS)
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def load_reference_image(data: bytes, declared_mime: Optional[str] = None, *, max_width: int = 1024) -> ReferenceImage:
    """Turn uploaded bytes into a ReferenceImage.

    Images wider than ``max_width`` are downscaled to JPEG to keep the request small;
    anything else is passed through with its declared (or detected) media type.
    """
    if not data:
        raise ValidationError("Reference image is empty.")
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = (img.format or "").upper()
            width = img.width
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Reference image could not be read: {e}") from e

    if width > max_width:
        return ReferenceImage(data=compress_image_bytes_to_jpeg(data, max_width=max_width), mime_type="image/jpeg")
    mime = declared_mime if declared_mime and declared_mime.startswith("image/") else None
    return ReferenceImage(data=data, mime_type=mime or _PIL_FORMAT_TO_MIME.get(fmt, "image/png"))


def decode_script_upload(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def split_prompt_lines(text: str) -> List[str]:
    return [line.rstrip("\r") for line in (text or "").split("\n") if line.strip()]


def prompts_to_text(prompts: Iterable[str]) -> str:
    return "\n".join(prompts)


def build_images_zip(storyboard: Sequence[StoryboardItem]) -> bytes:
    """Zip every successful image as image_<n>.jpeg, numbered over successes only."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        n = 0
        for item in storyboard:
            if item.status != ItemStatus.SUCCESS or not item.image_url:
                continue
            n += 1
            data, _mime = data_url_to_bytes_and_mime(item.image_url)
            zf.writestr(f"image_{n}.jpeg", data)
    return buffer.getvalue()
