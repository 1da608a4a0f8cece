"""图片附件处理：推断 MIME 类型并编码为 ImageAttachment。"""

import base64
from pathlib import PurePath
from typing import Optional

from relay_core.domain.exceptions import ValidationError
from relay_core.domain.models import ImageAttachment


IMAGE_MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
}


def guess_mime_type(filename: str) -> str:
    ext = PurePath(filename or "").suffix.lower()
    return IMAGE_MIME_BY_EXTENSION.get(ext, "application/octet-stream")


def build_image_attachment(
    data: bytes,
    filename: str,
    content_type: Optional[str],
    max_bytes: int,
) -> Optional[ImageAttachment]:
    """非图片返回 None；图片超过 max_bytes 时抛出 ValidationError。"""

    mime_type = (content_type or guess_mime_type(filename)).lower()
    if not mime_type.startswith("image/"):
        return None
    if len(data) > max_bytes:
        raise ValidationError(
            code="IMAGE_TOO_LARGE",
            message=f"Image '{filename}' exceeds the limit of {max_bytes} bytes.",
        )
    return ImageAttachment(mime_type=mime_type, data_b64=base64.b64encode(data).decode("ascii"))
