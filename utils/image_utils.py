"""Validation of complaint photo attachments before they are forwarded to the API."""
import io
import os
import uuid
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5 MB

# Pillow format name -> extensions it may arrive under.
_FORMAT_EXTENSIONS = {
    "JPEG": {"jpg", "jpeg"},
    "PNG": {"png"},
    "GIF": {"gif"},
    "WEBP": {"webp"},
}


def _fail_if(condition: bool, message: str) -> None:
    if condition:
        raise ValueError(message)


def _get_mime_type(ext: str) -> str:
    mapping = {
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "png": "image/png",
        "gif": "image/gif",
        "webp": "image/webp",
    }
    return mapping.get(ext, "application/octet-stream")


def has_upload(file: Optional[FileStorage]) -> bool:
    return bool(file and getattr(file, "filename", ""))


def validate_image_file(file: FileStorage, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> Tuple[bytes, str]:
    _fail_if(not has_upload(file), "File tidak ditemukan")
    filename = secure_filename(file.filename or "")
    _fail_if(not filename or "." not in filename, "Nama file tidak didukung")
    ext = filename.rsplit(".", 1)[1].lower()
    _fail_if(ext not in ALLOWED_IMAGE_EXTENSIONS, "Tipe file tidak diizinkan")

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    _fail_if(size == 0, "File kosong")
    _fail_if(size > max_bytes, "Ukuran file melebihi batas")

    content = file.read()
    _fail_if(len(content) > max_bytes, "Ukuran file melebihi batas")

    try:
        with Image.open(io.BytesIO(content)) as img:
            detected = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError("File bukan gambar yang valid") from exc
    _fail_if(ext not in _FORMAT_EXTENSIONS.get(detected or "", set()), "Isi file tidak sesuai dengan ekstensinya")

    file.stream.seek(0)
    return content, ext


def build_attachment(file: Optional[FileStorage], max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> Optional[tuple]:
    """Return a ``requests`` multipart tuple for ``file`` or ``None`` when nothing was uploaded."""
    if not has_upload(file):
        return None
    content, ext = validate_image_file(file, max_bytes=max_bytes)
    upload_name = secure_filename(f"{uuid.uuid4().hex}.{ext}")
    return (upload_name, content, _get_mime_type(ext))
