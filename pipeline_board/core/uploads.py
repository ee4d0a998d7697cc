from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

MAX_FILENAME_LENGTH = 150
OCTET_STREAM_MIME_TYPE = "application/octet-stream"

DOC_EXTENSIONS = {".doc", ".docx", ".pdf"}
SUPPORTING_DOC_EXTENSIONS = DOC_EXTENSIONS | {".jpeg", ".jpg", ".png"}

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


class AttachmentKind(str, Enum):
    RESUME = "resume"
    COVER_LETTER = "cover_letter"
    UPDATED_RESUME = "updated_resume"
    OFFER_LETTER = "offer_letter"

    @property
    def form_field(self) -> str:
        # Multipart field names expected by the pipeline backend.
        return _FORM_FIELDS[self]


_FORM_FIELDS = {
    AttachmentKind.RESUME: "ResumeFile",
    AttachmentKind.COVER_LETTER: "CoverLetterFile",
    AttachmentKind.UPDATED_RESUME: "UpdatedResumeFile",
    AttachmentKind.OFFER_LETTER: "OfferLetterFile",
}


class UnsupportedAttachmentError(ValueError):
    pass


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = OCTET_STREAM_MIME_TYPE

    @property
    def is_empty(self) -> bool:
        return not self.content

    def as_multipart(self) -> tuple[str, bytes, str]:
        return (self.filename, self.content, self.content_type)


def sanitize_filename(raw: str | None, *, default: str = "file") -> str:
    name = (raw or "").strip() or default
    name = name.replace("/", "_").replace("\\", "_")
    name = _SAFE_NAME_RE.sub("_", name).strip("._") or default

    if len(name) > MAX_FILENAME_LENGTH:
        base, ext = _split_name_ext(name)
        keep = max(1, MAX_FILENAME_LENGTH - len(ext))
        name = f"{base[:keep]}{ext}"
    return name


def build_attachment(
    filename: str | None,
    content: bytes,
    content_type: str | None = None,
    *,
    allowed_extensions: set[str] = DOC_EXTENSIONS,
) -> Attachment:
    name = sanitize_filename(filename)
    ext = Path(name).suffix.lower()
    if ext not in allowed_extensions:
        raise UnsupportedAttachmentError(f"Unsupported file type for '{name}'.")

    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if not media_type:
        media_type = mimetypes.guess_type(name)[0] or OCTET_STREAM_MIME_TYPE
    return Attachment(filename=name, content=content, content_type=media_type)


def _split_name_ext(name: str) -> tuple[str, str]:
    ext = Path(name).suffix
    if ext:
        return name[: -len(ext)], ext
    return name, ""
