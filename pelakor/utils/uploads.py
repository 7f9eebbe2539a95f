from __future__ import annotations

from fastapi import UploadFile

from pelakor.core.api import Upload


def to_upload(file: UploadFile | None) -> Upload | None:
    """Browsers post an empty part when no file is picked; treat it as absent."""
    if file is None or not file.filename:
        return None
    return (file.filename, file.file, file.content_type or "application/octet-stream")
