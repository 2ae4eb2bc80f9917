# src/routers/upload.py
# Загрузка изображений (blob store):
#   POST /upload/image?kind=chat|post|discussion|banner
#   -> <MEDIA_ROOT>/<kind-dir>/YYYY/MM/<random>.<ext>
# Возвращает {"image_ref": ..., "url": ...}. image_ref потом передаётся
# в сообщение/пост/обсуждение, сам файл по ссылке отдаётся как /media/<image_ref>.

from __future__ import annotations

import mimetypes
import os
import secrets
from pathlib import Path

from fastapi import APIRouter, UploadFile, File, HTTPException, Request, Depends, Query

from src.models.user import User
from src.utils.clock import utc_now
from src.utils.telegram_dep import get_current_telegram_user
from src.utils.media import (
    IMAGE_KINDS,
    MEDIA_ROOT,
    ensure_dir,
    ref_to_url,
    sniff_image_format,   # распознаём формат по magic bytes
    ext_for_image,        # подбираем расширение по распознанному формату
    is_pdf_bytes,         # используем, чтобы вернуть понятную ошибку
)

router = APIRouter()

# общий лимит размера (можно переопределить env-переменной MAX_UPLOAD_MB)
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "10"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
CHUNK_SIZE = 1024 * 1024  # 1MB

_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".heic", ".heif"}


def _err(code: str, message: str) -> dict:
    return {"code": code, "message": message}


def _today_subdir() -> Path:
    """YYYY/MM - группируем помесячно."""
    now = utc_now()
    return Path(f"{now:%Y}/{now:%m}")


def _pick_image_ext(head: bytes, ctype: str, name_ext: str) -> str:
    """Расширение: по magic, затем по content-type, затем по имени."""
    fmt = sniff_image_format(head)
    if not fmt:
        if is_pdf_bytes(head):
            raise HTTPException(status_code=415, detail=_err("pdf_not_supported", "PDF не поддерживается. Прикрепляйте фото."))
        raise HTTPException(status_code=415, detail=_err("unsupported_image", "Unsupported image format"))
    guessed_ext = mimetypes.guess_extension(ctype or "") or ""
    return ext_for_image(fmt) or guessed_ext or (name_ext if name_ext in _IMAGE_EXTS else "") or ".jpg"


async def _write_streamed(file: UploadFile, head: bytes, dst: Path) -> None:
    """Пишет head + остаток UploadFile в dst, контролируя общий размер. Частичный файл удаляется."""
    total = 0
    try:
        with dst.open("wb") as f:
            chunk = head
            while chunk:
                total += len(chunk)
                if total > MAX_UPLOAD_BYTES:
                    raise HTTPException(status_code=413, detail=_err("file_too_large", f"File too large (>{MAX_UPLOAD_MB} MB)"))
                f.write(chunk)
                chunk = await file.read(CHUNK_SIZE)
    except HTTPException:
        dst.unlink(missing_ok=True)
        raise
    finally:
        await file.close()


@router.post("/upload/image")
async def upload_image(
    request: Request,
    file: UploadFile = File(...),
    kind: str = Query("chat"),
    current_user: User = Depends(get_current_telegram_user),
):
    if kind not in IMAGE_KINDS:
        raise HTTPException(status_code=422, detail=_err("invalid_kind", f"kind: {', '.join(IMAGE_KINDS)}"))

    ctype = (file.content_type or "").lower()
    name_ext = os.path.splitext(file.filename or "")[1].lower()

    head = await file.read(64 * 1024)
    ext = _pick_image_ext(head, ctype, name_ext)

    subdir = Path(IMAGE_KINDS[kind]) / _today_subdir()
    dst_dir = ensure_dir(MEDIA_ROOT / subdir)
    name = f"{secrets.token_hex(16)}{ext}"

    await _write_streamed(file, head, dst_dir / name)

    image_ref = (subdir / name).as_posix()
    return {"image_ref": image_ref, "url": ref_to_url(image_ref, request)}
