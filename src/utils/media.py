# src/utils/media.py
# -----------------------------------------------------------------------------
# Хранилище вложений (картинки чатов, постов, обсуждений, баннеры сообществ).
#   • Сообщения/письма/посты хранят только image_ref - путь относительно
#     MEDIA_ROOT ("chat_images/2025/10/<random>.jpg"), URL собирается при чтении.
#   • Загрузка идёт отдельным запросом ДО отправки сообщения, поэтому
#     отправка никогда не ждёт сетевой/дисковый I/O.
#   • sniff форматов по magic bytes (JPEG/PNG/WebP/GIF/BMP/HEIC) и PDF.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Tuple

from fastapi import Request

log = logging.getLogger(__name__)

# Поддиректории MEDIA_ROOT по назначению
IMAGE_KINDS = {
    "chat": "chat_images",
    "post": "post_images",
    "discussion": "discussion_images",
    "banner": "community_banners",
}


# ===== Корень хранилища и публичные ссылки ====================================

def pick_media_root() -> Path:
    """
    Первый доступный на запись из PALS_MEDIA_ROOT (по умолчанию /data/uploads)
    и PALS_MEDIA_FALLBACK (по умолчанию ./var/uploads).
    """
    candidates = [
        Path(os.getenv("PALS_MEDIA_ROOT") or "/data/uploads"),
        Path(os.getenv("PALS_MEDIA_FALLBACK") or "./var/uploads").absolute(),
    ]
    for candidate in candidates[:-1]:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            return candidate
        except OSError as e:
            log.warning("media: %s is not writable (%s), trying fallback", candidate, e)
    candidates[-1].mkdir(parents=True, exist_ok=True)
    return candidates[-1]


MEDIA_ROOT: Path = pick_media_root()


def ensure_dir(p: Path) -> Path:
    p.mkdir(parents=True, exist_ok=True)
    return p


def public_base_url(request: Request) -> str:
    """PUBLIC_BASE_URL, иначе схема/хост из прокси-заголовков или самого запроса."""
    configured = os.getenv("PUBLIC_BASE_URL")
    if configured:
        return configured.rstrip("/")
    headers = request.headers
    scheme = headers.get("x-forwarded-proto") or request.url.scheme
    host = headers.get("x-forwarded-host") or headers.get("host") or request.url.netloc
    return f"{scheme.strip()}://{host.strip()}".rstrip("/")


def ref_to_url(image_ref: Optional[str], request: Request) -> Optional[str]:
    if not image_ref:
        return None
    return f"{public_base_url(request)}/media/{image_ref.lstrip('/')}"


# ===== ref -> локальный путь в MEDIA_ROOT =====================================

def ref_to_local_path(image_ref: Optional[str], *, allowed_subdirs: Optional[Tuple[str, ...]] = None) -> Optional[Path]:
    """
    Путь к файлу внутри MEDIA_ROOT. Всё, что вылезает за MEDIA_ROOT
    или не из allowed_subdirs, даёт None.
    """
    if not image_ref:
        return None
    rel = image_ref.strip().lstrip("/")
    if rel.startswith("media/"):
        rel = rel[len("media/"):]

    if allowed_subdirs and not any(rel.startswith(prefix.rstrip("/") + "/") for prefix in allowed_subdirs):
        return None

    local = MEDIA_ROOT / rel
    try:
        local.resolve().relative_to(MEDIA_ROOT.resolve())
    except ValueError:
        return None
    return local


def delete_if_local(image_ref: Optional[str], *, allowed_subdirs: Optional[Tuple[str, ...]] = None) -> bool:
    """
    Удаляет файл вложения (вызывается ПОСЛЕ commit удаления сообщения/поста).
    Возвращает True, если удалили; False - если нечего/не удалось.
    """
    p = ref_to_local_path(image_ref, allowed_subdirs=allowed_subdirs)
    if p is None or not p.exists():
        return False
    try:
        p.unlink()
        return True
    except OSError as e:
        log.warning("media: failed to delete %s: %s", p, e)
        return False


# ===== Формат по первым байтам ================================================

# (смещение, сигнатура, формат); WebP дополнительно проверяется ниже
_SIGNATURES = (
    (0, b"\xFF\xD8\xFF", "jpeg"),
    (0, b"\x89PNG\r\n\x1a\n", "png"),
    (0, b"GIF87a", "gif"),
    (0, b"GIF89a", "gif"),
    (0, b"BM", "bmp"),
)
_HEIF_BRANDS = (b"heic", b"heif", b"mif1", b"msf1", b"hevc")

IMAGE_EXTENSIONS = {
    "jpeg": ".jpg",
    "png": ".png",
    "gif": ".gif",
    "webp": ".webp",
    "bmp": ".bmp",
    "heic": ".heic",
}


def is_pdf_bytes(head: bytes) -> bool:
    return head[:5] == b"%PDF-"


def sniff_image_format(head: bytes) -> Optional[str]:
    """Код формата картинки ('jpeg', 'png', ...) или None, если это не картинка."""
    for offset, magic, fmt in _SIGNATURES:
        if head[offset:offset + len(magic)] == magic:
            return fmt
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    # ISO BMFF: "ftyp" + major brand в байтах 4..12
    if head[4:8] == b"ftyp" and head[8:12] in _HEIF_BRANDS:
        return "heic"
    return None


def ext_for_image(fmt: str) -> str:
    return IMAGE_EXTENSIONS.get(fmt, ".bin")
