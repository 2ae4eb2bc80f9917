"""Загрузка картинок и хранилище вложений (src/utils/media.py, src/routers/upload.py)."""

from src.utils.media import (
    IMAGE_KINDS,
    delete_if_local,
    ref_to_local_path,
    sniff_image_format,
)

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_sniff_formats():
    assert sniff_image_format(b"\xFF\xD8\xFF\xE0" + b"\x00" * 8) == "jpeg"
    assert sniff_image_format(PNG) == "png"
    assert sniff_image_format(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "webp"
    assert sniff_image_format(b"\x00\x00\x00\x18ftypheic") == "heic"
    assert sniff_image_format(b"%PDF-1.7") is None
    assert sniff_image_format(b"") is None


def test_ref_outside_allowed_dirs_is_ignored():
    assert ref_to_local_path("../../etc/passwd") is None
    assert ref_to_local_path("post_images/a.png", allowed_subdirs=(IMAGE_KINDS["chat"],)) is None
    assert delete_if_local(None) is False


def test_upload_and_delete_after_message_delete(client, make_user, befriend):
    """Картинка загружается отдельно, удаление сообщения удаляет файл."""
    alice, bob = make_user(), make_user()
    befriend(alice, bob)
    client.login(alice)

    resp = client.post("/api/upload/image?kind=chat", files={"file": ("a.png", PNG, "image/png")})
    assert resp.status_code == 200
    image_ref = resp.json()["image_ref"]
    assert image_ref.startswith("chat_images/") and image_ref.endswith(".png")
    assert resp.json()["url"].endswith("/media/" + image_ref)
    assert ref_to_local_path(image_ref).exists()

    msg = client.post("/api/conversations/messages", json={"recipient_id": bob.id, "image_ref": image_ref})
    assert msg.status_code == 201
    assert msg.json()["type"] == "image"

    assert client.delete(f"/api/conversations/messages/{msg.json()['id']}").status_code == 200
    assert not ref_to_local_path(image_ref).exists()


def test_upload_rejects_pdf(client, make_user):
    client.login(make_user())
    resp = client.post("/api/upload/image", files={"file": ("doc.pdf", b"%PDF-1.4 ...", "application/pdf")})
    assert resp.status_code == 415
    assert resp.json()["detail"]["code"] == "pdf_not_supported"
