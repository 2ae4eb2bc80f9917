# src/services/feed.py
# Посты, реакции и комментарии ленты. Взаимодействовать с постом можно,
# если это свой пост или автор в друзьях.

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from src.models.post import Post, Reaction, Comment
from src.services import notifications as notif
from src.services.errors import NotAuthorized, NotFound, ValidationError
from src.services.friends import are_friends, is_blocked
from src.utils.clock import utc_now

MAX_POST = 3000
MAX_COMMENT = 1000
MAX_IMAGES = 10
MAX_EMOJI = 16


def get_post(db: Session, post_id: int) -> Post:
    post = db.get(Post, post_id)
    if post is None:
        raise NotFound("post_not_found", "Пост не найден")
    return post


def _require_access(db: Session, post: Post, actor_id: int) -> None:
    if post.user_id == actor_id:
        return
    if is_blocked(db, actor_id, post.user_id) or not are_friends(db, actor_id, post.user_id):
        raise NotAuthorized("not_friends", "Пост доступен только друзьям автора")


def create_post(db: Session, user_id: int, *, content: str, image_refs: Optional[List[str]] = None) -> Post:
    content = (content or "").strip()
    image_refs = [r for r in (image_refs or []) if r]
    if not content and not image_refs:
        raise ValidationError("empty_post", "Пост не может быть пустым")
    if len(content) > MAX_POST:
        raise ValidationError("content_too_long", f"Пост длиннее {MAX_POST} символов")
    if len(image_refs) > MAX_IMAGES:
        raise ValidationError("too_many_images", f"Не больше {MAX_IMAGES} картинок")

    post = Post(user_id=user_id, content=content, image_refs=image_refs, created_at=utc_now())
    db.add(post)
    db.flush()
    return post


def delete_post(db: Session, post_id: int, actor_id: int) -> List[str]:
    """Возвращает image_refs поста, чтобы удалить файлы после commit."""
    post = get_post(db, post_id)
    if post.user_id != actor_id:
        raise NotAuthorized("not_author", "Удалить может только автор")
    refs = list(post.image_refs or [])
    db.execute(delete(Reaction).where(Reaction.post_id == post_id).execution_options(synchronize_session=False))
    db.execute(delete(Comment).where(Comment.post_id == post_id).execution_options(synchronize_session=False))
    db.delete(post)
    db.flush()
    return refs


def toggle_reaction(db: Session, actor_id: int, post_id: int, emoji: str) -> Optional[Reaction]:
    """
    Та же эмодзи снимает реакцию, другая заменяет.
    Новая реакция уведомляет автора (post_reaction схлопывается, пока не прочитано).
    Возвращает текущую реакцию или None, если снята.
    """
    emoji = (emoji or "").strip()
    if not emoji or len(emoji) > MAX_EMOJI:
        raise ValidationError("invalid_emoji", "Некорректная реакция")
    post = get_post(db, post_id)
    _require_access(db, post, actor_id)

    existing = db.query(Reaction).filter(Reaction.post_id == post_id, Reaction.user_id == actor_id).first()
    if existing is not None:
        if existing.emoji == emoji:
            db.delete(existing)
            post.reactions_count = max(0, (post.reactions_count or 0) - 1)
            db.flush()
            return None
        existing.emoji = emoji
        existing.created_at = utc_now()
        db.flush()
        return existing

    reaction = Reaction(post_id=post_id, user_id=actor_id, emoji=emoji, created_at=utc_now())
    db.add(reaction)
    post.reactions_count = (post.reactions_count or 0) + 1
    db.flush()

    notif.emit(
        db,
        recipient_id=post.user_id,
        actor_id=actor_id,
        type=notif.POST_REACTION,
        subject_ref=f"post:{post_id}",
    )
    return reaction


def add_comment(
    db: Session,
    actor_id: int,
    post_id: int,
    *,
    content: str,
    reply_parent_id: Optional[int] = None,
) -> Comment:
    content = (content or "").strip()
    if not content:
        raise ValidationError("empty_comment", "Комментарий не может быть пустым")
    if len(content) > MAX_COMMENT:
        raise ValidationError("content_too_long", f"Комментарий длиннее {MAX_COMMENT} символов")
    post = get_post(db, post_id)
    _require_access(db, post, actor_id)

    parent = None
    if reply_parent_id is not None:
        parent = db.get(Comment, reply_parent_id)
        if parent is None:
            raise NotFound("comment_not_found", "Комментарий не найден")
        if parent.post_id != post_id:
            raise ValidationError("reply_other_post", "Ответ на комментарий другого поста")

    comment = Comment(
        post_id=post_id,
        user_id=actor_id,
        content=content,
        reply_parent_id=reply_parent_id,
        created_at=utc_now(),
    )
    db.add(comment)
    post.comments_count = (post.comments_count or 0) + 1
    db.flush()

    if parent is not None:
        notif.emit(
            db,
            recipient_id=parent.user_id,
            actor_id=actor_id,
            type=notif.COMMENT_REPLIED,
            subject_ref=f"post:{post_id}",
        )
    else:
        notif.emit(
            db,
            recipient_id=post.user_id,
            actor_id=actor_id,
            type=notif.POST_COMMENTED,
            subject_ref=f"post:{post_id}",
        )
    return comment
