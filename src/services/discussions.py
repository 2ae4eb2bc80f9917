# src/services/discussions.py
# Обсуждения внутри сообщества. Писать и читать могут только подтверждённые участники.

from __future__ import annotations

from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from src.models.discussion import Discussion, DiscussionThread
from src.services import notifications as notif
from src.services.communities import get_community_or_404, require_member
from src.services.errors import NotAuthorized, NotFound, ValidationError
from src.utils.clock import utc_now
from src.utils.pagination import PageResult, paginate

MAX_TITLE = 100
MAX_CONTENT = 3000
MAX_THREAD = 1000


def _text(value: Optional[str], field: str, max_len: int) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError("empty_" + field, f"Поле {field} не может быть пустым")
    if len(value) > max_len:
        raise ValidationError(field + "_too_long", f"Поле {field} длиннее {max_len} символов")
    return value


def get_discussion_or_404(db: Session, discussion_id: int) -> Discussion:
    discussion = db.get(Discussion, discussion_id)
    if discussion is None:
        raise NotFound("discussion_not_found", "Обсуждение не найдено")
    return discussion


def create_discussion(
    db: Session,
    community_id: int,
    actor_id: int,
    *,
    title: str,
    content: str,
    image_ref: Optional[str] = None,
) -> Discussion:
    get_community_or_404(db, community_id)
    require_member(db, community_id, actor_id)
    discussion = Discussion(
        community_id=community_id,
        user_id=actor_id,
        title=_text(title, "title", MAX_TITLE),
        content=_text(content, "content", MAX_CONTENT),
        image_ref=image_ref or None,
        replies_count=0,
        created_at=utc_now(),
    )
    db.add(discussion)
    db.flush()
    return discussion


def list_discussions(
    db: Session, community_id: int, viewer_id: int, *, limit: int, cursor: Optional[str] = None
) -> PageResult:
    get_community_or_404(db, community_id)
    require_member(db, community_id, viewer_id)
    stmt = select(Discussion).where(Discussion.community_id == community_id)
    return paginate(db, stmt, Discussion.created_at, Discussion.id, limit=limit, cursor=cursor)


def delete_discussion(db: Session, discussion_id: int, actor_id: int) -> None:
    """Удалить может автор или админ сообщества. Ответы удаляются вместе с ним."""
    discussion = get_discussion_or_404(db, discussion_id)
    community = get_community_or_404(db, discussion.community_id)
    if actor_id not in (discussion.user_id, community.admin_id):
        raise NotAuthorized("not_author", "Удалить может только автор или админ")
    db.execute(
        delete(DiscussionThread)
        .where(DiscussionThread.discussion_id == discussion_id)
        .execution_options(synchronize_session=False)
    )
    db.delete(discussion)
    db.flush()


def create_thread(
    db: Session,
    discussion_id: int,
    actor_id: int,
    *,
    content: str,
    parent_id: Optional[int] = None,
) -> DiscussionThread:
    """
    Ответ в обсуждении. С parent_id - ответ на конкретный thread того же обсуждения,
    его автор получает discussion_thread_replied.
    """
    discussion = get_discussion_or_404(db, discussion_id)
    require_member(db, discussion.community_id, actor_id)

    parent = None
    if parent_id is not None:
        parent = db.get(DiscussionThread, parent_id)
        if parent is None:
            raise NotFound("parent_not_found", "Исходный ответ не найден")
        if parent.discussion_id != discussion_id:
            raise ValidationError("parent_other_discussion", "Ответ из другого обсуждения")

    thread = DiscussionThread(
        discussion_id=discussion_id,
        user_id=actor_id,
        parent_id=parent_id,
        content=_text(content, "content", MAX_THREAD),
        created_at=utc_now(),
    )
    db.add(thread)
    discussion.replies_count = (discussion.replies_count or 0) + 1
    db.flush()

    if parent is not None:
        notif.emit(
            db,
            recipient_id=parent.user_id,
            actor_id=actor_id,
            type=notif.DISCUSSION_THREAD_REPLIED,
            subject_ref=f"discussion:{discussion_id}",
        )
    return thread


def list_threads(
    db: Session, discussion_id: int, viewer_id: int, *, limit: int, cursor: Optional[str] = None
) -> PageResult:
    discussion = get_discussion_or_404(db, discussion_id)
    require_member(db, discussion.community_id, viewer_id)
    stmt = select(DiscussionThread).where(DiscussionThread.discussion_id == discussion_id)
    return paginate(
        db, stmt, DiscussionThread.created_at, DiscussionThread.id, limit=limit, cursor=cursor, ascending=True
    )


def _subtree_ids(db: Session, root: DiscussionThread) -> list:
    # обход в ширину по parent_id в пределах обсуждения
    ids = [root.id]
    frontier = [root.id]
    while frontier:
        frontier = db.execute(
            select(DiscussionThread.id).where(
                DiscussionThread.discussion_id == root.discussion_id,
                DiscussionThread.parent_id.in_(frontier),
            )
        ).scalars().all()
        ids.extend(frontier)
    return ids


def delete_thread(db: Session, thread_id: int, actor_id: int) -> None:
    """Автор удаляет свой ответ вместе со всей веткой ответов под ним."""
    thread = db.get(DiscussionThread, thread_id)
    if thread is None:
        raise NotFound("thread_not_found", "Ответ не найден")
    if thread.user_id != actor_id:
        raise NotAuthorized("not_author", "Удалить может только автор")

    discussion = db.get(Discussion, thread.discussion_id)
    subtree = _subtree_ids(db, thread)
    db.execute(
        delete(DiscussionThread)
        .where(DiscussionThread.id.in_(subtree))
        .execution_options(synchronize_session="fetch")
    )
    removed = len(subtree)
    if discussion is not None:
        discussion.replies_count = max(0, (discussion.replies_count or 0) - removed)
    db.flush()
