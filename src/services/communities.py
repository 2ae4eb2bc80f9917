# src/services/communities.py
# Жизненный цикл сообщества и членства:
#   none -> pending -> member (accept) | none (reject)
#   none -> member (сразу, только создатель как admin)
#   member -> none (leave / remove)
# Админ ровно один - создатель. Админ не может выйти, только удалить сообщество.

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models.community import Community, COMMUNITY_GENDERS
from src.models.community_member import CommunityMember
from src.models.discussion import Discussion, DiscussionThread
from src.models.user import User
from src.services import notifications as notif
from src.services.errors import (
    ConflictError,
    GenderRestricted,
    InvalidState,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from src.utils.clock import utc_now
from src.utils.pagination import PageResult, paginate

log = logging.getLogger(__name__)

MAX_TITLE = 100
MAX_DESCRIPTION = 1000
MAX_JOIN_MESSAGE = 300
GENDER_OPTIONS = ("all", "my_gender")


def get_community_or_404(db: Session, community_id: int) -> Community:
    community = db.get(Community, community_id)
    if community is None:
        raise NotFound("community_not_found", "Сообщество не найдено")
    return community


def get_membership(db: Session, community_id: int, user_id: int) -> Optional[CommunityMember]:
    return (
        db.query(CommunityMember)
        .filter(CommunityMember.community_id == community_id, CommunityMember.user_id == user_id)
        .first()
    )


def require_member(db: Session, community_id: int, user_id: int) -> CommunityMember:
    """Подтверждённый участник (admin или member), иначе NotAuthorized."""
    membership = get_membership(db, community_id, user_id)
    if membership is None or not membership.is_approved:
        raise NotAuthorized("not_member", "Только для участников сообщества")
    return membership


def _require_admin(community: Community, actor_id: int) -> None:
    if community.admin_id != actor_id:
        raise NotAuthorized("not_admin", "Только админ сообщества")


def _clean_text(value: Optional[str], field: str, max_len: int, required: bool = False) -> str:
    value = (value or "").strip()
    if required and not value:
        raise ValidationError("empty_" + field, f"Поле {field} не может быть пустым")
    if len(value) > max_len:
        raise ValidationError(field + "_too_long", f"Поле {field} длиннее {max_len} символов")
    return value


def _clean_rules(rules: Optional[List[str]]) -> List[str]:
    return [r.strip() for r in (rules or []) if r and r.strip()]


# =====================
# Сообщество
# =====================

def create_community(
    db: Session,
    creator_id: int,
    *,
    title: str,
    description: str = "",
    rules: Optional[List[str]] = None,
    gender_option: str = "all",
    language: str = "en",
    banner_ref: Optional[str] = None,
) -> Community:
    """
    Сообщество и строка admin-членства создаются в одной транзакции.
    gender_option=my_gender ограничивает вступление полом создателя.
    """
    title = _clean_text(title, "title", MAX_TITLE, required=True)
    description = _clean_text(description, "description", MAX_DESCRIPTION)
    if gender_option not in GENDER_OPTIONS:
        raise ValidationError("invalid_gender_option", "gender_option: all | my_gender")

    gender = "all"
    if gender_option == "my_gender":
        creator = db.get(User, creator_id)
        if creator is None or creator.gender is None:
            raise ValidationError("gender_not_set", "Сначала укажите пол в профиле")
        gender = creator.gender

    now = utc_now()
    community = Community(
        admin_id=creator_id,
        title=title,
        description=description,
        rules=_clean_rules(rules),
        language=language or "en",
        gender=gender,
        banner_ref=banner_ref,
        created_at=now,
    )
    db.add(community)
    db.flush()

    db.add(CommunityMember(community_id=community.id, user_id=creator_id, role="admin", created_at=now))
    db.flush()
    log.info("communities: user %s created community %s", creator_id, community.id)
    return community


def update_community(
    db: Session,
    community_id: int,
    actor_id: int,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    rules: Optional[List[str]] = None,
    banner_ref: Optional[str] = None,
) -> Community:
    community = get_community_or_404(db, community_id)
    _require_admin(community, actor_id)
    if title is not None:
        community.title = _clean_text(title, "title", MAX_TITLE, required=True)
    if description is not None:
        community.description = _clean_text(description, "description", MAX_DESCRIPTION)
    if rules is not None:
        community.rules = _clean_rules(rules)
    if banner_ref is not None:
        community.banner_ref = banner_ref or None
    db.flush()
    return community


def delete_community(db: Session, community_id: int, actor_id: int) -> None:
    """Каскадом удаляет членства, обсуждения и ответы в них."""
    community = get_community_or_404(db, community_id)
    _require_admin(community, actor_id)

    discussion_ids = select(Discussion.id).where(Discussion.community_id == community_id)
    db.execute(
        delete(DiscussionThread)
        .where(DiscussionThread.discussion_id.in_(discussion_ids))
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(Discussion).where(Discussion.community_id == community_id).execution_options(synchronize_session=False)
    )
    db.execute(
        delete(CommunityMember)
        .where(CommunityMember.community_id == community_id)
        .execution_options(synchronize_session=False)
    )
    db.delete(community)
    db.flush()
    log.info("communities: community %s deleted by %s", community_id, actor_id)


def get_community_info(db: Session, community_id: int, viewer_id: int) -> dict:
    community = get_community_or_404(db, community_id)
    membership = get_membership(db, community_id, viewer_id)
    members_count = (
        db.query(CommunityMember)
        .filter(CommunityMember.community_id == community_id, CommunityMember.role != "pending")
        .count()
    )
    return {
        "community": community,
        "members_count": members_count,
        "is_admin": community.admin_id == viewer_id,
        "is_member": bool(membership and membership.is_approved),
        "is_pending": bool(membership and membership.role == "pending"),
    }


# =====================
# Членство
# =====================

def _raise_if_joined(existing: Optional[CommunityMember]) -> None:
    if existing is None:
        return
    if existing.role == "pending":
        raise ConflictError("duplicate_pending", "Заявка уже отправлена")
    raise ConflictError("already_member", "Вы уже участник")


def request_to_join(db: Session, user_id: int, community_id: int, message: Optional[str] = None) -> CommunityMember:
    """
    Заявка на вступление. Ограничение по полу проверяется здесь, а не только в UI:
    при несовпадении строка членства не создаётся.
    """
    community = get_community_or_404(db, community_id)
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("user_not_found", "Пользователь не найден")
    if community.gender not in COMMUNITY_GENDERS or not community.allows_gender(user.gender):
        raise GenderRestricted("gender_restricted", "Сообщество ограничено по полу")

    _raise_if_joined(get_membership(db, community_id, user_id))

    message = _clean_text(message, "message", MAX_JOIN_MESSAGE) or None
    membership = CommunityMember(
        community_id=community_id,
        user_id=user_id,
        role="pending",
        request_message=message,
        created_at=utc_now(),
    )
    db.add(membership)
    try:
        db.flush()
    except IntegrityError:
        # параллельная заявка того же пользователя (uq_community_members_community_user)
        db.rollback()
        _raise_if_joined(
            db.query(CommunityMember).filter_by(community_id=community_id, user_id=user_id).first()
        )
        raise

    notif.emit(
        db,
        recipient_id=community.admin_id,
        actor_id=user_id,
        type=notif.COMMUNITY_JOIN_REQUEST,
        subject_ref=f"community:{community_id}",
    )
    return membership


def _pending_for_admin(db: Session, membership_id: int, actor_id: int) -> CommunityMember:
    membership = db.get(CommunityMember, membership_id)
    if membership is None:
        raise NotFound("request_not_found", "Заявка не найдена")
    community = get_community_or_404(db, membership.community_id)
    _require_admin(community, actor_id)
    if membership.role != "pending":
        raise InvalidState("not_pending", "Заявка уже обработана")
    return membership


def accept_join(db: Session, membership_id: int, actor_id: int) -> CommunityMember:
    membership = _pending_for_admin(db, membership_id, actor_id)
    membership.role = "member"
    membership.request_message = None
    db.flush()
    return membership


def reject_join(db: Session, membership_id: int, actor_id: int) -> None:
    membership = _pending_for_admin(db, membership_id, actor_id)
    db.delete(membership)
    db.flush()


def leave(db: Session, community_id: int, actor_id: int) -> None:
    get_community_or_404(db, community_id)
    membership = get_membership(db, community_id, actor_id)
    if membership is None:
        raise NotFound("not_member", "Вы не участник")
    if membership.role == "admin":
        raise InvalidState("admin_cannot_leave", "Админ не может выйти, только удалить сообщество")
    if membership.role != "member":
        raise InvalidState("not_member", "Заявка ещё не одобрена")
    db.delete(membership)
    db.flush()


def remove_member(db: Session, community_id: int, target_user_id: int, actor_id: int) -> None:
    community = get_community_or_404(db, community_id)
    _require_admin(community, actor_id)
    if target_user_id == actor_id:
        raise InvalidState("admin_cannot_leave", "Админ не может удалить себя")
    membership = get_membership(db, community_id, target_user_id)
    if membership is None or membership.role != "member":
        raise NotFound("not_member", "Участник не найден")
    db.delete(membership)
    db.flush()


# =====================
# Списки
# =====================

def list_members(db: Session, community_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    get_community_or_404(db, community_id)
    stmt = select(CommunityMember).where(
        CommunityMember.community_id == community_id,
        CommunityMember.role.in_(("admin", "member")),
    )
    return paginate(
        db, stmt, CommunityMember.created_at, CommunityMember.id, limit=limit, cursor=cursor, ascending=True
    )


def list_join_requests(
    db: Session, community_id: int, actor_id: int, *, limit: int, cursor: Optional[str] = None
) -> PageResult:
    community = get_community_or_404(db, community_id)
    _require_admin(community, actor_id)
    stmt = select(CommunityMember).where(
        CommunityMember.community_id == community_id,
        CommunityMember.role == "pending",
    )
    return paginate(
        db, stmt, CommunityMember.created_at, CommunityMember.id, limit=limit, cursor=cursor, ascending=True
    )


def list_joined(db: Session, user_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    """Сообщества, где пользователь обычный участник."""
    stmt = (
        select(Community)
        .join(CommunityMember, CommunityMember.community_id == Community.id)
        .where(CommunityMember.user_id == user_id, CommunityMember.role == "member")
    )
    return paginate(db, stmt, Community.created_at, Community.id, limit=limit, cursor=cursor)


def list_owned(db: Session, user_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    stmt = select(Community).where(Community.admin_id == user_id)
    return paginate(db, stmt, Community.created_at, Community.id, limit=limit, cursor=cursor)
