# src/routers/feed.py
# Посты, реакции и комментарии: ровно то, что порождает уведомления ленты.

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.user import User
from src.schemas.post import CommentCreate, CommentOut, PostCreate, PostOut, ReactionIn, ReactionOut
from src.services import feed as svc
from src.utils.media import IMAGE_KINDS, delete_if_local
from src.utils.telegram_dep import get_current_telegram_user

router = APIRouter()


@router.post("/posts", response_model=PostOut, status_code=201)
def create_post(
    payload: PostCreate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    post = svc.create_post(db, current_user.id, content=payload.content, image_refs=payload.image_refs)
    db.commit()
    db.refresh(post)
    return post


@router.delete("/posts/{post_id}")
def delete_post(
    post_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    refs = svc.delete_post(db, post_id, current_user.id)
    db.commit()
    for ref in refs:
        delete_if_local(ref, allowed_subdirs=(IMAGE_KINDS["post"],))
    return {"ok": True}


@router.post("/posts/{post_id}/reactions", response_model=ReactionOut)
def toggle_reaction(
    post_id: int,
    payload: ReactionIn,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    """Та же эмодзи снимает реакцию, другая заменяет."""
    reaction = svc.toggle_reaction(db, current_user.id, post_id, payload.emoji)
    emoji = reaction.emoji if reaction is not None else None
    db.commit()
    post = svc.get_post(db, post_id)
    return {"post_id": post_id, "emoji": emoji, "reactions_count": post.reactions_count}


@router.post("/posts/{post_id}/comments", response_model=CommentOut, status_code=201)
def add_comment(
    post_id: int,
    payload: CommentCreate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    comment = svc.add_comment(
        db, current_user.id, post_id, content=payload.content, reply_parent_id=payload.reply_parent_id
    )
    db.commit()
    db.refresh(comment)
    return comment
