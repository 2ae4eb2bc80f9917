# src/models/community.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Community (SQLAlchemy)
# -----------------------------------------------------------------------------

from __future__ import annotations

from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Enum,
    DateTime,
    JSON,
    Index,
    func,
    text,
)

from ..db import Base


COMMUNITY_GENDERS = ("all", "male", "female", "other")


class Community(Base):
    __tablename__ = "communities"

    id = Column(Integer, primary_key=True, index=True)

    # Создатель - он же единственный админ (дублируется строкой role=admin в community_members)
    admin_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    rules = Column(JSON, nullable=False, default=list)
    language = Column(String(16), nullable=False, default="en")

    gender = Column(
        Enum(*COMMUNITY_GENDERS, name="community_gender"),
        nullable=False,
        default="all",
        server_default=text("'all'"),
        comment="Ограничение по полу: all|male|female|other",
    )

    banner_ref = Column(
        String(512),
        nullable=True,
        comment="Ссылка на баннер в хранилище медиа",
    )

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_communities_admin_created", "admin_id", "created_at"),
    )

    def allows_gender(self, gender: str | None) -> bool:
        return self.gender == "all" or (gender is not None and self.gender == gender)
