# src/models/user.py

from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime, Enum, func
from src.db import Base


GENDERS = ("male", "female", "other")


class User(Base):
    """
    Пользователь. Профиль приходит из Telegram WebApp (initData),
    gender пользователь выставляет сам (нужен для ограничений сообществ).
    Остальные сущности ссылаются на пользователя только по id;
    name/photo_url/is_premium подтягиваются при чтении.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(BigInteger, unique=True, nullable=False, index=True)
    username = Column(String, index=True, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    name = Column(String, index=True, nullable=True)  # Отображаемое имя
    photo_url = Column(String, nullable=True)
    language_code = Column(String(8), nullable=True)
    allows_write_to_pm = Column(Boolean, default=True)  # можно ли слать push в личку бота
    gender = Column(Enum(*GENDERS, name="user_gender"), nullable=True)
    is_premium = Column(Boolean, default=False, nullable=False, comment="Премиум-статус (бейдж в выдаче)")
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, telegram_id={self.telegram_id}, username={self.username}, name={self.name}, gender={self.gender})>"
