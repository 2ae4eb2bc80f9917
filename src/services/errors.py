# src/services/errors.py
# Типизированные ошибки бизнес-переходов.
# Сервисы бросают их вместо HTTPException, роутеры/обработчик в main.py
# превращают их в ответ {"detail": {"code": ..., "message": ...}}.

from __future__ import annotations

from typing import Dict


class DomainError(Exception):
    http_status = 400
    default_code = "error"

    def __init__(self, code: str | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message or self.code
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationError(DomainError):
    """Некорректный ввод: длины, диапазоны, пустые поля."""
    http_status = 422
    default_code = "validation_error"


class GenderRestricted(ValidationError):
    default_code = "gender_restricted"


class NotAuthorized(DomainError):
    """У актора нет нужной роли/связи для перехода."""
    http_status = 403
    default_code = "not_authorized"


class NotFound(DomainError):
    http_status = 404
    default_code = "not_found"


class InvalidState(DomainError):
    """Сущность есть, но не в том состоянии, которое нужно переходу."""
    http_status = 409
    default_code = "invalid_state"


class ConflictError(DomainError):
    """Дубликат заявки/членства/дружбы."""
    http_status = 409
    default_code = "conflict"
