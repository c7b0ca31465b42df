from __future__ import annotations
from fastapi import HTTPException

class ApiError(HTTPException):
    def __init__(self, status_code: int, message: str, type_: str | None = None, details: dict | None = None):
        self.type = type_ or self.__class__.__name__
        self.message = message
        self.details = details or {}
        super().__init__(status_code=status_code, detail={"type": self.type, "message": self.message, "details": self.details})

class StrategyNotFound(ApiError):
    def __init__(self, strategy_id: str):
        super().__init__(404, f"Unknown strategy: {strategy_id}")

class InvalidStrategyUpdate(ApiError):
    def __init__(self, message: str, errors: list | None = None):
        super().__init__(422, message, details={"errors": errors} if errors else None)

class UnknownStrategyType(ApiError):
    def __init__(self, strategy_type: str):
        super().__init__(400, f"Unknown strategy type: {strategy_type}")

class SessionExpired(ApiError):
    def __init__(self):
        super().__init__(401, "Broker session expired, re-authentication required")
