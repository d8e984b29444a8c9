"""Error taxonomy shared by the services and the JSON layer.

Domain errors subclass ``ValueError`` so callers that only care about
"the request was rejected" can keep catching ``ValueError``.
"""
from __future__ import annotations


class DomainError(ValueError):
    status_code = 400
    code = "error"

    def to_dict(self) -> dict[str, object]:
        return {"error": str(self), "code": self.code}


class ValidationError(DomainError):
    code = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class InvalidTransitionError(DomainError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, origen: str, destino: str, message: str | None = None) -> None:
        super().__init__(message or f"Transicion invalida: {origen} -> {destino}")
        self.origen = origen
        self.destino = destino

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data.update({"origen": self.origen, "destino": self.destino})
        return data


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class PermissionDeniedError(DomainError):
    status_code = 403
    code = "forbidden"


class PersistenceError(RuntimeError):
    status_code = 500
    code = "persistence_error"
