from __future__ import annotations

from dataclasses import dataclass
from typing import Final

ADMIN_ROLE: Final[str] = "admin"


class AdminRequiredError(PermissionError):
    """Operación reservada a administradores (borrado/refresh forzado de caché)."""


@dataclass(frozen=True)
class CallerIdentity:
    """
    Identidad opaca del caller (la emite la capa de auth, fuera del core).

    Solo decide si una operación admin está permitida; NUNCA interviene en la
    decisión cache-hit / miss.
    """

    subject_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role.strip().lower() == ADMIN_ROLE


def require_admin(identity: CallerIdentity | None, *, operation: str) -> CallerIdentity:
    if identity is None or not identity.is_admin:
        raise AdminRequiredError(f"Admin role required for {operation}")
    return identity
