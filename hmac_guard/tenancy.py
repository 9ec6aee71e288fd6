"""
Tenancy Scoping
===============
Strategy objects for optional tenant scoping, selected once at startup.
"""

from typing import Iterable, List, Optional, Protocol, TypeVar

from .config import HmacConfig

T = TypeVar("T")


class TenancyScope(Protocol):
    """Applies (or skips) tenant filtering."""

    def is_active(self) -> bool:
        ...

    def column(self) -> str:
        ...

    def apply_scope(self, items: Iterable[T], tenant_id: str) -> List[T]:
        ...

    def tenant_of(self, record) -> Optional[str]:
        ...


class ActiveTenancyScope:
    """Scope used when tenancy is enabled."""

    def __init__(self, column: str = "tenant_id"):
        self._column = column

    def is_active(self) -> bool:
        return True

    def column(self) -> str:
        return self._column

    def apply_scope(self, items: Iterable[T], tenant_id: str) -> List[T]:
        return [item for item in items if getattr(item, "tenant_id", None) == tenant_id]

    def tenant_of(self, record) -> Optional[str]:
        return getattr(record, "tenant_id", None) if record is not None else None


class NullTenancyScope:
    """No-op scope for standalone mode."""

    def is_active(self) -> bool:
        return False

    def column(self) -> str:
        return ""

    def apply_scope(self, items: Iterable[T], tenant_id: str) -> List[T]:
        return list(items)

    def tenant_of(self, record) -> Optional[str]:
        return None


def build_tenancy_scope(config: HmacConfig) -> TenancyScope:
    if config.tenancy.enabled:
        return ActiveTenancyScope(config.tenancy.column)
    return NullTenancyScope()
