"""Identity collaborator - answers whether a user holds the staff role."""
from typing import Iterable, Protocol


class StaffDirectory(Protocol):
    def is_staff(self, user_id: str) -> bool:
        ...


class StaticStaffDirectory:
    """Staff membership from a fixed set of ids (configured via STAFF_USER_IDS)."""

    def __init__(self, staff_ids: Iterable[str]):
        self.staff_ids = frozenset(staff_ids)

    def is_staff(self, user_id: str) -> bool:
        return user_id in self.staff_ids
