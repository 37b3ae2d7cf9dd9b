"""
Directory Snapshot.

Read-only, request-scoped view of the user directory used to resolve
chain template steps to concrete approvers.  Iteration order is the order
the users were supplied in; the user repository always supplies creation
order so role-based resolution is reproducible.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from expenseflow.models.user import User


class DirectorySnapshot:
    """Immutable snapshot of ``{id, role, manager_id}`` for every user."""

    def __init__(self, users: Iterable[User]) -> None:
        self._users: tuple[User, ...] = tuple(users)
        self._by_id: dict[str, User] = {user.id: user for user in self._users}

    def __iter__(self) -> Iterator[User]:
        return iter(self._users)

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._by_id

    def get(self, user_id: Optional[str]) -> Optional[User]:
        if user_id is None:
            return None
        return self._by_id.get(user_id)

    def manager_of(self, user: User) -> Optional[User]:
        """Return the direct manager of *user*, if assigned and present."""
        return self.get(user.manager_id)

    def users_with_role(self, role: str) -> list[User]:
        return [user for user in self._users if user.role == role]

    def first_with_role(self, role: str) -> Optional[User]:
        """Return the first user, in snapshot order, holding *role*."""
        for user in self._users:
            if user.role == role:
                return user
        return None

    def direct_reports(self, manager_id: str) -> list[User]:
        return [user for user in self._users if user.manager_id == manager_id]

    def would_create_cycle(self, user_id: str, manager_id: Optional[str]) -> bool:
        """``True`` if assigning *manager_id* to *user_id* closes a loop.

        Walks the manager chain upward from the proposed manager; reaching
        *user_id* means the assignment would make the user their own
        (indirect) manager.
        """
        seen: set[str] = set()
        current = manager_id
        while current is not None:
            if current == user_id:
                return True
            if current in seen:
                # Pre-existing loop that does not involve user_id.
                return False
            seen.add(current)
            manager = self._by_id.get(current)
            current = manager.manager_id if manager is not None else None
        return False
