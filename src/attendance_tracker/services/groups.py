"""Read-only access to groups and their members."""

from typing import Protocol

from attendance_tracker.domain.groups import Group, Member


class GroupDirectory(Protocol):
    """Lookup interface for owner-scoped groups."""

    def find_group(self, name: str, owner_id: str) -> Group | None:
        """Return the group with this name owned by owner_id, if present."""

    def list_members(self, group: Group) -> list[Member]:
        """Return the group's members in registration order."""


def find_member(members: list[Member], member_name: str) -> Member | None:
    """Return the member with the given name, if present."""
    for member in members:
        if member.name == member_name:
            return member
    return None
