"""Supabase-backed group directory."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from attendance_tracker.domain.groups import Group, Member
from attendance_tracker.services.groups import GroupDirectory


@dataclass
class SupabaseGroupDirectory(GroupDirectory):
    """Reads groups and registered members from Supabase."""

    client: Client

    def find_group(self, name: str, owner_id: str) -> Group | None:
        """Return the group owned by owner_id with this name, if present."""
        response = (
            self.client.table("groups")
            .select("id, name, created_by, created_at")
            .eq("name", name)
            .eq("created_by", owner_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return Group(
            id=UUID(row["id"]),
            name=row["name"],
            owner_id=row["created_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def list_members(self, group: Group) -> list[Member]:
        """Return the group's members in registration order."""
        response = (
            self.client.table("group_members")
            .select("name, face_descriptor")
            .eq("group_id", str(group.id))
            .order("created_at")
            .execute()
        )
        return [
            Member(
                name=row["name"],
                face_descriptor=tuple(
                    float(value) for value in row.get("face_descriptor") or []
                ),
            )
            for row in response.data or []
        ]
