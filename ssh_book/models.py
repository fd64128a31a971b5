from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, Field

from .errors import ValidationError

AuthType = Literal["password", "key"]


def new_id() -> str:
    return str(uuid.uuid4())


class Group(BaseModel):
    """Named bucket that servers are organized under."""

    id: str = Field(default_factory=new_id)
    name: str


class Server(BaseModel):
    """Remote-login target."""

    id: str = Field(default_factory=new_id)
    name: str
    username: str
    host: str
    port: int = Field(default=22, ge=0, le=65535)
    auth_type: AuthType = "password"
    auth_info: str = ""
    group_id: str

    def display(self) -> str:
        """Return formatted server display string."""
        return f"{self.name}  [{self.username}@{self.host}:{self.port} | {self.auth_type}]"


class Dataset(BaseModel):
    """Groups and servers persisted together as one document."""

    groups: list[Group] = Field(default_factory=list)
    servers: list[Server] = Field(default_factory=list)

    def group_index(self, group_id: str) -> int | None:
        for i, g in enumerate(self.groups):
            if g.id == group_id:
                return i
        return None

    def server_index(self, server_id: str) -> int | None:
        for i, s in enumerate(self.servers):
            if s.id == server_id:
                return i
        return None

    def has_group(self, group_id: str) -> bool:
        return self.group_index(group_id) is not None

    def check_integrity(self) -> None:
        """Raise ValidationError on duplicate ids or servers pointing at missing groups."""
        group_ids: set[str] = set()
        for g in self.groups:
            if g.id in group_ids:
                raise ValidationError(f"Duplicate group id {g.id}")
            group_ids.add(g.id)

        server_ids: set[str] = set()
        for s in self.servers:
            if s.id in server_ids:
                raise ValidationError(f"Duplicate server id {s.id}")
            server_ids.add(s.id)
            if s.group_id not in group_ids:
                raise ValidationError(f"Server '{s.name}' references unknown group {s.group_id}")
