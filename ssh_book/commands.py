"""Request/response command surface for a GUI shell.

Each command returns a :class:`CommandResult` carrying either a JSON-ready
value or a single human-readable error message. ``kind`` names the error
class so callers that care can branch on it.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any

import pydantic
from pydantic import BaseModel

from .errors import SshBookError
from .models import Group, Server
from .ssh import open_in_terminal
from .storage import RecordStore

logger = logging.getLogger(__name__)

COMMANDS = (
    "get_groups",
    "get_servers",
    "add_group",
    "add_server",
    "update_group",
    "update_server",
    "delete_group",
    "delete_server",
    "connect_server",
    "export_data",
    "import_data",
)


class CommandResult(BaseModel):
    ok: bool
    data: Any = None
    error: str | None = None
    kind: str | None = None

    @classmethod
    def success(cls, data: Any = None) -> CommandResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: Exception) -> CommandResult:
        kind = "ValidationError" if isinstance(error, pydantic.ValidationError) else type(error).__name__
        return cls(ok=False, error=str(error), kind=kind)


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


class Commands:
    def __init__(self, store: RecordStore, launcher: Callable[[Server], None] = open_in_terminal) -> None:
        self.store = store
        self.launcher = launcher

    def _run(self, name: str, fn: Callable[[], Any]) -> CommandResult:
        try:
            return CommandResult.success(_dump(fn()))
        except (SshBookError, pydantic.ValidationError) as e:
            logger.warning("%s failed: %s", name, e)
            return CommandResult.failure(e)

    def get_groups(self) -> CommandResult:
        return self._run("get_groups", self.store.list_groups)

    def get_servers(self) -> CommandResult:
        return self._run("get_servers", self.store.list_servers)

    def add_group(self, name: str) -> CommandResult:
        return self._run("add_group", lambda: self.store.create_group(name))

    def add_server(self, server: Mapping[str, Any] | Server) -> CommandResult:
        return self._run("add_server", lambda: self.store.create_server(server))

    def update_group(self, group: Mapping[str, Any] | Group) -> CommandResult:
        return self._run("update_group", lambda: self.store.update_group(Group.model_validate(group)))

    def update_server(self, server: Mapping[str, Any] | Server) -> CommandResult:
        return self._run("update_server", lambda: self.store.update_server(Server.model_validate(server)))

    def delete_group(self, id: str) -> CommandResult:  # noqa: A002
        return self._run("delete_group", lambda: self.store.delete_group(id))

    def delete_server(self, id: str) -> CommandResult:  # noqa: A002
        return self._run("delete_server", lambda: self.store.delete_server(id))

    def connect_server(self, server: Mapping[str, Any] | Server) -> CommandResult:
        return self._run("connect_server", lambda: self.launcher(Server.model_validate(server)))

    def export_data(self, path: str) -> CommandResult:
        return self._run("export_data", lambda: self.store.export_data(path))

    def import_data(self, path: str, merge: bool = False) -> CommandResult:
        return self._run("import_data", lambda: self.store.import_data(path, merge=merge))

    def invoke(self, command: str, payload: Mapping[str, Any] | None = None) -> CommandResult:
        """Dispatch a command by name with keyword arguments taken from payload."""
        if command not in COMMANDS:
            return CommandResult(ok=False, error=f"Unknown command: {command}", kind="UnknownCommand")
        handler = getattr(self, command)
        try:
            bound = inspect.signature(handler).bind(**(payload or {}))
        except TypeError as e:
            return CommandResult(ok=False, error=f"Bad arguments for {command}: {e}", kind="BadArguments")
        return handler(*bound.args, **bound.kwargs)
