from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeVar

import pydantic

from .config import APP_NAME, StoreConfig
from .errors import Corrupt, NotFound, StorageUnavailable, ValidationError
from .models import Dataset, Group, Server, new_id

EXPORT_VERSION = 1

logger = logging.getLogger(__name__)

# Every RecordStore in the process shares this lock, so two load-mutate-save
# cycles against the same document never interleave.
_LOCK = threading.RLock()

T = TypeVar("T")
R = TypeVar("R", Group, Server)


def dump_document(dataset: Dataset, **envelope: Any) -> str:
    """Serialize a dataset to the on-disk JSON document."""
    payload = {**envelope, **dataset.model_dump(mode="json")}
    return json.dumps(payload, ensure_ascii=False, indent=2)


def parse_document(text: str, source: Path | str = "<document>") -> Dataset:
    """Parse a JSON document into a Dataset. Raises Corrupt on any shape error."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise Corrupt(f"{source}: invalid JSON ({e})") from e
    if not isinstance(raw, dict):
        raise Corrupt(f"{source}: expected a JSON object")
    missing = [key for key in ("groups", "servers") if key not in raw]
    if missing:
        raise Corrupt(f"{source}: missing {', '.join(missing)}")
    # ids are never generated on load
    for key in ("groups", "servers"):
        if isinstance(raw[key], list) and any(isinstance(r, dict) and "id" not in r for r in raw[key]):
            raise Corrupt(f"{source}: {key} record without id")
    try:
        return Dataset.model_validate({"groups": raw["groups"], "servers": raw["servers"]})
    except pydantic.ValidationError as e:
        raise Corrupt(f"{source}: {e.error_count()} invalid record field(s)") from e


def write_atomic(path: Path, text: str) -> None:
    """Replace path with text; the previous content survives any failure."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageUnavailable(f"Cannot create directory {path.parent}: {e}") from e

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as e:
        raise StorageUnavailable(f"Cannot write to {path.parent}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise StorageUnavailable(f"Cannot write {path}: {e}") from e


def read_document(path: Path) -> Dataset:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise StorageUnavailable(f"File not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise StorageUnavailable(f"Cannot read {path}: {e}") from e
    return parse_document(text, source=path)


class RecordStore:
    """Groups and servers kept in a single JSON document.

    Every operation reloads the document, so the store holds no state between
    calls apart from its configuration. Mutations run load, mutate, validate
    and save under the process-wide lock.
    """

    def __init__(self, config: StoreConfig | None = None) -> None:
        self.config = config or StoreConfig.default()

    @property
    def path(self) -> Path:
        return self.config.data_file

    # -- persistence -------------------------------------------------------

    def load(self) -> Dataset:
        """Load the dataset; a missing document is an empty dataset."""
        path = self.path
        if not path.exists():
            logger.debug("No document at %s, starting empty", path)
            return Dataset()
        dataset = read_document(path)
        logger.debug("Loaded %d groups, %d servers from %s", len(dataset.groups), len(dataset.servers), path)
        return dataset

    def save(self, dataset: Dataset) -> None:
        """Write the full dataset, replacing the previous document."""
        with _LOCK:
            write_atomic(self.path, dump_document(dataset))
        logger.debug("Saved %d groups, %d servers to %s", len(dataset.groups), len(dataset.servers), self.path)

    def _transaction(self, mutate: Callable[[Dataset], T]) -> T:
        with _LOCK:
            dataset = self.load()
            try:
                result = mutate(dataset)
            except (NotFound, ValidationError) as e:
                logger.warning("%s", e)
                raise
            self.save(dataset)
            return result

    # -- queries -----------------------------------------------------------

    def list_groups(self) -> list[Group]:
        with _LOCK:
            return self.load().groups

    def list_servers(self) -> list[Server]:
        with _LOCK:
            return self.load().servers

    def servers_in_group(self, group_id: str) -> list[Server]:
        return [s for s in self.list_servers() if s.group_id == group_id]

    def find_group(self, query: str) -> Group | None:
        """Find group by ID, exact name, or partial name match."""
        return _find(self.list_groups(), query)

    def find_server(self, query: str) -> Server | None:
        """Find server by ID, exact name, or partial name match."""
        return _find(self.list_servers(), query)

    # -- groups ------------------------------------------------------------

    def create_group(self, name: str) -> Group:
        group = Group(id=new_id(), name=name)

        def mutate(data: Dataset) -> Group:
            data.groups.append(group)
            return group

        self._transaction(mutate)
        logger.info("Created group %s (%s)", group.name, group.id)
        return group

    def update_group(self, group: Group) -> None:
        def mutate(data: Dataset) -> None:
            index = data.group_index(group.id)
            if index is None:
                raise NotFound(f"Group {group.id} not found")
            data.groups[index] = group

        self._transaction(mutate)
        logger.info("Updated group %s", group.id)

    def delete_group(self, group_id: str) -> None:
        """Delete a group together with every server in it."""

        def mutate(data: Dataset) -> int:
            index = data.group_index(group_id)
            if index is None:
                raise NotFound(f"Group {group_id} not found")
            del data.groups[index]
            before = len(data.servers)
            data.servers = [s for s in data.servers if s.group_id != group_id]
            return before - len(data.servers)

        removed = self._transaction(mutate)
        logger.info("Deleted group %s and %d server(s)", group_id, removed)

    # -- servers -----------------------------------------------------------

    def create_server(self, server: Server | Mapping[str, Any]) -> Server:
        """Add a server under an existing group. Any id on the input is replaced."""
        if isinstance(server, Server):
            fields = server.model_dump(exclude={"id"})
        elif isinstance(server, Mapping):
            fields = {k: v for k, v in server.items() if k != "id"}
        else:
            raise ValidationError(f"Expected a server record, got {type(server).__name__}")
        new_server = Server.model_validate({**fields, "id": new_id()})

        def mutate(data: Dataset) -> Server:
            if not data.has_group(new_server.group_id):
                raise ValidationError(f"Group with id {new_server.group_id} not found")
            data.servers.append(new_server)
            return new_server

        self._transaction(mutate)
        logger.info("Created server %s (%s)", new_server.name, new_server.id)
        return new_server

    def update_server(self, server: Server) -> None:
        def mutate(data: Dataset) -> None:
            index = data.server_index(server.id)
            if index is None:
                raise NotFound(f"Server {server.id} not found")
            if not data.has_group(server.group_id):
                raise ValidationError(f"Group with id {server.group_id} not found")
            data.servers[index] = server

        self._transaction(mutate)
        logger.info("Updated server %s", server.id)

    def delete_server(self, server_id: str) -> None:
        def mutate(data: Dataset) -> None:
            index = data.server_index(server_id)
            if index is None:
                raise NotFound(f"Server {server_id} not found")
            del data.servers[index]

        self._transaction(mutate)
        logger.info("Deleted server %s", server_id)

    # -- import / export ---------------------------------------------------

    def export_data(self, path: Path | str) -> Dataset:
        """Write the whole dataset to a caller-chosen file."""
        target = Path(path)
        with _LOCK:
            dataset = self.load()
            write_atomic(target, dump_document(dataset, version=EXPORT_VERSION, exported_from=APP_NAME))
        logger.info("Exported %d groups, %d servers to %s", len(dataset.groups), len(dataset.servers), target)
        return dataset

    def import_data(self, path: Path | str, merge: bool = False) -> Dataset:
        """Replace (or merge into) the store's contents from a file."""
        source = Path(path)
        imported = read_document(source)

        def mutate(data: Dataset) -> Dataset:
            if merge:
                data.groups = _merge_by_id(data.groups, imported.groups)
                data.servers = _merge_by_id(data.servers, imported.servers)
            else:
                data.groups = imported.groups
                data.servers = imported.servers
            # every imported record must resolve, not only the ones touched
            data.check_integrity()
            return data

        result = self._transaction(mutate)
        logger.info(
            "Imported %d groups, %d servers from %s (%s)",
            len(imported.groups),
            len(imported.servers),
            source,
            "merge" if merge else "replace",
        )
        return result


def _merge_by_id(existing: list[R], incoming: list[R]) -> list[R]:
    by_id = {item.id: item for item in existing}
    for item in incoming:
        by_id[item.id] = item
    return list(by_id.values())


def _find(items: list[R], query: str) -> R | None:
    # exact id
    for item in items:
        if item.id == query:
            return item
    # case-insensitive unique name
    matches = [i for i in items if i.name.lower() == query.lower()]
    if len(matches) == 1:
        return matches[0]
    # partial name contains
    contains = [i for i in items if query.lower() in i.name.lower()]
    if len(contains) == 1:
        return contains[0]
    return None
