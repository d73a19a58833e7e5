import logging
import os
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ValidationError

from hammock.core.collection import (
    clone_item,
    find_item,
    first_request,
    link_parents,
    new_group,
    new_request,
    walk,
)
from hammock.core.errors import NotAGroupError, SerializationError, StateSaveError, TreeError
from hammock.models import CollectionItem, StateFile

logger = logging.getLogger(__name__)


class AppState(BaseModel):
    collection: CollectionItem
    selected_item: Optional[CollectionItem] = None
    active_item: Optional[CollectionItem] = None
    last_error: Optional[str] = None

    def serialize(self) -> bytes:
        doc = StateFile(
            collection=self.collection,
            selected_item=str(self.selected_item.uuid) if self.selected_item else None,
            active_item=str(self.active_item.uuid) if self.active_item else None,
        )
        return doc.model_dump_json(by_alias=True, exclude_none=True, indent=2).encode("utf-8")

    @classmethod
    def deserialize(cls, data: Union[bytes, str]) -> "AppState":
        """
        Rebuild state from a persisted document. Parent links are restored in one
        pass and the stored pointers are resolved against the rebuilt tree; a
        pointer that no longer resolves (or an active pointer that resolves to a
        group) is left unset for ensure_default_items() to fill in.
        """
        try:
            doc = StateFile.model_validate_json(data)
        except (ValidationError, ValueError) as ex:
            raise SerializationError(f"corrupt state document: {ex}") from ex

        root = doc.collection
        if not root.is_group:
            raise SerializationError("collection root must be a group")
        link_parents(root)

        selected = find_item(root, doc.selected_item)
        active = find_item(root, doc.active_item)
        if active is not None and active.is_group:
            active = None
        return cls(collection=root, selected_item=selected, active_item=active)


def new_app_state() -> AppState:
    root = new_group("Default")
    req = new_request("Unnamed", "GET", "", root)
    root.add_child(req)
    return AppState(collection=root, selected_item=req, active_item=req)


class StateManager:
    """Owns the AppState, its persisted location and the dirty flag."""

    def __init__(self, state: AppState, save_path: Union[str, Path]):
        self.state = state
        self.save_path = Path(save_path)
        self._dirty = False

    @classmethod
    def load(cls, save_path: Union[str, Path]) -> "StateManager":
        path = Path(save_path)
        try:
            state = AppState.deserialize(path.read_bytes())
        except (OSError, SerializationError) as ex:
            logger.info("initializing new app state due to error: %s", ex)
            manager = cls(new_app_state(), path)
            manager.set_dirty()
            return manager

        manager = cls(state, path)
        manager.ensure_default_items()
        return manager

    def get(self) -> AppState:
        return self.state

    @property
    def dirty(self) -> bool:
        return self._dirty

    def set_dirty(self):
        self._dirty = True

    def ensure_default_items(self):
        state = self.state
        if state.active_item is None:
            state.active_item = first_request(state.collection)
        if state.active_item is None:
            # nothing left to activate; keep the invariant with a blank request
            req = new_request("Unnamed", "GET", "", state.collection)
            state.collection.add_child(req)
            state.active_item = req
            self.set_dirty()
        if state.selected_item is None:
            state.selected_item = state.active_item

    def shutdown(self):
        """Write the state to disk if anything changed since the last flush."""
        if not self._dirty:
            return
        payload = self.state.serialize()
        try:
            _atomic_write(self.save_path, payload)
        except OSError as ex:
            raise StateSaveError(f"failed to save state to {self.save_path}: {ex}") from ex
        self._dirty = False
        logger.info("saved app state to %s", self.save_path)

    # --- Item lifecycle ---

    def find(self, item_id: Union[UUID, str]) -> Optional[CollectionItem]:
        return find_item(self.state.collection, item_id)

    def add_group(self, parent: CollectionItem, name: str) -> CollectionItem:
        _require_group(parent)
        group = new_group(name, parent)
        parent.add_child(group)
        self.set_dirty()
        return group

    def add_request(self, parent: CollectionItem, name: str, method: str = "GET", url: str = "") -> CollectionItem:
        _require_group(parent)
        req = new_request(name, method, url, parent)
        parent.add_child(req)
        self.set_dirty()
        return req

    def clone_collection_item(self, item: CollectionItem, name: str) -> CollectionItem:
        """Clone item and place the copy right after it among its siblings."""
        parent = item.parent
        if parent is None:
            raise TreeError("the collection root cannot be cloned")
        copy = clone_item(item, name)
        parent.insert_child_after(copy, item)
        self.set_dirty()
        return copy

    def save_request_as(self, item: CollectionItem, parent: CollectionItem, name: str) -> CollectionItem:
        """Promote a copy of a request into `parent` and make it the active item."""
        if item.is_group:
            raise TreeError(f"'{item.name}' is not a request")
        _require_group(parent)
        copy = clone_item(item, name)
        parent.add_child(copy)
        self.state.active_item = copy
        self.state.selected_item = copy
        self.set_dirty()
        return copy

    def remove_collection_item(self, item: CollectionItem):
        """
        Delete an item and its whole subtree. Removing the root does nothing.
        Pointers into the removed subtree are reset to defaults.
        """
        parent = item.parent
        if parent is None:
            return
        parent.remove_child(item)

        state = self.state
        removed = {id(node) for node in walk(item)}
        if state.active_item is not None and id(state.active_item) in removed:
            state.active_item = None
        if state.selected_item is not None and id(state.selected_item) in removed:
            state.selected_item = None
        self.ensure_default_items()
        self.set_dirty()

    def select_item(self, item: CollectionItem):
        self.state.selected_item = item
        self.set_dirty()

    def activate_item(self, item: CollectionItem):
        if item.is_group:
            raise TreeError(f"'{item.name}' is a group and cannot be activated")
        self.state.active_item = item
        self.set_dirty()


def _require_group(item: CollectionItem):
    if not item.is_group:
        raise NotAGroupError(f"'{item.name}' is not a group")


def _atomic_write(target_path: Path, payload: bytes):
    target_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = target_path.with_suffix(target_path.suffix + ".tmp")
    with open(tmp, "wb") as f:
        f.write(payload)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, target_path)
