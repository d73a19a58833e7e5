from __future__ import annotations
from typing import Any, ClassVar, Dict, List, Optional, Union
from uuid import UUID, uuid4

import httpx
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_serializer,
    field_validator,
    model_validator,
)
import time

from hammock.core.errors import ChildNotFoundError, NotAGroupError, RequestCancelledError


class PersistedModel(BaseModel):
    # JSON keys are PascalCase on disk and over the API; attributes stay snake_case
    model_config = ConfigDict(populate_by_name=True)


# --- Authentication ---

class NoAuthentication(PersistedModel):
    kind: ClassVar[str] = "none"


class BasicAuthentication(PersistedModel):
    kind: ClassVar[str] = "basic"

    username: str = Field("", alias="Username")
    password: str = Field("", alias="Password")


class OAuth2Authentication(PersistedModel):
    kind: ClassVar[str] = "oauth2"

    token_url: str = Field("", alias="TokenURL")
    client_id: str = Field("", alias="ClientID")
    client_secret: str = Field("", alias="ClientSecret")
    grant_type: str = Field("client_credentials", alias="GrantType")
    scope: str = Field("", alias="Scope")


Authentication = Union[NoAuthentication, BasicAuthentication, OAuth2Authentication]

AUTHENTICATION_TYPES = {
    cls.kind: cls for cls in (NoAuthentication, BasicAuthentication, OAuth2Authentication)
}


def authentication_from_dict(raw: Any) -> Authentication:
    """
    Decode the {Type, Data} envelope. Unknown or missing types decode to
    NoAuthentication rather than failing the whole document.
    """
    if isinstance(raw, (NoAuthentication, BasicAuthentication, OAuth2Authentication)):
        return raw
    if not isinstance(raw, dict):
        return NoAuthentication()
    kind = raw.get("Type")
    cls = AUTHENTICATION_TYPES.get(kind) if isinstance(kind, str) else None
    if cls is None or cls is NoAuthentication:
        return NoAuthentication()
    return cls.model_validate(raw.get("Data") or {})


def authentication_to_dict(auth: Authentication) -> Dict[str, Any]:
    out: Dict[str, Any] = {"Type": auth.kind}
    if not isinstance(auth, NoAuthentication):
        out["Data"] = auth.model_dump(by_alias=True)
    return out


# --- Collection tree ---

class RequestBody(PersistedModel):
    payload: str = Field("", alias="Payload")
    content_type: str = Field("", alias="ContentType")


class CollectionItem(PersistedModel):
    """
    A node in the collection tree: either a group (is_group, with children) or a
    saved request. The parent link and the last exchange result live in private
    attributes so they never end up in the serialized form.
    """

    uuid: UUID = Field(default_factory=uuid4, alias="UUID")
    is_group: bool = Field(False, alias="IsGroup")
    name: str = Field("", alias="Name")
    method: str = Field("", alias="Method")
    url: str = Field("", alias="URL")
    headers: Dict[str, List[str]] = Field(default_factory=dict, alias="Headers")
    request_body: Optional[RequestBody] = Field(None, alias="RequestBody")
    authentication: Authentication = Field(default_factory=NoAuthentication, alias="Authentication")
    children: Optional[List[CollectionItem]] = Field(None, alias="Children")

    _parent: Optional[CollectionItem] = PrivateAttr(default=None)
    _result: Optional[HttpResult] = PrivateAttr(default=None)

    @field_validator("headers", mode="before")
    @classmethod
    def _null_headers(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("authentication", mode="before")
    @classmethod
    def _load_authentication(cls, value: Any) -> Authentication:
        return authentication_from_dict(value)

    @field_serializer("authentication")
    def _dump_authentication(self, auth: Authentication) -> Dict[str, Any]:
        return authentication_to_dict(auth)

    @model_validator(mode="after")
    def _check_shape(self) -> CollectionItem:
        if self.is_group and self.children is None:
            self.children = []
        if not self.is_group and self.children:
            raise ValueError("request items cannot have children")
        return self

    # Items are identified by UUID; comparing field-by-field would walk the tree
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CollectionItem):
            return NotImplemented
        return self.uuid == other.uuid

    def __hash__(self) -> int:
        return hash(self.uuid)

    @property
    def parent(self) -> Optional[CollectionItem]:
        return self._parent

    @property
    def result(self) -> Optional[HttpResult]:
        return self._result

    def attach_result(self, result: Optional[HttpResult]):
        self._result = result

    def rename(self, name: str):
        self.name = name

    # --- Structure ---

    def add_child(self, item: CollectionItem):
        """Append item to this group's children. Does nothing on a request."""
        if not self.is_group:
            return
        self.children.append(item)
        item._parent = self

    def insert_child_after(self, item: CollectionItem, after: CollectionItem):
        """Insert item right after `after`; leaves the tree alone if `after` is not a child."""
        if not self.is_group:
            return
        for idx, child in enumerate(self.children):
            if child is after:
                self.children.insert(idx + 1, item)
                item._parent = self
                return

    def remove_child(self, item: CollectionItem):
        if not self.is_group:
            raise NotAGroupError(f"'{self.name}' is not a group")
        for idx, child in enumerate(self.children):
            if child is item:
                del self.children[idx]
                item._parent = None
                return
        raise ChildNotFoundError(f"'{item.name}' is not a child of '{self.name}'")

    def ancestors(self) -> List[CollectionItem]:
        """Path from the tree root down to this item's parent, root first."""
        path = []
        node = self._parent
        while node is not None:
            path.append(node)
            node = node._parent
        path.reverse()
        return path

    def is_descendant_of(self, candidate: CollectionItem) -> bool:
        return any(node is candidate for node in self.ancestors())

    # --- Headers ---

    def set_header(self, key: str, values: List[str]):
        self.headers[key] = list(values)

    def remove_header(self, key: str):
        self.headers.pop(key, None)


# --- Exchange results ---

class HttpResult(BaseModel):
    """Outcome of one send. Never persisted."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    response: Optional[httpx.Response] = None
    payload: bytes = b""
    payload_error: Optional[Exception] = None
    error: Optional[Exception] = None
    start_time: float = Field(default_factory=time.time)
    end_time: float = Field(default_factory=time.time)

    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time) * 1000

    @property
    def status_code(self) -> int:
        return self.response.status_code if self.response is not None else 0

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.response.headers) if self.response is not None else {}

    @property
    def content_type(self) -> Optional[str]:
        if self.response is None:
            return None
        return self.response.headers.get("content-type")

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, RequestCancelledError)


class RequestResult(BaseModel):
    request_id: str
    status_code: int
    duration_ms: float
    headers: Dict[str, str]
    body: Optional[str] = None
    body_is_json: bool = False
    content_type: Optional[str] = None
    body_bytes: int = 0
    error: Optional[str] = None
    payload_error: Optional[str] = None
    cancelled: bool = False
    timestamp: float = Field(default_factory=time.time)


# --- Persisted state file ---

class StateFile(PersistedModel):
    collection: CollectionItem = Field(alias="Collection")
    # kept as raw strings so a corrupt pointer only drops the pointer, not the file
    selected_item: Optional[str] = Field(None, alias="SelectedItem")
    active_item: Optional[str] = Field(None, alias="ActiveItem")


CollectionItem.model_rebuild()
StateFile.model_rebuild()
