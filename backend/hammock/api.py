from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError

from hammock.core.engine import RequestManager
from hammock.core.errors import (
    BodyParseError,
    InvalidRequestError,
    RequestInProgressError,
    TreeError,
)
from hammock.core.headers import join_header_values, split_header_values
from hammock.core.parsers import format_request_body, get_body_parser
from hammock.core.state import StateManager
from hammock.models import (
    CollectionItem,
    HttpResult,
    RequestBody,
    RequestResult,
    authentication_from_dict,
)

router = APIRouter()


def get_store(request: Request) -> StateManager:
    return request.app.state.store


def get_manager(request: Request) -> RequestManager:
    return request.app.state.manager


def _item_or_404(store: StateManager, item_id: str) -> CollectionItem:
    item = store.find(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="item not found")
    return item


def _dump(item: CollectionItem) -> Dict[str, Any]:
    return item.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Payloads ---

class NewGroupPayload(BaseModel):
    name: str = "New Group"


class NewRequestPayload(BaseModel):
    name: str = "New Request"
    method: str = "GET"
    url: str = ""


class NamePayload(BaseModel):
    name: str


class SaveAsPayload(BaseModel):
    parent_id: str
    name: str


class ItemPatch(BaseModel):
    name: Optional[str] = None
    method: Optional[str] = None
    url: Optional[str] = None
    # explicit null clears the body; omitting the field leaves it alone
    request_body: Optional[RequestBody] = None
    authentication: Optional[Dict[str, Any]] = None


class HeaderPayload(BaseModel):
    value: str


# --- State ---

@router.get("/state")
async def get_state(store: StateManager = Depends(get_store)):
    state = store.get()
    return {
        "Collection": _dump(state.collection),
        "SelectedItem": str(state.selected_item.uuid) if state.selected_item else None,
        "ActiveItem": str(state.active_item.uuid) if state.active_item else None,
        "LastError": state.last_error,
        "Dirty": store.dirty,
    }


# --- Collection items ---

@router.get("/items/{item_id}")
async def get_item(item_id: str, store: StateManager = Depends(get_store)):
    return _dump(_item_or_404(store, item_id))


@router.post("/items/{item_id}/groups")
async def add_group(item_id: str, payload: NewGroupPayload, store: StateManager = Depends(get_store)):
    parent = _item_or_404(store, item_id)
    try:
        return _dump(store.add_group(parent, payload.name))
    except TreeError as ex:
        raise HTTPException(status_code=400, detail=str(ex))


@router.post("/items/{item_id}/requests")
async def add_request(item_id: str, payload: NewRequestPayload, store: StateManager = Depends(get_store)):
    parent = _item_or_404(store, item_id)
    try:
        return _dump(store.add_request(parent, payload.name, payload.method.upper(), payload.url))
    except TreeError as ex:
        raise HTTPException(status_code=400, detail=str(ex))


@router.patch("/items/{item_id}")
async def update_item(item_id: str, patch: ItemPatch, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    fields = patch.model_fields_set
    if item.is_group and fields - {"name"}:
        raise HTTPException(status_code=400, detail="groups can only be renamed")

    authentication = None
    if patch.authentication is not None:
        try:
            authentication = authentication_from_dict(patch.authentication)
        except ValidationError as ex:
            raise HTTPException(status_code=422, detail=f"invalid authentication: {ex}")

    if patch.name is not None:
        item.rename(patch.name)
    if patch.method is not None:
        item.method = patch.method.upper()
    if patch.url is not None:
        item.url = patch.url
    if "request_body" in fields:
        item.request_body = patch.request_body
    if authentication is not None:
        item.authentication = authentication
    store.set_dirty()
    return _dump(item)


@router.put("/items/{item_id}/headers/{key}")
async def set_header(item_id: str, key: str, payload: HeaderPayload, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    if item.is_group:
        raise HTTPException(status_code=400, detail="groups have no headers")
    item.set_header(key, split_header_values(payload.value))
    store.set_dirty()
    return {key: join_header_values(item.headers[key])}


@router.delete("/items/{item_id}/headers/{key}")
async def remove_header(item_id: str, key: str, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    item.remove_header(key)
    store.set_dirty()
    return {"status": "ok"}


@router.post("/items/{item_id}/clone")
async def clone_item(item_id: str, payload: NamePayload, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    try:
        return _dump(store.clone_collection_item(item, payload.name))
    except TreeError as ex:
        raise HTTPException(status_code=400, detail=str(ex))


@router.post("/items/{item_id}/save-as")
async def save_as(item_id: str, payload: SaveAsPayload, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    parent = _item_or_404(store, payload.parent_id)
    try:
        return _dump(store.save_request_as(item, parent, payload.name))
    except TreeError as ex:
        raise HTTPException(status_code=400, detail=str(ex))


@router.delete("/items/{item_id}")
async def delete_item(item_id: str, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    if item.parent is None:
        raise HTTPException(status_code=400, detail="the collection root cannot be deleted")
    try:
        store.remove_collection_item(item)
    except TreeError as ex:
        raise HTTPException(status_code=400, detail=str(ex))
    return {"status": "ok"}


@router.post("/items/{item_id}/select")
async def select_item(item_id: str, store: StateManager = Depends(get_store)):
    store.select_item(_item_or_404(store, item_id))
    return {"status": "ok"}


@router.post("/items/{item_id}/activate")
async def activate_item(item_id: str, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    try:
        store.activate_item(item)
    except TreeError as ex:
        raise HTTPException(status_code=400, detail=str(ex))
    return {"status": "ok"}


@router.post("/items/{item_id}/body/format")
async def format_body(item_id: str, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    if item.request_body is None:
        raise HTTPException(status_code=400, detail="request has no body")
    try:
        formatted = format_request_body(item)
    except BodyParseError as ex:
        raise HTTPException(status_code=422, detail=str(ex))
    store.set_dirty()
    return {"payload": formatted}


@router.get("/items/{item_id}/result", response_model=RequestResult)
async def get_result(item_id: str, store: StateManager = Depends(get_store)):
    item = _item_or_404(store, item_id)
    if item.result is None:
        raise HTTPException(status_code=404, detail="no result for this item")
    return summarize_result(item, item.result)


# --- Execution ---

@router.post("/send")
async def send_active(
    store: StateManager = Depends(get_store),
    manager: RequestManager = Depends(get_manager),
):
    item = store.get().active_item
    if item is None:
        raise HTTPException(status_code=400, detail="no active request")
    try:
        generation = manager.send_request(item)
    except RequestInProgressError:
        raise HTTPException(status_code=409, detail="request already in progress")
    except InvalidRequestError as ex:
        raise HTTPException(status_code=422, detail=str(ex))
    return {"status": "pending", "generation": generation, "item": str(item.uuid)}


@router.post("/cancel")
async def cancel_current(manager: RequestManager = Depends(get_manager)):
    was_pending = manager.pending
    manager.cancel_current()
    return {"status": "cancelled" if was_pending else "idle"}


@router.get("/status")
async def get_status(manager: RequestManager = Depends(get_manager)):
    return {"pending": manager.pending, "state": manager.state.value}


def summarize_result(item: CollectionItem, result: HttpResult) -> RequestResult:
    content_type = result.content_type
    parser = get_body_parser(content_type)
    body = None
    body_is_json = False
    if result.response is not None and result.payload_error is None:
        try:
            body = parser.parse_bytes(result.payload)
            body_is_json = parser is get_body_parser("application/json")
        except BodyParseError:
            # show what the server sent when it does not match its content type
            body = get_body_parser(None).parse_bytes(result.payload)

    return RequestResult(
        request_id=str(item.uuid),
        status_code=result.status_code,
        duration_ms=result.duration_ms,
        headers=result.headers,
        body=body,
        body_is_json=body_is_json,
        content_type=content_type,
        body_bytes=len(result.payload),
        error=None if result.error is None else str(result.error),
        payload_error=None if result.payload_error is None else str(result.payload_error),
        cancelled=result.cancelled,
        timestamp=result.end_time,
    )
