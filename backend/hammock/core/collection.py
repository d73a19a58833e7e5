from typing import Iterator, Optional, Union
from uuid import UUID, uuid4

from hammock.models import CollectionItem


def new_group(name: str, parent: Optional[CollectionItem] = None) -> CollectionItem:
    """
    Build a group whose parent link points at `parent`. The group is not
    appended to the parent's children; use add_child/insert_child_after for that.
    """
    group = CollectionItem(is_group=True, name=name, children=[])
    group._parent = parent
    return group


def new_request(name: str, method: str, url: str, parent: Optional[CollectionItem] = None) -> CollectionItem:
    req = CollectionItem(is_group=False, name=name, method=method, url=url)
    req._parent = parent
    return req


def clone_item(item: CollectionItem, name: str) -> CollectionItem:
    """
    Copy an item under a new name with a fresh UUID. Groups are copied
    recursively and every descendant gets a fresh UUID as well. The copy has no
    parent until it is inserted somewhere.
    """
    copy = _copy_node(item)
    copy.name = name
    return copy


def _copy_node(item: CollectionItem) -> CollectionItem:
    copy = CollectionItem(
        uuid=uuid4(),
        is_group=item.is_group,
        name=item.name,
        method=item.method,
        url=item.url,
        headers={k: list(v) for k, v in item.headers.items()},
        request_body=item.request_body.model_copy() if item.request_body else None,
        authentication=item.authentication.model_copy(),
        children=[] if item.is_group else None,
    )
    if item.is_group:
        for child in item.children:
            copy.add_child(_copy_node(child))
    return copy


def walk(root: CollectionItem) -> Iterator[CollectionItem]:
    """Pre-order traversal starting at (and including) root."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        if node.is_group:
            stack.extend(reversed(node.children))


def find_item(root: CollectionItem, item_id: Union[UUID, str, None]) -> Optional[CollectionItem]:
    if item_id is None:
        return None
    if not isinstance(item_id, UUID):
        try:
            item_id = UUID(str(item_id))
        except ValueError:
            return None
    for node in walk(root):
        if node.uuid == item_id:
            return node
    return None


def first_request(root: CollectionItem) -> Optional[CollectionItem]:
    for node in walk(root):
        if not node.is_group:
            return node
    return None


def link_parents(root: CollectionItem):
    """Point every node's parent at its structural parent (root gets None)."""
    root._parent = None
    for node in walk(root):
        if node.is_group:
            for child in node.children:
                child._parent = node
