"""Flattening of hierarchy trees into tabular rows, and the inverse rebuild."""

import logging
from typing import Dict, Iterable, List, Tuple

from content_paths import PATH_SEPARATOR
from models import FlatRow, HierarchyNode, NodeType, make_root

logger = logging.getLogger('content_store_migrator.converters.flattener')


def node_to_row(node: HierarchyNode, path: str) -> FlatRow:
    """Convert one node to a row, empty fields as ''."""
    return FlatRow(
        type=node.type.value,
        path=path,
        title=node.title,
        image_url=node.image_url or '',
        link_url=node.link_url or '',
        text=node.text or '',
        synonym=node.synonym or ''
    )


def flatten(tree: HierarchyNode) -> List[FlatRow]:
    """
    Flatten a tree into rows in depth-first pre-order.

    The root itself yields no row; every other node yields exactly one.
    Row paths are computed from ancestor titles, independent of the
    nodes' stored ``path`` values.

    Args:
        tree: Root of the tree

    Returns:
        Rows in document order
    """
    rows: List[FlatRow] = []
    stack: List[Tuple[HierarchyNode, Tuple[str, ...]]] = [
        (child, ()) for child in reversed(tree.children)
    ]
    while stack:
        node, ancestors = stack.pop()
        titles = ancestors + (node.title,)
        rows.append(node_to_row(node, PATH_SEPARATOR.join(titles)))
        stack.extend((child, titles) for child in reversed(node.children))

    logger.debug(f"Flattened '{tree.title}' into {len(rows)} rows")
    return rows


def count_rows(tree: HierarchyNode) -> int:
    """Number of rows flatten() yields for a tree."""
    return tree.count_nodes() - 1


def unflatten(rows: Iterable[FlatRow], title: str = '') -> HierarchyNode:
    """
    Rebuild a tree from rows.

    Each row is placed at its path. Ancestors missing from the rows are
    created as section titles.

    Args:
        rows: Rows in any order where parents precede children, or not at all
        title: Title of the rebuilt root

    Returns:
        Root node with paths assigned
    """
    root = make_root(title)
    index: Dict[Tuple[str, ...], HierarchyNode] = {(): root}

    for row in rows:
        titles = tuple(row.path.split(PATH_SEPARATOR)) if row.path else (row.title,)
        parent = root
        for depth in range(1, len(titles)):
            key = titles[:depth]
            if key not in index:
                placeholder = HierarchyNode(type=NodeType.SECTION_TITLE, title=key[-1])
                parent.children.append(placeholder)
                index[key] = placeholder
            parent = index[key]

        node = HierarchyNode(
            type=NodeType(row.type),
            title=row.title,
            text=row.text or None,
            image_url=row.image_url or None,
            link_url=row.link_url or None,
            synonym=row.synonym or None
        )
        existing = index.get(titles)
        if existing is not None:
            # A placeholder created for a child that came first
            node.children = existing.children
            position = next(i for i, child in enumerate(parent.children) if child is existing)
            parent.children[position] = node
        else:
            parent.children.append(node)
        index[titles] = node

    root.assign_paths()
    return root


__all__ = ['flatten', 'unflatten', 'count_rows', 'node_to_row']
