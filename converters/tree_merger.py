"""Merging of content store trees into one canonical hierarchy."""

import copy
import logging
from functools import reduce
from typing import Iterable, List, Optional

from content_paths import normalize_store_path
from models import HierarchyNode, NodeType, allowed_fields, make_root

logger = logging.getLogger('content_store_migrator.converters.tree_merger')

MERGED_FIELDS = ('text', 'image_url', 'link_url', 'synonym')


def first_non_empty(current, incoming):
    """Conflict rule for scalar fields: the first non-empty value wins."""
    return current if current else incoming


def merge_fields(target: HierarchyNode, incoming: HierarchyNode) -> None:
    """Fill ``target``'s empty fields from ``incoming``, within what its type allows."""
    allowed = allowed_fields(target.type)
    for name in MERGED_FIELDS:
        if name in allowed:
            setattr(target, name, first_non_empty(getattr(target, name), getattr(incoming, name)))
    target.node_id = first_non_empty(target.node_id, incoming.node_id)


def _merge_pair(accumulated: HierarchyNode, incoming: HierarchyNode) -> HierarchyNode:
    """Fold one tree into the accumulated tree, level by level."""
    stack = [(accumulated, copy.deepcopy(incoming))]
    while stack:
        target, source = stack.pop()
        merge_fields(target, source)

        by_title = {child.title: child for child in target.children}
        for child in source.children:
            existing = by_title.get(child.title)
            if existing is None:
                target.children.append(child)
                by_title[child.title] = child
            else:
                stack.append((existing, child))
    return accumulated


def merge(trees: Iterable[HierarchyNode]) -> HierarchyNode:
    """
    Merge an ordered sequence of trees.

    Children are unioned by title in input order. Nodes sharing a title are
    merged recursively, the type and scalar fields of the earlier tree win.
    Inputs are never modified.

    Args:
        trees: Trees to merge, highest precedence first

    Returns:
        New merged tree with paths reassigned

    Raises:
        ValueError: If no trees are given
    """
    trees = list(trees)
    if not trees:
        raise ValueError("merge() requires at least one tree")

    merged = reduce(_merge_pair, trees[1:], copy.deepcopy(trees[0]))
    merged.assign_paths()
    logger.debug(f"Merged {len(trees)} trees into {merged.count_nodes()} nodes")
    return merged


def _find_linking_chain(host: HierarchyNode, store_path: str) -> Optional[List[HierarchyNode]]:
    """Return the ancestor chain (root excluded) of the first node linking to ``store_path``."""
    target = normalize_store_path(store_path)
    stack = [(child, [child]) for child in reversed(host.children)]
    while stack:
        node, chain = stack.pop()
        if node.link_url and normalize_store_path(node.link_url) == target:
            return chain
        stack.extend((child, chain + [child]) for child in reversed(node.children))
    return None


def links_to(host: HierarchyNode, store_path: str) -> bool:
    """Check whether any node of ``host`` links to ``store_path``."""
    return _find_linking_chain(host, store_path) is not None


def _placeholder(node: HierarchyNode) -> HierarchyNode:
    """A contentless copy of a node that merges into the original by title."""
    text = node.text if node.type == NodeType.TEXT else None
    return HierarchyNode(type=node.type, title=node.title, text=text)


def anchor(subtree: HierarchyNode, host: HierarchyNode, store_path: str) -> HierarchyNode:
    """
    Wrap a sub-store tree so that merging it into ``host`` lands it in place.

    The sub-store content goes beneath the host node linking to
    ``store_path``. Without such a node, it becomes a top-level child titled
    with the sub-store title.

    Args:
        subtree: Root of the sub-store tree
        host: Tree of the store that links to the sub-store
        store_path: Source path of the sub-store

    Returns:
        New tree rooted like ``host``, ready to be passed to merge()
    """
    content = copy.deepcopy(subtree.children)
    chain = _find_linking_chain(host, store_path)

    if chain is None:
        logger.info(f"No node links to {store_path}; attaching '{subtree.title}' at the top level")
        wrapper = HierarchyNode(type=NodeType.SECTION_TITLE, title=subtree.title, children=content)
        return make_root(host.title, [wrapper])

    logger.debug(f"Anchoring {store_path} under '{chain[-1].title}'")
    placeholders = [_placeholder(node) for node in chain]
    for parent, child in zip(placeholders, placeholders[1:]):
        parent.children.append(child)
    placeholders[-1].children = content
    return make_root(host.title, [placeholders[0]])


__all__ = ['merge', 'anchor', 'links_to', 'first_non_empty', 'merge_fields']
