from collections import deque
from dataclasses import dataclass
from typing import FrozenSet, Iterator, Optional, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class LeafNode:
    """
    Terminal node of a CART tree.

    Holds the prediction for the samples reaching it: the majority class code for
    classification, the mean response for regression. ``size`` is the bagging-weighted
    number of training samples that reached the leaf and ``counts`` the weighted class
    histogram (classification only).
    """

    output: Union[int, float]
    size: int
    counts: Optional[Tuple[int, ...]] = None


@dataclass(frozen=True)
class InternalNode:
    """
    Binary decision node of a CART tree.

    Continuous splits send ``x[feature] <= threshold`` to ``true_child``; nominal splits
    send ``x[feature] in categories`` to ``true_child``. Everything else goes to
    ``false_child``. ``score`` is the impurity (or variance) reduction achieved by the split.
    """

    feature: int
    score: float
    size: int
    output: Union[int, float]
    true_child: "Node"
    false_child: "Node"
    threshold: Optional[float] = None
    categories: Optional[FrozenSet[int]] = None
    counts: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        if (self.threshold is None) == (self.categories is None):
            raise ValueError("An internal node needs exactly one of threshold or categories")

    @property
    def is_nominal(self) -> bool:
        return self.categories is not None

    def goes_true(self, value: float) -> bool:
        if self.categories is not None:
            return int(value) in self.categories
        return value <= self.threshold

    def true_mask(self, values: np.ndarray) -> np.ndarray:
        if self.categories is not None:
            return np.isin(values.astype(np.int64), np.fromiter(self.categories, dtype=np.int64))
        return values <= self.threshold


Node = Union[LeafNode, InternalNode]


def find_leaf(node: Node, x: np.ndarray) -> LeafNode:
    while isinstance(node, InternalNode):
        node = node.true_child if node.goes_true(x[node.feature]) else node.false_child
    return node


def route(node: Node, x: np.ndarray) -> list[LeafNode]:
    """Leaf reached by every row of the 2D array ``x``."""
    leaves: list[Optional[LeafNode]] = [None] * x.shape[0]
    stack = [(node, np.arange(x.shape[0]))]
    while stack:
        current, rows = stack.pop()
        if rows.size == 0:
            continue
        if isinstance(current, LeafNode):
            for i in rows:
                leaves[i] = current
            continue
        mask = current.true_mask(x[rows, current.feature])
        stack.append((current.false_child, rows[~mask]))
        stack.append((current.true_child, rows[mask]))
    return leaves


def iter_nodes(node: Node) -> Iterator[Node]:
    """Breadth-first traversal, true child before false child."""
    queue = deque([node])
    while queue:
        current = queue.popleft()
        yield current
        if isinstance(current, InternalNode):
            queue.append(current.true_child)
            queue.append(current.false_child)


def depth(node: Node) -> int:
    """Number of edges on the longest root-to-leaf path."""
    deepest = 0
    stack = [(node, 0)]
    while stack:
        current, d = stack.pop()
        if isinstance(current, InternalNode):
            stack.append((current.true_child, d + 1))
            stack.append((current.false_child, d + 1))
        else:
            deepest = max(deepest, d)
    return deepest


def count_leaves(node: Node) -> int:
    return sum(1 for n in iter_nodes(node) if isinstance(n, LeafNode))


def _merge_leaves(left: LeafNode, right: LeafNode) -> LeafNode:
    counts = None
    if left.counts is not None and right.counts is not None:
        counts = tuple(a + b for a, b in zip(left.counts, right.counts))
    return LeafNode(output=left.output, size=left.size + right.size, counts=counts)


def to_leaf(node: Node) -> Node:
    """
    Folds every internal node whose two children are leaves with the same prediction into
    a single leaf, bottom-up. Predictions are unchanged and applying it twice is a no-op.
    """
    if isinstance(node, LeafNode):
        return node

    # post-order without recursion, deep trees can exceed the interpreter's recursion limit
    folded: dict[int, Node] = {}
    stack: list[tuple[InternalNode, bool]] = [(node, False)]
    while stack:
        current, children_done = stack.pop()
        if not children_done:
            stack.append((current, True))
            for child in (current.false_child, current.true_child):
                if isinstance(child, InternalNode):
                    stack.append((child, False))
            continue

        true_child = folded.pop(id(current.true_child), current.true_child)
        false_child = folded.pop(id(current.false_child), current.false_child)

        if (
            isinstance(true_child, LeafNode)
            and isinstance(false_child, LeafNode)
            and true_child.output == false_child.output
        ):
            folded[id(current)] = _merge_leaves(true_child, false_child)
        elif true_child is current.true_child and false_child is current.false_child:
            folded[id(current)] = current
        else:
            folded[id(current)] = InternalNode(
                feature=current.feature,
                score=current.score,
                size=current.size,
                output=current.output,
                true_child=true_child,
                false_child=false_child,
                threshold=current.threshold,
                categories=current.categories,
                counts=current.counts,
            )

    return folded[id(node)]
