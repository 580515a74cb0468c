import heapq
import itertools
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from arbor.const import ARBOR_CART_DEFAULT_MAX_NODES, ARBOR_CART_DEFAULT_NODE_SIZE, ARBOR_CART_DEFAULT_SPLIT_RULE
from arbor.data.dataset import Dataset
from arbor.models.random_forest.errors import ForestConfigError, InvalidStateError
from arbor.models.random_forest.tree.impurity import SplitRule, leaf_output, posteriori
from arbor.models.random_forest.tree.node import (
    InternalNode,
    LeafNode,
    Node,
    count_leaves,
    depth,
    find_leaf,
    route,
    to_leaf,
)
from arbor.models.random_forest.tree.split import Split, SplitFinder
from arbor.utils import get_logger

logger = get_logger(__name__)


@dataclass
class _GrowingNode:
    samples: np.ndarray
    size: int
    output: Union[int, float]
    counts: Optional[Tuple[int, ...]]
    split: Optional[Split] = None
    true_child: Optional["_GrowingNode"] = None
    false_child: Optional["_GrowingNode"] = None


class Tree:
    """
    CART decision tree for classification or regression, grown best-first.

    Pending nodes holding more than ``node_size`` weighted samples are scored by the split finder
    and queued by split score; the best queued node is split until no candidate remains or the
    tree has ``max_nodes`` leaves. Every other node becomes a leaf. Sibling leaves that predict the
    same output are folded into their parent once growth is done. The tree is immutable once
    ``fit`` returns.
    """

    def __init__(
        self,
        node_size: int = ARBOR_CART_DEFAULT_NODE_SIZE,
        max_nodes: int = ARBOR_CART_DEFAULT_MAX_NODES,
        mtry: Optional[int] = None,
        rule: SplitRule | str = ARBOR_CART_DEFAULT_SPLIT_RULE,
    ):
        if node_size < 1:
            raise ForestConfigError(f"Invalid minimum size of leaves: {node_size}")
        if max_nodes < 2:
            raise ForestConfigError(f"Invalid maximum number of leaves: {max_nodes}")

        self.node_size = node_size
        self.max_nodes = max_nodes
        self.mtry = mtry
        self.rule = SplitRule.parse(rule)

        self.root: Optional[Node] = None
        self.is_fitted_ = False

    @classmethod
    def build(
        cls,
        dataset: Dataset,
        samples: Optional[np.ndarray] = None,
        node_size: int = ARBOR_CART_DEFAULT_NODE_SIZE,
        max_nodes: int = ARBOR_CART_DEFAULT_MAX_NODES,
        mtry: Optional[int] = None,
        rule: SplitRule | str = ARBOR_CART_DEFAULT_SPLIT_RULE,
        rng: Optional[np.random.Generator] = None,
    ) -> "Tree":
        return cls(node_size=node_size, max_nodes=max_nodes, mtry=mtry, rule=rule).fit(dataset, samples, rng)

    def fit(
        self, dataset: Dataset, samples: Optional[np.ndarray] = None, rng: Optional[np.random.Generator] = None
    ) -> "Tree":
        """
        Grows the tree on the rows of ``dataset`` weighted by ``samples``.

        :param Dataset dataset: The training data, with a response vector
        :param Optional[np.ndarray] samples: How many times each row is drawn, defaults to every row once
        :param Optional[np.random.Generator] rng: Source of the per-node feature permutations
        :return Tree: The fitted tree
        """
        if samples is None:
            samples = np.ones(dataset.n_rows, dtype=np.int64)
        samples = np.asarray(samples)
        if samples.shape != (dataset.n_rows,):
            raise ValueError(f"samples must have length {dataset.n_rows}, got shape {samples.shape}")
        if samples.dtype.kind not in ("i", "u") or np.any(samples < 0):
            raise ValueError("samples must hold non-negative integer counts")
        if samples.sum() == 0:
            raise ValueError("Cannot grow a tree without any training sample")

        self.task = dataset.task
        self.n_features_ = dataset.n_features
        self.n_classes_ = dataset.n_classes if self.task == "classification" else 0
        self._finder = SplitFinder(dataset, rule=self.rule, node_size=self.node_size, mtry=self.mtry, rng=rng)
        self._y = dataset.response
        self.importance_ = np.zeros(dataset.n_features)

        root = self._grow(self._make_node(samples))
        self.root = to_leaf(root)
        self.is_fitted_ = True

        del self._finder, self._y
        logger.debug(f"Grew a tree with {self.n_leaves()} leaves and depth {self.depth()}")
        return self

    def _make_node(self, samples: np.ndarray) -> _GrowingNode:
        rows = np.flatnonzero(samples)
        w = samples[rows]
        size = int(w.sum())

        if self.task == "classification":
            hist = np.bincount(self._y[rows], weights=w, minlength=self.n_classes_).astype(np.int64)
            return _GrowingNode(samples=samples, size=size, output=leaf_output(hist), counts=tuple(int(c) for c in hist))

        return _GrowingNode(samples=samples, size=size, output=float(np.dot(w, self._y[rows]) / size), counts=None)

    def _find_split(self, node: _GrowingNode) -> Optional[Split]:
        if node.size <= self.node_size:
            return None
        return self._finder.find_best_split(node.samples)

    def _grow(self, root: _GrowingNode) -> Node:
        order = itertools.count()
        queue: list = []

        split = self._find_split(root)
        if split is not None:
            heapq.heappush(queue, (-split.score, next(order), root, split))

        leaves = 1
        while queue and leaves < self.max_nodes:
            _, _, node, split = heapq.heappop(queue)
            true_samples, false_samples = self._finder.partition(split, node.samples)

            node.split = split
            node.true_child = self._make_node(true_samples)
            node.false_child = self._make_node(false_samples)
            if node.true_child.size + node.false_child.size != node.size or 0 in (
                node.true_child.size,
                node.false_child.size,
            ):
                raise InvalidStateError(f"Split on feature {split.feature} does not partition its node")

            self.importance_[split.feature] += split.score
            leaves += 1

            for child in (node.true_child, node.false_child):
                child_split = self._find_split(child)
                if child_split is not None:
                    heapq.heappush(queue, (-child_split.score, next(order), child, child_split))

            node.samples = None

        return self._freeze(root)

    @staticmethod
    def _freeze(root: _GrowingNode) -> Node:
        frozen: dict[int, Node] = {}
        stack = [(root, False)]
        while stack:
            node, children_done = stack.pop()
            if node.split is None:
                frozen[id(node)] = LeafNode(output=node.output, size=node.size, counts=node.counts)
                continue
            if not children_done:
                stack.append((node, True))
                stack.append((node.false_child, False))
                stack.append((node.true_child, False))
                continue

            frozen[id(node)] = InternalNode(
                feature=node.split.feature,
                score=node.split.score,
                size=node.size,
                output=node.output,
                true_child=frozen.pop(id(node.true_child)),
                false_child=frozen.pop(id(node.false_child)),
                threshold=node.split.threshold,
                categories=node.split.categories,
                counts=node.counts,
            )
        return frozen[id(root)]

    def _check_input(self, x: np.ndarray, ndim: int) -> np.ndarray:
        assert self.is_fitted_, "The tree must be trained before prediction"
        x = np.asarray(x, dtype=float)
        if x.ndim != ndim or x.shape[-1] != self.n_features_:
            raise ValueError(f"Expected input with {self.n_features_} features, got shape {x.shape}")
        return x

    def predict_one(self, x: np.ndarray) -> Union[int, float]:
        x = self._check_input(x, ndim=1)
        return find_leaf(self.root, x).output

    def predict(self, x: np.ndarray) -> np.ndarray:
        x = self._check_input(x, ndim=2)
        outputs = [leaf.output for leaf in route(self.root, x)]
        return np.asarray(outputs, dtype=np.int64 if self.task == "classification" else float)

    def posteriori_one(self, x: np.ndarray) -> Tuple[int, np.ndarray]:
        if self.task != "classification":
            raise ValueError("Posteriori probabilities are only available for classification trees")
        leaf = find_leaf(self.root, self._check_input(x, ndim=1))
        return leaf.output, posteriori(leaf.counts)

    def posteriori(self, x: np.ndarray) -> np.ndarray:
        if self.task != "classification":
            raise ValueError("Posteriori probabilities are only available for classification trees")
        x = self._check_input(x, ndim=2)
        return np.vstack([posteriori(leaf.counts) for leaf in route(self.root, x)])

    def importance(self) -> np.ndarray:
        return self.importance_.copy()

    def depth(self) -> int:
        return depth(self.root)

    def n_leaves(self) -> int:
        return count_leaves(self.root)

    def to_leaf(self) -> "Tree":
        """Copy of the tree with sibling leaves of equal prediction folded, the fitted tree already is."""
        tree = Tree(node_size=self.node_size, max_nodes=self.max_nodes, mtry=self.mtry, rule=self.rule)
        tree.__dict__.update(self.__dict__)
        tree.root = to_leaf(self.root)
        tree.importance_ = self.importance_.copy()
        return tree
