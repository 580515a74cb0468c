from collections import deque
from typing import Optional, Sequence

from graphviz import Digraph

from .node import InternalNode, LeafNode, Node
from .tree import Tree


def build_graph(
    tree: Tree,
    filename: str = "tree",
    path: str = "",
    feature_names: Optional[Sequence[str]] = None,
    view: bool = False,
) -> Digraph:
    """
    Renders a fitted tree as a graphviz digraph, one box per node, breadth-first.

    Edges are labelled True/False after the outcome of the parent's split test. The graph
    source is available through ``graph.source``; rendering to an image needs the graphviz
    binaries and only happens when ``view`` is set.
    """
    assert tree.is_fitted_, "The tree must be trained before it can be drawn"

    node_attr = [
        ("shape", "box"),
        ("style", "filled,rounded"),
        ("color", "black"),
        ("fontname", "helvetica"),
    ]

    graph = Digraph(
        "DecisionTree",
        filename=filename,
        directory=path,
        format="png",
        node_attr=node_attr,
        edge_attr=[("fontname", "helvetica")],
    )

    ids = {}
    queue = deque([tree.root])
    while queue:
        node = queue.popleft()
        node_id = ids.setdefault(id(node), str(len(ids)))
        graph.node(node_id, label=_format_node_label(node, feature_names), fillcolor=_fill_color(node))

        if isinstance(node, InternalNode):
            for child, outcome, angle in ((node.true_child, "True", "45"), (node.false_child, "False", "-45")):
                child_id = ids.setdefault(id(child), str(len(ids)))
                graph.edge(node_id, child_id, headlabel=outcome, labeldistance="2.5", labelangle=angle)
                queue.append(child)

    if view:
        graph.view()

    return graph


def _fill_color(node: Node) -> str:
    return "#e5f5e0" if isinstance(node, LeafNode) else "#f0f0f0"


def _format_node_label(node: Node, feature_names: Optional[Sequence[str]]) -> str:
    lines = []

    if isinstance(node, InternalNode):
        name = feature_names[node.feature] if feature_names is not None else f"X[{node.feature}]"
        if node.is_nominal:
            lines.append(f"{name} in {sorted(node.categories)}")
        else:
            lines.append(f"{name} <= {node.threshold:.4f}")
        lines.append(f"Score: {node.score:.4f}")

    lines.append(f"Samples: {node.size}")
    if node.counts is not None:
        lines.append(f"Counts: {list(node.counts)}")

    if isinstance(node.output, float):
        lines.append(f"Predict: {node.output:.4f}")
    else:
        lines.append(f"Predict: {node.output}")

    return "\\n".join(lines)
