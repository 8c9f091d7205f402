from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

import numpy as np


@dataclass(frozen=True)
class LeafNode:
    """Terminal node holding the majority class or the mean target of the samples reaching it."""
    prediction: float
    samples: int
    impurity: float


@dataclass(frozen=True)
class InternalNode:
    """
    Decision node splitting on ``x[feature_index] <= threshold``.

    Samples satisfying the test descend into ``left``, the rest into ``right``.
    """
    feature_index: int
    threshold: float
    samples: int
    impurity: float
    left: "Node"
    right: "Node"


Node = Union[LeafNode, InternalNode]


def predict_node(node: Node, x: Sequence[float] | np.ndarray) -> float:
    current = node
    while isinstance(current, InternalNode):
        if x[current.feature_index] <= current.threshold:
            current = current.left
        else:
            current = current.right

    return current.prediction


def iter_internal_nodes(node: Node):
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, InternalNode):
            yield current
            stack.append(current.right)
            stack.append(current.left)


def node_depth(node: Node) -> int:
    if isinstance(node, LeafNode):
        return 0
    return 1 + max(node_depth(node.left), node_depth(node.right))


def count_leaves(node: Node) -> int:
    if isinstance(node, LeafNode):
        return 1
    return count_leaves(node.left) + count_leaves(node.right)


def node_to_dict(node: Node) -> dict[str, Any]:
    if isinstance(node, LeafNode):
        return {
            "isLeaf": True,
            "prediction": node.prediction,
            "samples": node.samples,
            "impurity": node.impurity,
        }

    return {
        "isLeaf": False,
        "featureIndex": node.feature_index,
        "threshold": node.threshold,
        "samples": node.samples,
        "impurity": node.impurity,
        "left": node_to_dict(node.left),
        "right": node_to_dict(node.right),
    }


def node_from_dict(document: Mapping[str, Any]) -> Node:
    if document.get("isLeaf", False):
        return LeafNode(
            prediction=float(document["prediction"]),
            samples=int(document["samples"]),
            impurity=float(document["impurity"]),
        )

    if "left" not in document or "right" not in document:
        raise ValueError("Internal node document must contain both 'left' and 'right' children")

    return InternalNode(
        feature_index=int(document["featureIndex"]),
        threshold=float(document["threshold"]),
        samples=int(document["samples"]),
        impurity=float(document["impurity"]),
        left=node_from_dict(document["left"]),
        right=node_from_dict(document["right"]),
    )
