from .errors import ForestConfigError, InvalidStateError
from .forest.classification import RandomForestClassifier
from .forest.forest import ForestTree, RandomForest
from .forest.regression import RandomForestRegressor
from .sampling.bagging import BaggingSampler
from .tree.impurity import SplitRule
from .tree.split import Split, SplitFinder
from .tree.tree import Tree

__all__ = [
    "RandomForest",
    "RandomForestClassifier",
    "RandomForestRegressor",
    "ForestTree",
    "Tree",
    "Split",
    "SplitFinder",
    "SplitRule",
    "BaggingSampler",
    "ForestConfigError",
    "InvalidStateError",
]
