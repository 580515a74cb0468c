import logging

##############################
# LOGGING CONSTANTS
##############################

ARBOR_LOGGING_LOG_LEVEL: int = logging.INFO
ARBOR_LOGGING_FORMAT: str = "[%(asctime)s] - %(name)s - [%(levelname)s] - %(message)s"
ARBOR_LOGGING_MAX_BYTES: int = 10 * (1 << 20)  # 10 MB
ARBOR_LOGGING_BACKUP_COUNT: int = 3
ARBOR_LOGGING_LOG_PATH_ENV: str = "ARBOR_LOG_PATH"

ARBOR_TIMING_DECIMALS: int = 4

##############################
# CART CONSTANTS
##############################

ARBOR_CART_DEFAULT_NODE_SIZE: int = 5
ARBOR_CART_DEFAULT_MAX_NODES: int = 6
ARBOR_CART_DEFAULT_SPLIT_RULE: str = "gini"

# Multi-class nominal features with at most this many categories present in a node
# are split by enumerating every bipartition, larger ones fall back to one-vs-rest.
ARBOR_MAX_EXHAUSTIVE_CATEGORIES: int = 10

##############################
# RANDOM FOREST CONSTANTS
##############################

ARBOR_RF_DEFAULT_N_TREES: int = 500
ARBOR_RF_DEFAULT_SUBSAMPLE: float = 1.0
ARBOR_RF_CLASSIFICATION_NODE_SIZE: int = 1
ARBOR_RF_REGRESSION_NODE_SIZE: int = 5
ARBOR_RF_DEFAULT_N_JOBS: int = -1
ARBOR_RF_PARALLEL_PREFER: str = "threads"
ARBOR_MAX_SEED: int = 2**31 - 1

# Voting weight of a tree that was trained without out-of-bag rows
ARBOR_RF_NEUTRAL_TREE_WEIGHT: float = 1.0
