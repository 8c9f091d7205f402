import logging

##############################
# LOGGING CONSTANTS
##############################

RFE_LOGGING_LOG_LEVEL: int = logging.INFO
RFE_LOGGING_FORMAT: str = "[%(asctime)s] - %(name)s - [%(levelname)s] - %(message)s"
RFE_LOGGING_MAX_BYTES: int = 10 * (1 << 20)  # 10 MB
RFE_LOGGING_BACKUP_COUNT: int = 3

##############################
# TASK CONSTANTS
##############################

RFE_TASK_CLASSIFICATION: str = "classification"
RFE_TASK_REGRESSION: str = "regression"
RFE_TASK_TYPES: tuple[str, ...] = (RFE_TASK_REGRESSION, RFE_TASK_CLASSIFICATION)

##############################
# RANDOM FOREST CONSTANTS
##############################

RFE_RF_DEFAULT_NUM_TREES: int = 100
RFE_RF_DEFAULT_MAX_DEPTH: int | str = "auto"
RFE_RF_DEFAULT_MIN_SAMPLES_LEAF: int = 1
RFE_RF_DEFAULT_FEATURE_SAMPLING_RATIO: float | str = "sqrt"
RFE_RF_DEFAULT_BOOTSTRAP_SAMPLE_RATIO: float = 1.0
RFE_RF_DEFAULT_TASK_TYPE: str = RFE_TASK_CLASSIFICATION

# inclusive bounds
RFE_RF_NUM_TREES_RANGE: tuple[int, int] = (1, 1000)
RFE_RF_MAX_DEPTH_RANGE: tuple[int, int] = (1, 50)
RFE_RF_MIN_SAMPLES_LEAF_RANGE: tuple[int, int] = (1, 100)

RFE_RF_AUTO_MAX_DEPTH: str = "auto"
RFE_RF_FEATURE_SAMPLING_MODES: tuple[str, ...] = ("sqrt", "log2", "all")

# trees built between two cooperative yields of train_async
RFE_RF_YIELD_EVERY_N_TREES: int = 10

# a split must lower the weighted impurity by more than this to be accepted
RFE_RF_MIN_IMPURITY_DECREASE: float = 1e-12

# regression OOB prediction counts as correct within this fraction of |target|
RFE_RF_OOB_REGRESSION_TOLERANCE: float = 0.1

# minimum surviving trees for a training run to produce a model
RFE_RF_MIN_VIABLE_TREES: int = 1

##############################
# FEATURE IMPORTANCE CONSTANTS
##############################

RFE_PERMUTATION_IMPORTANCE_DEFAULT_REPEATS: int = 5
