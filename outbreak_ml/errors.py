# outbreak_ml/errors.py


class OutbreakPipelineError(ValueError):
    """Base class for data problems detected by the pipeline"""


class SchemaMismatchError(OutbreakPipelineError):
    """Expected columns are absent (or collide) in the input table"""

    def __init__(self, message: str, missing=None):
        super().__init__(message)
        self.missing = list(missing or [])


class DataShapeError(OutbreakPipelineError):
    """Row counts of features, labels or partitions are inconsistent"""
