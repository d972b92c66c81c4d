# outbreak_ml/config.py
import os
import copy
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
import json
import logging

logger = logging.getLogger(__name__)

@dataclass
class PathConfig:
    """Configuration for project paths"""
    PROJECT_ROOT: Path
    DATA_DIR: Path
    LOGS_DIR: Path
    TESTS_DIR: Path

@dataclass
class MLFlowConfig:
    """Configuration for MLflow tracking"""
    ENABLED: bool
    TRACKING_URI: str
    EXPERIMENT_NAME: str

@dataclass
class ModelTrainingConfig:
    """Configuration for the split, the boosted-tree model and the manual trials"""
    TRAIN_FRACTION: float
    DECISION_THRESHOLD: float
    RANDOM_STATE: int
    TOP_FEATURES: int
    BASE_PARAMS: Dict[str, Any] = field(default_factory=dict)
    TRIALS: List[Dict[str, Any]] = field(default_factory=list)

@dataclass
class DataValidationConfig:
    """Configuration for data validation"""
    MIN_ROWS: int

@dataclass
class FeatureEngineeringConfig:
    """Column names and patterns the feature builder relies on"""
    LABEL_SOURCE_COLUMN: str
    LEAKAGE_PREFIX: str
    IDENTIFIER_COLUMNS: List[str]
    COUNTRY_COLUMN: str
    SPECIES_COLUMN: str
    DOMESTIC_PATTERN: str
    COUNTRY_PREFIX: str
    SPECIES_PREFIX: str

    @property
    def required_columns(self) -> List[str]:
        return list(self.IDENTIFIER_COLUMNS) + [
            self.COUNTRY_COLUMN,
            self.SPECIES_COLUMN,
            self.LABEL_SOURCE_COLUMN,
        ]

# Parameters shared by every trial; each trial overrides a subset
DEFAULT_BASE_PARAMS = {
    'n_estimators': 100,
    'max_depth': 3,
    'learning_rate': 0.3,
    'early_stopping_rounds': 10,
    'scale_pos_weight': 1.0,
    'reg_lambda': 1.0,
    'gamma': 0.0,
}

DEFAULT_TRIALS = [
    {'name': 'baseline', 'params': {}},
    {'name': 'deeper_trees', 'params': {'max_depth': 6, 'n_estimators': 200}},
    {'name': 'class_weighted', 'params': {'scale_pos_weight': 'auto'}},
    {'name': 'regularized', 'params': {'max_depth': 6, 'reg_lambda': 10.0, 'gamma': 1.0}},
]

class Config:
    """Central configuration manager for the outbreak pipeline"""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration

        Args:
            config_file: Optional path to JSON config file to override defaults
        """
        self._load_default_config()

        if config_file and os.path.exists(config_file):
            self._load_config_file(config_file)

        self._load_environment_variables()

    def _load_default_config(self):
        """Load default configuration values"""

        project_root = Path(__file__).parent.parent
        self.paths = PathConfig(
            PROJECT_ROOT=project_root,
            DATA_DIR=project_root / "data",
            LOGS_DIR=project_root / "logs",
            TESTS_DIR=project_root / "tests"
        )

        self.mlflow = MLFlowConfig(
            ENABLED=True,
            TRACKING_URI="sqlite:///mlflow.db",
            EXPERIMENT_NAME="outbreak_human_impact"
        )

        self.training = ModelTrainingConfig(
            TRAIN_FRACTION=0.7,
            DECISION_THRESHOLD=0.5,
            RANDOM_STATE=42,
            TOP_FEATURES=10,
            BASE_PARAMS=copy.deepcopy(DEFAULT_BASE_PARAMS),
            TRIALS=copy.deepcopy(DEFAULT_TRIALS)
        )

        self.features = FeatureEngineeringConfig(
            LABEL_SOURCE_COLUMN="humansAffected",
            LEAKAGE_PREFIX="human",
            IDENTIFIER_COLUMNS=["Id", "longitude", "latitude"],
            COUNTRY_COLUMN="country",
            SPECIES_COLUMN="speciesDescription",
            DOMESTIC_PATTERN="domestic",
            COUNTRY_PREFIX="country",
            SPECIES_PREFIX="species"
        )

        self.data_validation = DataValidationConfig(
            MIN_ROWS=2
        )

        self.logging_level = "INFO"
        self.debug_mode = False

    def _load_config_file(self, config_file: str):
        """Load configuration from JSON file"""
        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load config file {config_file}: {e}")
            return

        for section, values in config_data.items():
            if not hasattr(self, section):
                logger.warning(f"Unknown config section ignored: {section}")
                continue
            config_obj = getattr(self, section)
            if not isinstance(values, dict):
                setattr(self, section, values)
                continue
            for key, value in values.items():
                if hasattr(config_obj, key):
                    setattr(config_obj, key, value)
                else:
                    logger.warning(f"Unknown config key ignored: {section}.{key}")

    def _load_environment_variables(self):
        """Load configuration from environment variables"""

        if os.getenv("MLFLOW_TRACKING_URI"):
            self.mlflow.TRACKING_URI = os.getenv("MLFLOW_TRACKING_URI")

        if os.getenv("MLFLOW_EXPERIMENT_NAME"):
            self.mlflow.EXPERIMENT_NAME = os.getenv("MLFLOW_EXPERIMENT_NAME")

        if os.getenv("MLFLOW_ENABLED"):
            self.mlflow.ENABLED = os.getenv("MLFLOW_ENABLED").lower() == 'true'

        if os.getenv("TRAIN_FRACTION"):
            self.training.TRAIN_FRACTION = float(os.getenv("TRAIN_FRACTION"))

        if os.getenv("DECISION_THRESHOLD"):
            self.training.DECISION_THRESHOLD = float(os.getenv("DECISION_THRESHOLD"))

        if os.getenv("RANDOM_STATE"):
            self.training.RANDOM_STATE = int(os.getenv("RANDOM_STATE"))

        if os.getenv("LOG_LEVEL"):
            self.logging_level = os.getenv("LOG_LEVEL")

        if os.getenv("DEBUG_MODE"):
            self.debug_mode = os.getenv("DEBUG_MODE").lower() == 'true'

    def create_directories(self):
        """Create necessary directories if they don't exist"""
        for directory in [self.paths.DATA_DIR, self.paths.LOGS_DIR]:
            directory.mkdir(parents=True, exist_ok=True)

    def get_trial_params(self) -> List[Dict[str, Any]]:
        """Resolve each trial into a full parameter set (base params + overrides)"""
        resolved = []
        for index, trial in enumerate(self.training.TRIALS):
            params = dict(self.training.BASE_PARAMS)
            params.update(trial.get('params', {}))
            resolved.append({
                'name': trial.get('name', f"trial_{index + 1}"),
                'params': params
            })
        return resolved

    def save_config(self, config_file: str):
        """Save current configuration to JSON file"""
        config_dict = {}

        for attr_name in dir(self):
            if not attr_name.startswith('_'):
                attr_value = getattr(self, attr_name)
                if hasattr(attr_value, '__dict__'):
                    config_dict[attr_name] = {}
                    for field_name, field_value in attr_value.__dict__.items():
                        if isinstance(field_value, Path):
                            config_dict[attr_name][field_name] = str(field_value)
                        else:
                            config_dict[attr_name][field_name] = field_value
                elif not callable(attr_value):
                    config_dict[attr_name] = attr_value

        with open(config_file, 'w') as f:
            json.dump(config_dict, f, indent=2)

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        if not 0 < self.training.TRAIN_FRACTION < 1:
            issues.append(f"Invalid train fraction: {self.training.TRAIN_FRACTION}")

        if not 0 < self.training.DECISION_THRESHOLD < 1:
            issues.append(f"Invalid decision threshold: {self.training.DECISION_THRESHOLD}")

        if self.training.TOP_FEATURES < 1:
            issues.append(f"Top features must be >= 1: {self.training.TOP_FEATURES}")

        if not self.training.TRIALS:
            issues.append("At least one hyperparameter trial is required")

        for trial in self.get_trial_params():
            n_estimators = trial['params'].get('n_estimators', 1)
            if not isinstance(n_estimators, int) or n_estimators < 1:
                issues.append(f"Trial '{trial['name']}' has invalid n_estimators: {n_estimators}")
            weight = trial['params'].get('scale_pos_weight', 1.0)
            if weight != 'auto' and not isinstance(weight, (int, float)):
                issues.append(f"Trial '{trial['name']}' has invalid scale_pos_weight: {weight}")

        if self.data_validation.MIN_ROWS <= 0:
            issues.append(f"Invalid min rows: {self.data_validation.MIN_ROWS}")

        if not self.features.LEAKAGE_PREFIX:
            issues.append("Leakage prefix must not be empty")

        return issues

    def __str__(self) -> str:
        """String representation of configuration"""
        return f"Config(project_root={self.paths.PROJECT_ROOT}, debug={self.debug_mode})"

# Global configuration instance
_config = None

def get_config(config_file: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton pattern)"""
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config

def reload_config(config_file: Optional[str] = None) -> Config:
    """Reload configuration (useful for testing)"""
    global _config
    _config = Config(config_file)
    return _config
