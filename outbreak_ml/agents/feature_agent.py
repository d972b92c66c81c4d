# outbreak_ml/agents/feature_agent.py
import re
import pandas as pd
import numpy as np
from typing import List, Optional
import logging
from sklearn.preprocessing import OneHotEncoder

from outbreak_ml.config import Config, FeatureEngineeringConfig, get_config
from outbreak_ml.errors import SchemaMismatchError, DataShapeError, OutbreakPipelineError
from outbreak_ml.agents.data_agent import check_schema

logger = logging.getLogger(__name__)

LABEL_NAME = 'has_human_impact'
DOMESTIC_FLAG = 'is_domestic'

# Last alphabetic word, ignoring any trailing punctuation
SPECIES_TOKEN_PATTERN = r'([A-Za-z]+)[^A-Za-z]*$'

# XGBoost refuses feature names containing any of these
_UNSAFE_NAME_CHARS = re.compile(r"[\[\]<]")

# Placeholder for missing categories; never fitted, so it encodes to an all-zero row
_MISSING_CATEGORY = '__MISSING__'

def derive_labels(data: pd.DataFrame, source_column: str = 'humansAffected') -> pd.Series:
    """True where the human-impact count is present"""
    if source_column not in data.columns:
        raise SchemaMismatchError(f"Label source column '{source_column}' not found", missing=[source_column])
    return data[source_column].notna().rename(LABEL_NAME)

def drop_leakage_columns(data: pd.DataFrame, prefix: str) -> pd.DataFrame:
    leakage = [col for col in data.columns if str(col).startswith(prefix)]
    return data.drop(columns=leakage)

def select_numeric(data: pd.DataFrame) -> pd.DataFrame:
    return data.select_dtypes(include=[np.number])

def extract_species_token(descriptions: pd.Series) -> pd.Series:
    """
    Extract the trailing word of each species description

    "Columba livia (domestic)" -> "domestic", "Anas platyrhynchos" -> "platyrhynchos".
    Descriptions without any alphabetic word give a missing value.
    """
    text = descriptions.astype('string')
    return text.str.extract(SPECIES_TOKEN_PATTERN, expand=False)

def flag_pattern(descriptions: pd.Series, pattern: str, name: str = DOMESTIC_FLAG) -> pd.Series:
    """1.0 where the text contains pattern (case-insensitive), 0.0 otherwise"""
    text = descriptions.astype('string')
    matches = text.str.contains(pattern, case=False, regex=False)
    return matches.fillna(False).astype(float).rename(name)

def safe_feature_name(name) -> str:
    """Replace the characters XGBoost rejects in feature names with underscores"""
    return _UNSAFE_NAME_CHARS.sub("_", str(name))

def one_hot_encode(values: pd.Series, prefix: str) -> pd.DataFrame:
    """
    One indicator column per observed category, named "<prefix>_<category>"

    Rows with a missing category are kept and get all-zero indicators.
    """
    present = values.notna()
    observed = values[present].astype(str)

    if observed.empty:
        return pd.DataFrame(index=values.index)

    encoder = OneHotEncoder(handle_unknown='ignore', sparse_output=False, dtype=float)
    encoder.fit(observed.to_numpy().reshape(-1, 1))

    filled = values.astype(object).where(present, _MISSING_CATEGORY).astype(str)
    encoded = encoder.transform(filled.to_numpy().reshape(-1, 1))

    columns = [f"{prefix}_{category}" for category in encoder.categories_[0]]
    return pd.DataFrame(encoded, index=values.index, columns=columns)

def build_feature_matrix(data: pd.DataFrame, features: FeatureEngineeringConfig) -> pd.DataFrame:
    """
    Turn the raw outbreak table into a single numeric matrix

    Leakage and identifier columns are dropped before numeric selection, then
    the domestic flag and the country/species indicators are appended. The
    result keeps the index and row order of ``data``.
    """
    check_schema(data, features.required_columns)

    retained = drop_leakage_columns(data, features.LEAKAGE_PREFIX)
    retained = retained.drop(columns=[col for col in features.IDENTIFIER_COLUMNS if col in retained.columns])
    numeric = select_numeric(retained)

    species = data[features.SPECIES_COLUMN]
    domestic = flag_pattern(species, features.DOMESTIC_PATTERN)
    countries = one_hot_encode(data[features.COUNTRY_COLUMN], features.COUNTRY_PREFIX)
    species_tokens = one_hot_encode(extract_species_token(species), features.SPECIES_PREFIX)

    matrix = pd.concat([numeric, domestic.to_frame(), countries, species_tokens], axis=1)
    matrix.columns = [safe_feature_name(col) for col in matrix.columns]

    duplicated = matrix.columns[matrix.columns.duplicated()].tolist()
    if duplicated:
        raise SchemaMismatchError(f"Feature columns collide after encoding: {duplicated}")

    return matrix.astype(float)

class FeatureEngineeringAgent:
    """Agent responsible for label derivation and feature encoding"""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    async def engineer_features(self, state: dict) -> dict:
        """Build the label vector and feature matrix from the raw table"""
        logger.info("Starting feature engineering")

        try:
            data = state['raw_data']
            features = self.config.features

            labels = derive_labels(data, features.LABEL_SOURCE_COLUMN)
            X = build_feature_matrix(data, features)

            if len(X) != len(labels):
                raise DataShapeError(f"Feature rows ({len(X)}) do not match labels ({len(labels)})")

            feature_report = self._build_report(data, X, labels)

            state.update({
                'features': X,
                'labels': labels,
                'feature_report': feature_report,
                'current_step': 'feature_engineering',
                'next_action': 'data_split'
            })

            state['execution_log'].append(
                f"Feature engineering completed: {data.shape[1]} columns -> {X.shape[1]} features"
            )

            return state

        except OutbreakPipelineError as e:
            logger.error(f"Feature engineering failed: {str(e)}")
            state.setdefault('errors', []).append(f"Feature engineering error: {str(e)}")
            state['current_step'] = 'feature_engineering'
            state['next_action'] = 'error'
            return state

    def _build_report(self, data: pd.DataFrame, X: pd.DataFrame, labels: pd.Series) -> dict:
        features = self.config.features
        country_columns = self._columns_with_prefix(X, features.COUNTRY_PREFIX)
        species_columns = self._columns_with_prefix(X, features.SPECIES_PREFIX)
        dropped = [col for col in data.columns if col.startswith(features.LEAKAGE_PREFIX)]

        return {
            'original_columns': data.shape[1],
            'final_features': X.shape[1],
            'feature_names': list(X.columns),
            'leakage_columns_dropped': dropped,
            'country_indicators': len(country_columns),
            'species_indicators': len(species_columns),
            'domestic_rows': int(X[DOMESTIC_FLAG].sum()),
            'positive_labels': int(labels.sum()),
            'negative_labels': int((~labels).sum())
        }

    @staticmethod
    def _columns_with_prefix(X: pd.DataFrame, prefix: str) -> List[str]:
        return [col for col in X.columns if col.startswith(f"{prefix}_")]
