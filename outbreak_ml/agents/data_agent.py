# outbreak_ml/agents/data_agent.py
import pandas as pd
import numpy as np
from typing import List, Optional
import logging
from pathlib import Path

import great_expectations as gx
import great_expectations.expectations as gxe

from outbreak_ml.config import Config, get_config
from outbreak_ml.errors import SchemaMismatchError, DataShapeError

logger = logging.getLogger(__name__)

def load_records(data_path: str) -> pd.DataFrame:
    """Read an outbreak CSV into a DataFrame"""
    path = Path(data_path)

    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {data_path}")

    if path.suffix.lower() != '.csv':
        raise ValueError(f"Unsupported file format: {path.suffix}")

    for encoding in ['utf-8', 'latin-1']:
        try:
            return pd.read_csv(path, encoding=encoding)
        except UnicodeDecodeError:
            logger.debug(f"Could not decode {path.name} as {encoding}")
            continue

    raise ValueError(f"Could not decode CSV file {data_path}")

def categorical_columns(data: pd.DataFrame) -> List[str]:
    """Text and categorical columns, whichever string dtype pandas picked"""
    return [
        col for col, dtype in data.dtypes.items()
        if pd.api.types.is_object_dtype(dtype)
        or pd.api.types.is_string_dtype(dtype)
        or isinstance(dtype, pd.CategoricalDtype)
    ]

def check_schema(data: pd.DataFrame, required_columns: List[str]) -> None:
    """Raise SchemaMismatchError if any required column is absent"""
    missing = [col for col in required_columns if col not in data.columns]
    if missing:
        raise SchemaMismatchError(f"Missing expected columns: {missing}", missing=missing)

class DataIngestionAgent:
    """Agent responsible for loading outbreak records and checking their schema"""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    async def process(self, state: dict) -> dict:
        """Main processing function for data ingestion"""
        logger.info(f"Starting data ingestion for: {state['data_path']}")

        try:
            data = load_records(state['data_path'])
            data_info = self._extract_data_info(data)

            state.update({
                'raw_data': data,
                'data_info': data_info,
                'current_step': 'data_ingestion',
                'next_action': 'data_validation'
            })

            state['execution_log'].append(
                f"Data loaded successfully: {data.shape[0]} rows, {data.shape[1]} columns"
            )

            return state

        except (OSError, ValueError) as e:
            logger.error(f"Data ingestion failed: {str(e)}")
            state.setdefault('errors', []).append(f"Data ingestion error: {str(e)}")
            state['current_step'] = 'data_ingestion'
            state['next_action'] = 'error'
            return state

    def _extract_data_info(self, data: pd.DataFrame) -> dict:
        """Extract summary information about the dataset"""
        label_column = self.config.features.LABEL_SOURCE_COLUMN
        info = {
            'shape': data.shape,
            'columns': list(data.columns),
            'missing_values': data.isnull().sum().to_dict(),
            'numeric_columns': list(data.select_dtypes(include=[np.number]).columns),
            'categorical_columns': categorical_columns(data),
            'duplicate_rows': int(data.duplicated().sum())
        }
        if label_column in data.columns:
            info['label_present_rate'] = float(data[label_column].notna().mean()) if len(data) else 0.0
        return info

    async def validate(self, state: dict) -> dict:
        """Check the loaded table against the expected outbreak schema using Great Expectations"""
        logger.info("Starting data validation")

        data = state['raw_data']
        features = self.config.features
        min_rows = self.config.data_validation.MIN_ROWS

        batch = self._expectation_batch(data)
        validation_results = []

        missing = []
        for column in features.required_columns:
            result = batch.validate(gxe.ExpectColumnToExist(column=column))
            if not result.success:
                missing.append(column)
        validation_results.append({
            'check': 'required_columns',
            'passed': not missing,
            'message': f"Missing expected columns: {missing}" if missing else "All expected columns found"
        })

        row_result = batch.validate(gxe.ExpectTableRowCountToBeBetween(min_value=min_rows))
        validation_results.append({
            'check': 'minimum_rows',
            'passed': bool(row_result.success),
            'message': f"Dataset has {len(data)} rows (minimum: {min_rows})"
        })

        if missing:
            error = SchemaMismatchError(f"Missing expected columns: {missing}", missing=missing)
            logger.error(f"Data validation failed: {str(error)}")
            state.setdefault('errors', []).append(f"Data validation error: {str(error)}")
        if not row_result.success:
            error = DataShapeError(f"Dataset has {len(data)} rows (minimum: {min_rows})")
            logger.error(f"Data validation failed: {str(error)}")
            state.setdefault('errors', []).append(f"Data validation error: {str(error)}")

        leakage_columns = [col for col in data.columns if str(col).startswith(features.LEAKAGE_PREFIX)]
        validation_results.append({
            'check': 'leakage_columns',
            'passed': True,
            'message': f"Leakage columns to drop: {leakage_columns}"
        })

        passed_checks = sum(1 for result in validation_results if result['passed'])
        is_valid = all(result['passed'] for result in validation_results)

        state.update({
            'validation_report': {
                'is_valid': is_valid,
                'passed_checks': passed_checks,
                'total_checks': len(validation_results),
                'results': validation_results,
                'missing_columns': missing,
                'leakage_columns': leakage_columns
            },
            'current_step': 'data_validation',
            'next_action': 'proceed' if is_valid else 'error'
        })

        state['execution_log'].append(
            f"Data validation completed: {passed_checks}/{len(validation_results)} checks passed"
        )

        return state

    def _expectation_batch(self, data: pd.DataFrame):
        """Wrap the DataFrame in an in-memory Great Expectations batch"""
        context = gx.get_context(mode="ephemeral")
        source = context.data_sources.add_or_update_pandas(name="outbreak_records")
        asset = source.add_dataframe_asset(name="raw_data")
        batch_definition = asset.add_batch_definition_whole_dataframe("full_table")
        return batch_definition.get_batch(batch_parameters={"dataframe": data})
