# outbreak_ml/agents/model_agent.py
import math
import re
from contextlib import nullcontext
from typing import Dict, List, Optional, Tuple, Any
import logging
from datetime import datetime

import numpy as np
import pandas as pd
import mlflow
import xgboost as xgb
from sklearn.metrics import confusion_matrix, precision_score, recall_score, f1_score

from outbreak_ml.config import Config, get_config
from outbreak_ml.errors import DataShapeError, OutbreakPipelineError
from outbreak_ml.utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

def split_train_test(X: pd.DataFrame, y: pd.Series,
                     train_fraction: float = 0.7) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """
    Split rows into a contiguous training prefix and a test remainder

    The training size is ``n * train_fraction`` rounded half up and never
    exceeds ``n``; no shuffling is applied.
    """
    if not 0 < train_fraction < 1:
        raise ValueError(f"train_fraction must be between 0 and 1, got {train_fraction}")

    if len(X) != len(y):
        raise DataShapeError(f"Feature rows ({len(X)}) do not match labels ({len(y)})")

    n_rows = len(X)
    n_train = min(n_rows, int(math.floor(n_rows * train_fraction + 0.5)))

    return X.iloc[:n_train], X.iloc[n_train:], y.iloc[:n_train], y.iloc[n_train:]

def error_rate(predicted, actual) -> float:
    """Fraction of predictions that disagree with the actual labels"""
    predicted = np.asarray(predicted, dtype=bool)
    actual = np.asarray(actual, dtype=bool)

    if predicted.shape != actual.shape:
        raise DataShapeError(f"Predictions ({predicted.shape[0]}) and labels ({actual.shape[0]}) differ in length")
    if predicted.size == 0:
        raise DataShapeError("Cannot compute an error rate on zero rows")

    return float(np.mean(predicted != actual))

def resolve_scale_pos_weight(value: Any, y_train: pd.Series) -> float:
    """Turn 'auto' into the negative/positive ratio of the training labels"""
    if value != 'auto':
        return float(value)
    positives = int(y_train.sum())
    negatives = len(y_train) - positives
    return negatives / positives

def _metric_key(name: str) -> str:
    return re.sub(r'[^0-9A-Za-z_\-. /]', '_', str(name))

class ModelTrainingAgent:
    """Agent responsible for splitting, training the boosted-tree trials and evaluating them"""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    @property
    def tracking_enabled(self) -> bool:
        return bool(self.config.mlflow.ENABLED)

    async def split_data(self, state: dict) -> dict:
        """Partition features and labels into train/test sets"""
        logger.info("Starting train/test split")

        try:
            X, y = state['features'], state['labels']
            fraction = self.config.training.TRAIN_FRACTION
            X_train, X_test, y_train, y_test = split_train_test(X, y, fraction)

            split_info = {
                'train_fraction': fraction,
                'rows_total': len(X),
                'rows_train': len(X_train),
                'rows_test': len(X_test),
                'positive_rate_train': float(y_train.mean()) if len(y_train) else 0.0,
                'positive_rate_test': float(y_test.mean()) if len(y_test) else 0.0
            }

            state.update({
                'X_train': X_train,
                'X_test': X_test,
                'y_train': y_train,
                'y_test': y_test,
                'split_info': split_info,
                'current_step': 'data_split',
                'next_action': 'model_training'
            })

            state['execution_log'].append(
                f"Data split: {split_info['rows_train']} train rows, {split_info['rows_test']} test rows"
            )

            return state

        except (OutbreakPipelineError, ValueError) as e:
            logger.error(f"Data split failed: {str(e)}")
            state.setdefault('errors', []).append(f"Data split error: {str(e)}")
            state['current_step'] = 'data_split'
            state['next_action'] = 'error'
            return state

    async def train_models(self, state: dict) -> dict:
        """Train one boosted-tree model per configured trial and keep the best"""
        logger.info("Starting model training")

        try:
            X_train, X_test = state['X_train'], state['X_test']
            y_train, y_test = state['y_train'], state['y_test']
            self._check_partitions(X_train, X_test, y_train)

            if self.tracking_enabled:
                mlflow.set_tracking_uri(self.config.mlflow.TRACKING_URI)
                mlflow.set_experiment(self.config.mlflow.EXPERIMENT_NAME)

            training_results = {}
            for trial in self.config.get_trial_params():
                logger.info(f"Training trial {trial['name']}...")
                result = self._train_single_trial(
                    trial['name'], trial['params'], X_train, X_test, y_train, y_test
                )
                training_results[trial['name']] = result
                logger.info(f"{trial['name']} error rate: {result['error_rate']:.4f}")

            best_model_info = self._select_best_trial(training_results)

            state.update({
                'trial_results': training_results,
                'best_model': best_model_info,
                'current_step': 'model_training',
                'next_action': 'model_evaluation'
            })

            state['execution_log'].append(
                f"Model training completed: {len(training_results)} trials, "
                f"best={best_model_info['trial_name']} error rate={best_model_info['error_rate']:.4f}"
            )

            return state

        except (OutbreakPipelineError, xgb.core.XGBoostError, ValueError) as e:
            logger.error(f"Model training failed: {str(e)}")
            state.setdefault('errors', []).append(f"Model training error: {str(e)}")
            state['current_step'] = 'model_training'
            state['next_action'] = 'error'
            return state

    async def evaluate_models(self, state: dict) -> dict:
        """Score the selected model on the test partition and rank its features"""
        logger.info("Starting model evaluation")

        best_model_info = state['best_model']
        model = best_model_info['model']
        X_test, y_test = state['X_test'], state['y_test']

        predictions = self.predict(model, X_test)
        evaluation = self._calculate_metrics(y_test, predictions)

        feature_importance = self._get_feature_importance(model, list(X_test.columns))
        top_n = self.config.training.TOP_FEATURES
        if feature_importance is not None:
            for feature, importance in feature_importance.head(top_n).items():
                logger.info(f"Feature importance - {feature}: {importance:.4f}")

        state.update({
            'evaluation_results': {
                'trial_name': best_model_info['trial_name'],
                'test_metrics': evaluation,
                'trial_error_rates': {
                    name: result['error_rate'] for name, result in state['trial_results'].items()
                },
                'top_features': feature_importance.head(top_n).to_dict() if feature_importance is not None else {}
            },
            'feature_importance': feature_importance,
            'current_step': 'model_evaluation',
            'next_action': 'completed'
        })

        state['execution_log'].append(
            f"Model evaluation completed: test error rate {evaluation['error_rate']:.4f}"
        )

        return state

    def _check_partitions(self, X_train: pd.DataFrame, X_test: pd.DataFrame, y_train: pd.Series):
        if len(X_train) == 0 or len(X_test) == 0:
            raise DataShapeError(
                f"Both partitions need rows (train={len(X_train)}, test={len(X_test)})"
            )
        if y_train.nunique() < 2:
            raise DataShapeError("Training partition holds a single class; cannot fit a classifier")

    def build_model(self, params: Dict[str, Any], y_train: pd.Series) -> xgb.XGBClassifier:
        """Create an XGBClassifier from plain trial parameters"""
        model_params = dict(params)
        model_params['scale_pos_weight'] = resolve_scale_pos_weight(
            model_params.get('scale_pos_weight', 1.0), y_train
        )
        if model_params.get('early_stopping_rounds') is None:
            model_params.pop('early_stopping_rounds', None)
        model_params.setdefault('random_state', self.config.training.RANDOM_STATE)
        model_params.setdefault('eval_metric', 'logloss')
        return xgb.XGBClassifier(**model_params)

    def predict(self, model: xgb.XGBClassifier, X: pd.DataFrame) -> np.ndarray:
        """Threshold the positive-class probability"""
        scores = model.predict_proba(X)[:, 1]
        return scores >= self.config.training.DECISION_THRESHOLD

    @log_execution_time
    def _train_single_trial(self, trial_name: str, params: Dict[str, Any],
                            X_train: pd.DataFrame, X_test: pd.DataFrame,
                            y_train: pd.Series, y_test: pd.Series) -> Dict:
        """Fit one trial, early-stopping on the held-out partition"""
        run_name = f"{trial_name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        run = mlflow.start_run(run_name=run_name) if self.tracking_enabled else nullcontext()

        with run:
            model = self.build_model(params, y_train)
            model.fit(
                X_train, y_train.astype(int),
                eval_set=[(X_test, y_test.astype(int))],
                verbose=False
            )

            predictions = self.predict(model, X_test)
            trial_error = error_rate(predictions, y_test)
            best_iteration = getattr(model, 'best_iteration', None)
            feature_importance = self._get_feature_importance(model, list(X_train.columns))

            if self.tracking_enabled:
                mlflow.log_params({key: str(value) for key, value in params.items()})
                mlflow.log_param("n_features", X_train.shape[1])
                mlflow.log_param("n_train_samples", X_train.shape[0])
                mlflow.log_metric("test_error_rate", trial_error)
                if best_iteration is not None:
                    mlflow.log_metric("best_iteration", best_iteration)
                if feature_importance is not None:
                    top = feature_importance.head(self.config.training.TOP_FEATURES)
                    for i, (feature, importance) in enumerate(top.items()):
                        mlflow.log_metric(f"feature_importance_{i + 1}_{_metric_key(feature)}", float(importance))

            return {
                'model': model,
                'params': params,
                'error_rate': trial_error,
                'best_iteration': best_iteration,
                'feature_importance': feature_importance
            }

    def _calculate_metrics(self, y_true: pd.Series, y_pred: np.ndarray) -> Dict[str, Any]:
        """Error rate plus the usual binary classification metrics"""
        y_true = np.asarray(y_true, dtype=bool)
        rate = error_rate(y_pred, y_true)
        tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[False, True]).ravel()

        return {
            'error_rate': rate,
            'accuracy': 1.0 - rate,
            'precision': float(precision_score(y_true, y_pred, zero_division=0)),
            'recall': float(recall_score(y_true, y_pred, zero_division=0)),
            'f1': float(f1_score(y_true, y_pred, zero_division=0)),
            'confusion_matrix': {'tn': int(tn), 'fp': int(fp), 'fn': int(fn), 'tp': int(tp)}
        }

    def _get_feature_importance(self, model: Any, feature_names: List[str]) -> Optional[pd.Series]:
        """Extract feature importance from the fitted model"""
        if not hasattr(model, 'feature_importances_'):
            return None
        importance = pd.Series(model.feature_importances_, index=feature_names)
        return importance.sort_values(ascending=False, kind='stable')

    def _select_best_trial(self, training_results: Dict[str, Dict]) -> Dict:
        """Select the trial with the lowest test error rate (first one wins ties)"""
        if not training_results:
            raise OutbreakPipelineError("No hyperparameter trials were configured")

        best_name = min(training_results, key=lambda name: training_results[name]['error_rate'])
        best_result = training_results[best_name]

        return {
            'trial_name': best_name,
            'model': best_result['model'],
            'params': best_result['params'],
            'error_rate': best_result['error_rate'],
            'best_iteration': best_result['best_iteration']
        }
