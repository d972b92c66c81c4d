# outbreak_ml/pipeline.py
from langgraph.graph import StateGraph, END
from typing import TypedDict, Optional, List
import pandas as pd
from datetime import datetime
import logging

from outbreak_ml.config import Config, get_config
from outbreak_ml.utils.logging_config import PipelineLogger

logger = logging.getLogger(__name__)

class PipelineState(TypedDict, total=False):
    """State shared across all agents"""
    # Input
    data_path: str

    # Data
    raw_data: Optional[pd.DataFrame]
    data_info: Optional[dict]
    validation_report: Optional[dict]

    # Features
    features: Optional[pd.DataFrame]
    labels: Optional[pd.Series]
    feature_report: Optional[dict]

    # Split
    X_train: Optional[pd.DataFrame]
    X_test: Optional[pd.DataFrame]
    y_train: Optional[pd.Series]
    y_test: Optional[pd.Series]
    split_info: Optional[dict]

    # Model
    trial_results: Optional[dict]
    best_model: Optional[dict]
    evaluation_results: Optional[dict]
    feature_importance: Optional[pd.Series]

    # Workflow
    current_step: str
    next_action: str
    errors: List[str]
    execution_log: List[str]

class OutbreakPipeline:
    def __init__(self, config: Optional[Config] = None):
        """Initialize the outbreak classification pipeline"""
        self.config = config or get_config()

        self.graph = self._build_graph()
        self.compiled_graph = self.graph.compile()

        logger.info("Outbreak pipeline initialized")

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow"""
        from outbreak_ml.agents.data_agent import DataIngestionAgent
        from outbreak_ml.agents.feature_agent import FeatureEngineeringAgent
        from outbreak_ml.agents.model_agent import ModelTrainingAgent

        data_agent = DataIngestionAgent(self.config)
        feature_agent = FeatureEngineeringAgent(self.config)
        model_agent = ModelTrainingAgent(self.config)

        workflow = StateGraph(PipelineState)

        workflow.add_node("data_ingestion", data_agent.process)
        workflow.add_node("data_validation", data_agent.validate)
        workflow.add_node("feature_engineering", feature_agent.engineer_features)
        workflow.add_node("data_split", model_agent.split_data)
        workflow.add_node("model_training", model_agent.train_models)
        workflow.add_node("model_evaluation", model_agent.evaluate_models)

        workflow.set_entry_point("data_ingestion")

        # Every stage either hands over to the next one or stops the run
        stages = [
            ("data_ingestion", "data_validation"),
            ("data_validation", "feature_engineering"),
            ("feature_engineering", "data_split"),
            ("data_split", "model_training"),
            ("model_training", "model_evaluation"),
        ]
        for stage, next_stage in stages:
            workflow.add_conditional_edges(
                stage,
                self._route_on_error,
                {"proceed": next_stage, "error": END}
            )

        workflow.add_edge("model_evaluation", END)

        return workflow

    def _route_on_error(self, state: PipelineState) -> str:
        """Stop the workflow as soon as a stage reports a failure"""
        if state.get("next_action") == "error" or state.get("errors"):
            return "error"
        return "proceed"

    async def run_pipeline(self, data_path: str) -> dict:
        """Execute the complete pipeline and return the final state"""

        initial_state = PipelineState(
            data_path=data_path,
            current_step="initialization",
            next_action="data_ingestion",
            errors=[],
            execution_log=[f"Pipeline started at {datetime.now()}"]
        )

        with PipelineLogger(f"outbreak pipeline on {data_path}", logger) as step:
            final_state = await self.compiled_graph.ainvoke(initial_state)

            if final_state.get("errors"):
                for error in final_state["errors"]:
                    logger.error(error)
            else:
                step.log_metric("test_error_rate", final_state["evaluation_results"]["test_metrics"]["error_rate"])

        final_state["execution_log"].append(f"Pipeline finished at {datetime.now()}")
        return final_state
