# tests/test_pipeline.py
import json
import logging
import pytest

from outbreak_ml.cli import main
from outbreak_ml.config import Config, reload_config
from outbreak_ml.pipeline import OutbreakPipeline

class TestOutbreakPipeline:

    @pytest.mark.asyncio
    async def test_end_to_end(self, outbreak_csv, config):
        pipeline = OutbreakPipeline(config)

        result = await pipeline.run_pipeline(outbreak_csv)

        assert result['errors'] == []
        assert result['current_step'] == 'model_evaluation'
        assert result['split_info']['rows_train'] == 140
        assert len(result['X_train']) + len(result['X_test']) == len(result['labels'])
        assert set(result['evaluation_results']['trial_error_rates']) == {'baseline', 'class_weighted'}

    @pytest.mark.asyncio
    async def test_missing_file_stops_early(self, tmp_path, config):
        pipeline = OutbreakPipeline(config)

        result = await pipeline.run_pipeline(str(tmp_path / "missing.csv"))

        assert result['current_step'] == 'data_ingestion'
        assert len(result['errors']) == 1
        assert result.get('features') is None

    @pytest.mark.asyncio
    async def test_schema_drift_stops_at_validation(self, tmp_path, outbreak_data, config):
        path = tmp_path / "drifted.csv"
        outbreak_data.rename(columns={'speciesDescription': 'species'}).to_csv(path, index=False)
        pipeline = OutbreakPipeline(config)

        result = await pipeline.run_pipeline(str(path))

        assert result['current_step'] == 'data_validation'
        assert 'speciesDescription' in result['errors'][0]
        assert result.get('trial_results') is None

    @pytest.mark.asyncio
    async def test_bracketed_country_completes(self, tmp_path, outbreak_data, config):
        path = tmp_path / "bracketed.csv"
        outbreak_data.replace({'country': {'Italy': 'Congo [DRC]'}}).to_csv(path, index=False)
        pipeline = OutbreakPipeline(config)

        result = await pipeline.run_pipeline(str(path))

        assert result['errors'] == []
        assert 'country_Congo _DRC_' in result['X_train'].columns
        assert result['current_step'] == 'model_evaluation'

    @pytest.mark.asyncio
    async def test_row_minimum_comes_from_config(self, outbreak_csv, config):
        config.data_validation.MIN_ROWS = 500
        pipeline = OutbreakPipeline(config)

        result = await pipeline.run_pipeline(outbreak_csv)

        assert result['current_step'] == 'data_validation'
        assert 'minimum: 500' in result['errors'][0]

class TestConfig:

    def test_defaults(self):
        cfg = Config()

        assert cfg.training.TRAIN_FRACTION == 0.7
        assert cfg.training.DECISION_THRESHOLD == 0.5
        assert cfg.features.LEAKAGE_PREFIX == 'human'
        assert cfg.validate_config() == []

    def test_trial_params_merge_base(self):
        cfg = Config()
        trials = {t['name']: t['params'] for t in cfg.get_trial_params()}

        assert trials['baseline'] == cfg.training.BASE_PARAMS
        assert trials['class_weighted']['scale_pos_weight'] == 'auto'
        assert trials['class_weighted']['max_depth'] == cfg.training.BASE_PARAMS['max_depth']

    def test_config_file_overrides(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            'training': {'TRAIN_FRACTION': 0.8, 'TRIALS': [{'name': 'only', 'params': {'max_depth': 2}}]},
            'mlflow': {'ENABLED': False}
        }))

        cfg = Config(str(path))

        assert cfg.training.TRAIN_FRACTION == 0.8
        assert [t['name'] for t in cfg.get_trial_params()] == ['only']
        assert not cfg.mlflow.ENABLED

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv('TRAIN_FRACTION', '0.6')
        monkeypatch.setenv('MLFLOW_ENABLED', 'false')

        cfg = Config()

        assert cfg.training.TRAIN_FRACTION == 0.6
        assert not cfg.mlflow.ENABLED

    def test_validation_issues(self):
        cfg = Config()
        cfg.training.TRAIN_FRACTION = 1.0
        cfg.training.TRIALS = [{'name': 'bad', 'params': {'n_estimators': 0}}]
        cfg.data_validation.MIN_ROWS = 0

        issues = cfg.validate_config()

        assert any('train fraction' in issue for issue in issues)
        assert any("'bad'" in issue for issue in issues)
        assert any('min rows' in issue for issue in issues)

    def test_save_config_round_trip(self, tmp_path):
        cfg = Config()
        cfg.training.TRAIN_FRACTION = 0.75
        path = tmp_path / "saved.json"

        cfg.save_config(str(path))
        saved = json.loads(path.read_text())

        assert saved['training']['TRAIN_FRACTION'] == 0.75
        assert saved['features']['COUNTRY_COLUMN'] == 'country'

class TestCommandLine:

    @pytest.fixture(autouse=True)
    def fresh_config(self, tmp_path, monkeypatch):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        monkeypatch.setenv('MLFLOW_ENABLED', 'false')
        cfg = reload_config()
        cfg.paths.LOGS_DIR = tmp_path / "logs"
        cfg.paths.DATA_DIR = tmp_path / "data"
        cfg.training.BASE_PARAMS['n_estimators'] = 20
        yield cfg
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        reload_config()

    def test_prints_trial_error_rates(self, outbreak_csv, capsys):
        main(['--data-path', outbreak_csv, '--no-log-file'])

        out = capsys.readouterr().out
        assert 'baseline error rate:' in out
        assert 'Selected trial:' in out
        assert 'Top features:' in out

    def test_missing_data_file_exits(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(['--data-path', str(tmp_path / 'nope.csv'), '--no-log-file'])

        assert excinfo.value.code == 1

    def test_invalid_fraction_exits(self, outbreak_csv):
        with pytest.raises(SystemExit) as excinfo:
            main(['--data-path', outbreak_csv, '--train-fraction', '1.5', '--no-log-file'])

        assert excinfo.value.code == 1

    def test_invalid_log_level_rejected(self, outbreak_csv):
        with pytest.raises(SystemExit) as excinfo:
            main(['--data-path', outbreak_csv, '--log-level', 'LOUD', '--no-log-file'])

        assert excinfo.value.code == 2

    def test_lowercase_log_level_accepted(self, outbreak_csv, capsys):
        main(['--data-path', outbreak_csv, '--log-level', 'warning', '--no-log-file'])

        assert 'Selected trial:' in capsys.readouterr().out
