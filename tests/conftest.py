# tests/conftest.py
import pytest
import pandas as pd
import numpy as np

from outbreak_ml.config import Config

SPECIES = [
    "Columba livia (domestic)",
    "Anas platyrhynchos",
    "Gallus gallus (domestic)",
    "Sus scrofa",
    "wild, unspecified bird",
    "1234",
    np.nan,
]

COUNTRIES = ["Italy", "Egypt", "Viet Nam", "Indonesia", np.nan]

def make_outbreak_frame(n_rows: int = 200, seed: int = 42) -> pd.DataFrame:
    """Synthetic outbreak reports where human impact depends on cases and species"""
    rng = np.random.RandomState(seed)

    species = rng.choice(np.array(SPECIES, dtype=object), n_rows)
    countries = rng.choice(np.array(COUNTRIES, dtype=object), n_rows)
    cases = rng.poisson(20, n_rows).astype(float)
    deaths = np.floor(cases * rng.uniform(0, 0.5, n_rows))

    domestic = np.array([isinstance(s, str) and 'domestic' in s for s in species])
    has_impact = (cases > 20) | domestic
    affected = np.where(has_impact, rng.randint(1, 10, n_rows), np.nan)

    return pd.DataFrame({
        'Id': np.arange(n_rows),
        'source': rng.choice(['OIE', 'FAO', 'National authorities'], n_rows),
        'latitude': rng.uniform(-40, 60, n_rows),
        'longitude': rng.uniform(-120, 150, n_rows),
        'country': countries,
        'speciesDescription': species,
        'sumAtRisk': cases * 10,
        'sumCases': cases,
        'sumDeaths': deaths,
        'humansGenderDesc': np.where(has_impact, 'Male', None),
        'humansAge': np.where(has_impact, 30.0, np.nan),
        'humansAffected': affected,
        'humansDeaths': np.where(has_impact, 0.0, np.nan),
    })

@pytest.fixture
def outbreak_data():
    return make_outbreak_frame()

@pytest.fixture
def outbreak_csv(tmp_path, outbreak_data):
    path = tmp_path / "outbreaks.csv"
    outbreak_data.to_csv(path, index=False)
    return str(path)

@pytest.fixture
def config():
    """Configuration with tracking off and small, fast trials"""
    cfg = Config()
    cfg.mlflow.ENABLED = False
    cfg.training.BASE_PARAMS['n_estimators'] = 20
    cfg.training.TRIALS = [
        {'name': 'baseline', 'params': {}},
        {'name': 'class_weighted', 'params': {'scale_pos_weight': 'auto'}},
    ]
    return cfg
