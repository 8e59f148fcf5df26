import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from pathlib import Path

import pytest

from common.rules_engine.config import RulesEngineConfig
from pipelines.rules_store import FixturesRulesStore


FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def engine_config():
    return RulesEngineConfig()


@pytest.fixture
def household_store():
    return FixturesRulesStore.from_json(FIXTURES_DIR / "household_ledger.json")
