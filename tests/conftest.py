from pathlib import Path

import pytest
import yaml

SAMPLE_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"


@pytest.fixture
def config_data():
    """The sample config with jitter and worst-hour blocking switched off."""
    with open(SAMPLE_CONFIG_PATH) as f:
        data = yaml.safe_load(f)
    data["jitterMaxMinutes"] = 0
    data["enableBlockingWorstHeatingTimes"] = False
    return data
