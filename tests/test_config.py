# tests/test_config.py
import pytest
from pydantic import ValidationError

from adaptive_srs.config import SrsConfig, load_config


def test_defaults():
    config = SrsConfig()
    assert config.starting_ease == 2.5
    assert config.min_ease == 1.3
    assert config.learning_steps_minutes == [10, 1440]
    assert config.min_next_review_minutes == 10
    assert config.ordering == "shuffled"
    assert config.calibration_min_cards == 20


def test_overrides_take_precedence(monkeypatch):
    monkeypatch.setenv("ADAPTIVE_SRS_STARTING_EASE", "2.6")
    assert load_config().starting_ease == 2.6
    assert load_config({"starting_ease": 2.4}).starting_ease == 2.4


def test_env_list_values(monkeypatch):
    monkeypatch.setenv("ADAPTIVE_SRS_LEARNING_STEPS_MINUTES", "[1, 10, 60]")
    assert load_config().learning_steps_minutes == [1, 10, 60]


def test_toml_file_layer(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text('ordering = "priority"\nnew_card_ratio = 0.5\n')
    monkeypatch.setenv("ADAPTIVE_SRS_CONFIG_FILE", str(path))
    config = load_config()
    assert config.ordering == "priority"
    assert config.new_card_ratio == 0.5


def test_env_beats_toml(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text("min_ease = 1.5\n")
    monkeypatch.setenv("ADAPTIVE_SRS_CONFIG_FILE", str(path))
    monkeypatch.setenv("ADAPTIVE_SRS_MIN_EASE", "1.4")
    assert load_config().min_ease == 1.4


def test_config_is_frozen():
    config = SrsConfig()
    with pytest.raises(ValidationError):
        config.min_ease = 1.0


@pytest.mark.parametrize("overrides", [
    {"min_ease": 2.6},
    {"max_ease": 2.0},
    {"min_interval_multiplier": 7.0},
    {"new_card_ratio": 1.5},
    {"learning_steps_minutes": [10, -1]},
    {"min_next_review_minutes": -5},
    {"ordering": "alphabetical"},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        load_config(overrides)


def test_clamp_ease():
    config = SrsConfig()
    assert config.clamp_ease(1.0) == 1.3
    assert config.clamp_ease(4.0) == 3.5
    assert config.clamp_ease(2.0) == 2.0
    assert SrsConfig(max_ease=None).clamp_ease(4.0) == 4.0


def test_steps_for():
    config = SrsConfig(learning_steps_minutes=[1], relearning_steps_minutes=[5, 20])
    assert config.steps_for(False) == [1]
    assert config.steps_for(True) == [5, 20]
