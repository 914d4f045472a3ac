from pathlib import Path

import pytest

from paceloop.config import MaxSpeedConfig, PaceloopConfig, load_config, resolve_config_path
from paceloop.domain.models import ActivityType


def test_default_model_has_expected_values():
    cfg = PaceloopConfig()
    assert cfg.user_id == "local"
    assert cfg.filter.min_accuracy_m == 25.0
    assert cfg.filter.good_accuracy_m == 10.0
    assert cfg.filter.min_movement_m == 2.0
    assert cfg.filter.warmup_samples == 3
    assert cfg.tracker.split_unit_km == 1.0
    assert cfg.tracker.backfill_splits is False
    assert cfg.storage.db_path.as_posix() == "data/paceloop.db"


def test_max_speed_per_activity():
    speeds = PaceloopConfig().filter.max_speed_mps
    assert speeds.for_activity(ActivityType.WALKING) == 3.0
    assert speeds.for_activity(ActivityType.RUNNING) == 12.0
    assert speeds.for_activity(ActivityType.CYCLING) == 50.0
    assert speeds.for_activity(ActivityType.OTHER) == 50.0


def test_other_activity_uses_its_own_threshold():
    speeds = MaxSpeedConfig(other=20.0)
    assert speeds.for_activity(ActivityType.OTHER) == 20.0
    assert speeds.most_permissive == 50.0


def test_yaml_loads_and_validates(tmp_path: Path):
    yml = tmp_path / "paceloop.yml"
    yml.write_text(
        """
user_id: runner-7
filter:
  min_accuracy_m: 30
  max_speed_mps:
    walking: 2.5
tracker:
  split_unit_km: 1.609
logging:
  level: debug
        """.strip(),
        encoding="utf-8",
    )
    cfg = load_config(yml)
    assert cfg.user_id == "runner-7"
    assert cfg.filter.min_accuracy_m == 30.0
    assert cfg.filter.max_speed_mps.walking == 2.5
    assert cfg.filter.max_speed_mps.running == 12.0
    assert cfg.tracker.split_unit_km == 1.609
    assert cfg.logging.level == "DEBUG"


def test_empty_file_gives_defaults(tmp_path: Path):
    yml = tmp_path / "paceloop.yml"
    yml.write_text("", encoding="utf-8")
    assert load_config(yml) == PaceloopConfig()


def test_repo_config_is_valid():
    cfg = load_config(Path(__file__).parent.parent / "configs" / "paceloop.yml")
    assert cfg.filter.warmup_samples == 3


@pytest.mark.parametrize(
    "body",
    [
        "filter:\n  good_accuracy_m: 40\n",
        "tracker:\n  split_unit_km: 0\n",
        "logging:\n  level: chatty\n",
        "gps:\n  port: 70000\n",
    ],
)
def test_invalid_values_raise(tmp_path: Path, body: str):
    yml = tmp_path / "paceloop.yml"
    yml.write_text(body, encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(yml)


def test_resolve_prefers_cli_path(tmp_path: Path, monkeypatch):
    cli_file = tmp_path / "cli.yml"
    cli_file.write_text("", encoding="utf-8")
    env_file = tmp_path / "env.yml"
    env_file.write_text("", encoding="utf-8")
    monkeypatch.setenv("PACELOOP_CONFIG", str(env_file))

    assert resolve_config_path(cli_file) == cli_file.resolve()
    assert resolve_config_path(None) == env_file.resolve()
