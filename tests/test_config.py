"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from doctorslots.config import AppConfig, ScanWindowConfig, load_config
from doctorslots.domain.models import Role

CONFIG_YAML = """
timezone: Europe/Vienna
defaults:
  granularity_minutes: 15
  duration_minutes: 20
scan_window:
  start: "07:00"
  end: "19:00"
policy:
  patient_notice_minutes: 240
api:
  base_url: https://hospital.example.com/api/
  token: abc
data_file: data/schedule.json
doctors:
  - name: weber
    id: doc-1
    specialty: Cardiology
  - name: yilmaz
    id: doc-2
"""


class TestAppConfig:
    """Tests for AppConfig."""

    def test_load_from_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(CONFIG_YAML, encoding="utf-8")

        config = AppConfig.load_from_yaml(config_path)

        assert config.timezone == "Europe/Vienna"
        assert config.defaults.granularity_minutes == 15
        assert config.scan_window.start == "07:00"
        assert config.api.base_url == "https://hospital.example.com/api"
        assert config.data_file == tmp_path / "data" / "schedule.json"
        assert config.policy.to_policy().notice_for(Role.PATIENT) == 240
        assert config.policy.to_policy().notice_for(Role.DOCTOR) == 30

    def test_defaults(self):
        config = AppConfig()
        assert config.timezone == "Europe/Berlin"
        assert config.scan_window.end == "22:00"
        assert config.data_file is None
        assert config.doctors == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.example.yaml"):
            AppConfig.load_from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("doctors: [", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(config_path)

    def test_root_must_be_mapping(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            AppConfig.load_from_yaml(config_path)

    def test_duplicate_doctor_names(self):
        with pytest.raises(ValidationError, match="Duplicate doctor name"):
            AppConfig(doctors=[{"name": "Weber", "id": "doc-1"}, {"name": "weber", "id": "doc-2"}])

    def test_invalid_scan_window(self):
        with pytest.raises(ValidationError, match="later than start"):
            ScanWindowConfig(start="20:00", end="08:00")
        with pytest.raises(ValidationError):
            ScanWindowConfig(start="7am")

    def test_non_positive_defaults(self):
        with pytest.raises(ValidationError):
            AppConfig(defaults={"granularity_minutes": 0})

    def test_load_config_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(
            "doctorslots.config.get_default_config_path", lambda: tmp_path / "config.yaml"
        )
        assert load_config() == AppConfig()


class TestDoctorLookup:
    """Tests for doctor alias resolution."""

    def _config(self):
        return AppConfig(doctors=[
            {"name": "weber", "id": "doc-1", "specialty": "Cardiology"},
            {"name": "yilmaz", "id": "doc-2"},
        ])

    def test_resolve_by_name_or_id(self):
        config = self._config()
        assert config.resolve_doctor("Weber") == "doc-1"
        assert config.resolve_doctor("doc-2") == "doc-2"

    def test_unknown_identifier_passes_through(self):
        assert self._config().resolve_doctor("doc-99") == "doc-99"

    def test_display_name(self):
        config = self._config()
        assert config.find_doctor_by_id("doc-1").display_name() == "weber (Cardiology)"
        assert config.find_doctor_by_name("yilmaz").display_name() == "yilmaz"

    def test_example_config_is_valid(self):
        example = Path(__file__).parent.parent / "config.example.yaml"
        config = AppConfig.load_from_yaml(example)
        assert config.doctors
