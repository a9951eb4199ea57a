"""
Smoke tests for configuration loading and validation.
"""

import pytest

from main import load_config, validate_config
from models.config import Config


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_valid_config_passes(self, valid_config):
        """A complete valid config passes validation."""
        is_valid, error = validate_config(valid_config)

        assert is_valid is True
        assert error is None

    def test_missing_camera_section(self, valid_config):
        """Missing camera section fails validation."""
        del valid_config["camera"]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "camera" in error.lower()

    def test_missing_log_level(self, valid_config):
        del valid_config["log_level"]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "log_level" in error.lower()

    def test_missing_log_path(self, valid_config):
        del valid_config["log_path"]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "log_path" in error.lower()

    def test_optional_sections_may_be_absent(self, valid_config):
        for key in ("audio", "timing", "session"):
            del valid_config[key]

        is_valid, error = validate_config(valid_config)

        assert is_valid is True

    def test_invalid_device_id_type(self, valid_config):
        """device_id with invalid type fails."""
        valid_config["camera"]["device_id"] = [1, 2, 3]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "device_id" in error.lower()

    def test_negative_device_id(self, valid_config):
        valid_config["camera"]["device_id"] = -1

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "device_id" in error.lower()

    def test_video_file_device_id_valid(self, valid_config):
        """String device_id (recorded video) is valid."""
        valid_config["camera"]["device_id"] = "recordings/faceoff.mp4"

        is_valid, error = validate_config(valid_config)

        assert is_valid is True

    def test_invalid_resolution_length(self, valid_config):
        valid_config["camera"]["resolution"] = [1920]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "resolution" in error.lower()

    def test_invalid_fps(self, valid_config):
        valid_config["camera"]["fps"] = 0

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "fps" in error.lower()

    def test_invalid_rotate(self, valid_config):
        valid_config["camera"]["rotate"] = 45

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "rotate" in error.lower()

    def test_unknown_drill_timing(self, valid_config):
        valid_config["timing"]["lacrosse_ball_toss"] = {}

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "lacrosse_ball_toss" in error

    def test_negative_delay(self, valid_config):
        valid_config["timing"]["faceoff"]["command_delay"] = -0.5

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "command_delay" in error

    def test_unknown_whistle_delay_type(self, valid_config):
        valid_config["timing"]["faceoff"]["whistle_delay_type"] = "whenever"

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "whistle_delay_type" in error

    def test_empty_whistle_candidates(self, valid_config):
        valid_config["timing"]["faceoff"]["whistle_candidates_ms"] = []

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "whistle_candidates_ms" in error

    def test_unordered_whistle_range(self, valid_config):
        valid_config["timing"]["shooting"]["whistle_range"] = [3.5, 1.0]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "whistle_range" in error

    def test_volume_out_of_range(self, valid_config):
        valid_config["audio"]["volume"] = 1.5

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "volume" in error

    def test_negative_guard_band(self, valid_config):
        valid_config["session"]["guard_band_seconds"] = -1

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "guard_band_seconds" in error

    def test_invalid_log_level(self, valid_config):
        valid_config["log_level"] = "VERBOSE"

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "log_level" in error.lower()


class TestLoadConfig:
    """Tests for load_config function."""

    def test_loads_default_yaml(self, temp_config_dir):
        """Config loads from default.yaml when only it exists."""
        config_path = str(temp_config_dir / "config.yaml")

        config = load_config(config_path)

        assert config["camera"]["device_id"] == 0
        assert config["camera"]["resolution"] == [640, 480]
        assert config["timing"]["faceoff"]["command_delay"] == 0.75

    def test_local_overrides_merge(self, temp_config_dir):
        """Local config.yaml overrides default.yaml."""
        config_yaml = temp_config_dir / "config.yaml"
        config_yaml.write_text("""
camera:
  device_id: 1
timing:
  faceoff:
    whistle_delay_type: "random"
""")

        config = load_config(str(config_yaml))

        assert config["camera"]["device_id"] == 1
        assert config["timing"]["faceoff"]["whistle_delay_type"] == "random"

        # Original values preserved
        assert config["camera"]["resolution"] == [640, 480]
        assert config["timing"]["faceoff"]["pre_start_delay"] == 1.0
        assert config["timing"]["shooting"]["command_delay"] == 1.0

    def test_explicit_config_applied_last(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("session:\n  default_reps: 20\n")
        explicit = temp_config_dir / "team.yaml"
        explicit.write_text("session:\n  default_reps: 25\n")

        config = load_config(str(explicit))

        assert config["session"]["default_reps"] == 25
        assert config["session"]["guard_band_seconds"] == 5

    def test_invalid_yaml_exits(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("camera: [unclosed\n")

        with pytest.raises(SystemExit):
            load_config(str(temp_config_dir / "config.yaml"))


class TestTypedConfig:
    def test_from_dict_fills_drill_timing(self, valid_config):
        cfg = Config.from_dict(valid_config)

        assert cfg.camera.resolution == [1280, 720]
        assert cfg.timing["faceoff"].whistle_delay_type == "random"
        assert cfg.timing["faceoff"].whistle_candidates_ms == (1000, 1500, 2000, 3000, 3500)
        assert cfg.timing["shooting"].command_delay == 1.0
        assert cfg.timing["shooting"].whistle_range == (1.0, 3.5)
        assert cfg.session.guard_band_seconds == 5

    def test_defaults(self):
        cfg = Config.from_dict({})

        assert cfg.timing["faceoff"].command_delay == 0.75
        assert cfg.timing["faceoff"].inter_rep_delay == 5.0
        assert cfg.timing["shooting"].inter_rep_delay == 3.0
        assert cfg.classifier.enabled is False
        assert cfg.to_dict()["timing"]["shooting"]["command_delay"] == 1.0
