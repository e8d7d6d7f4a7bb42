"""Unit tests for LiveQuizConfig."""

import pytest
from pathlib import Path

from livequiz.config import INFERENCE_API_KEY_ENV, LiveQuizConfig, find_config_file
from livequiz.errors import ConfigurationError

CONFIG_YAML = """
instructor:
  id: "instructor-7"
  roster_file: "data/roster.txt"
google_cloud:
  credentials_path: "credentials/speech.json"
rate_limit:
  cooldown_seconds: 45
storage:
  database_path: ":memory:"
logging:
  file_path: "logs/livequiz.log"
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "livequiz.yaml"
    path.write_text(CONFIG_YAML)
    return path


@pytest.mark.unit
class TestLiveQuizConfig:

    def test_dot_notation(self, config_file):
        config = LiveQuizConfig(str(config_file))

        assert config.get("instructor.id") == "instructor-7"
        assert config.get("rate_limit.cooldown_seconds") == 45
        assert config.get("rate_limit.daily_limit", 200) == 200
        assert config.get("missing.section.key") is None

    def test_relative_paths_resolve_against_config_dir(self, config_file, tmp_path):
        config = LiveQuizConfig(str(config_file))

        assert config.get("instructor.roster_file") == str(tmp_path / "data/roster.txt")
        assert config.get("logging.file_path") == str(tmp_path / "logs/livequiz.log")
        assert config.get_database_path() == ":memory:"

    def test_set_creates_sections(self, config_file):
        config = LiveQuizConfig(str(config_file))

        config.set("auto_question.interval_minutes", 10)

        assert config.get("auto_question.interval_minutes") == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LiveQuizConfig(str(tmp_path / "nope.yaml"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "livequiz.yaml"
        path.write_text("")

        with pytest.raises(ValueError):
            LiveQuizConfig(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "livequiz.yaml"
        path.write_text("instructor: [unclosed")

        with pytest.raises(ValueError):
            LiveQuizConfig(str(path))

    def test_find_config_in_parent(self, config_file, tmp_path):
        nested = tmp_path / "lectures" / "week1"
        nested.mkdir(parents=True)

        assert find_config_file(nested) == config_file.resolve()

    def test_credentials_must_exist(self, config_file, tmp_path):
        config = LiveQuizConfig(str(config_file))
        with pytest.raises(ConfigurationError):
            config.get_google_credentials_path()

        creds = tmp_path / "credentials" / "speech.json"
        creds.parent.mkdir()
        creds.write_text("{}")
        assert Path(config.get_google_credentials_path()) == creds

    def test_api_key_from_environment(self, config_file, monkeypatch):
        config = LiveQuizConfig(str(config_file))
        monkeypatch.delenv(INFERENCE_API_KEY_ENV, raising=False)
        with pytest.raises(ConfigurationError):
            config.get_inference_api_key()

        config.set("inference.api_key", "from-file")
        assert config.get_inference_api_key() == "from-file"

        monkeypatch.setenv(INFERENCE_API_KEY_ENV, "from-env")
        assert config.get_inference_api_key() == "from-env"

    def test_from_dict(self, test_config):
        config = LiveQuizConfig.from_dict(test_config)

        assert config.get("distribution.batch_size") == 15
        assert config.get("transcription.chunked.max_consecutive_failures") == 5
