import pytest

from hostprobe.config import Settings, load_settings
from hostprobe.core.errors import ConfigError


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    # Keep the repository's config/hostprobe.yaml out of these tests
    monkeypatch.chdir(tmp_path)


def write_config(tmp_path, text):
    path = tmp_path / "hostprobe.yaml"
    path.write_text(text)
    return str(path)


def test_defaults():
    assert load_settings(env={}) == Settings()


def test_yaml_overrides_defaults(tmp_path):
    path = write_config(tmp_path, "hostprobe:\n  probe_timeout: 5\n  output_format: JSON\n  json_logs: true\n")
    settings = load_settings(path, env={})

    assert settings.probe_timeout == 5.0
    assert settings.output_format == "json"
    assert settings.json_logs is True
    assert settings.max_workers == 10


def test_flat_yaml_document(tmp_path):
    path = write_config(tmp_path, "max_workers: 4\n")
    assert load_settings(path, env={}).max_workers == 4


def test_precedence(tmp_path):
    path = write_config(tmp_path, "probe_timeout: 5\nmax_workers: 4\nlog_level: debug\n")
    env = {"HOSTPROBE_PROBE_TIMEOUT": "7.5", "HOSTPROBE_MAX_WORKERS": "6"}

    settings = load_settings(path, env=env, overrides={"max_workers": 2, "output_file": None})

    assert settings.log_level == "DEBUG"       # file
    assert settings.probe_timeout == 7.5       # environment
    assert settings.max_workers == 2           # override
    assert settings.output_file is None


def test_config_path_from_environment(tmp_path):
    path = write_config(tmp_path, "output_format: json\n")
    assert load_settings(env={"HOSTPROBE_CONFIG": path}).output_format == "json"


def test_default_config_file_is_picked_up(tmp_path):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "hostprobe.yaml").write_text("max_workers: 3\n")
    assert load_settings(env={}).max_workers == 3


def test_environment_only(monkeypatch):
    monkeypatch.setenv("HOSTPROBE_WEBHOOK_URL", "https://hooks.example.com/x")
    monkeypatch.setenv("HOSTPROBE_SNAPSHOT", "lab.yaml")
    settings = load_settings()
    assert settings.webhook_url == "https://hooks.example.com/x"
    assert settings.snapshot == "lab.yaml"


def test_unknown_keys_in_file_are_ignored(tmp_path):
    path = write_config(tmp_path, "colour: blue\n")
    assert load_settings(path, env={}) == Settings()


@pytest.mark.parametrize("env", [
    {"HOSTPROBE_PROBE_TIMEOUT": "soon"},
    {"HOSTPROBE_PROBE_TIMEOUT": "-1"},
    {"HOSTPROBE_MAX_WORKERS": "0"},
    {"HOSTPROBE_MAX_WORKERS": "500"},
    {"HOSTPROBE_OUTPUT_FORMAT": "xml"},
    {"HOSTPROBE_LOG_LEVEL": "LOUD"},
])
def test_invalid_values(env):
    with pytest.raises(ConfigError):
        load_settings(env=env)


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "nope.yaml"), env={})


def test_malformed_yaml(tmp_path):
    path = write_config(tmp_path, "probe_timeout: [unclosed\n")
    with pytest.raises(ConfigError):
        load_settings(path, env={})


def test_unknown_override():
    with pytest.raises(ConfigError):
        load_settings(env={}, overrides={"colour": "blue"})
