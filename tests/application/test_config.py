from pathlib import Path

from lexicard.application.config import AppConfig, config_files, resolve_config


def test_defaults(mock_home):
    config = resolve_config()

    assert config.backend == "sqlite"
    assert config.db_path == (mock_home / ".local/share/lexicard/cards.db").resolve()
    assert config.shuffle_seed is None
    assert config.port == 8791


def test_config_file_is_read(mock_home):
    cfg = mock_home / ".config/lexicard/config.toml"
    cfg.parent.mkdir(parents=True)
    cfg.write_text('backend = "memory"\nshuffle_seed = 5\nport = 9000\n')

    config = resolve_config()

    assert config.backend == "memory"
    assert config.shuffle_seed == 5
    assert config.port == 9000


def test_env_beats_file_and_cli_beats_env(mock_home, monkeypatch):
    cfg = mock_home / ".lexicard.toml"
    cfg.write_text("port = 9000\n")
    monkeypatch.setenv("LEXICARD_PORT", "9100")

    assert resolve_config().port == 9100
    assert resolve_config({"port": 9200}).port == 9200


def test_none_overrides_are_ignored(mock_home):
    config = resolve_config({"db_path": None, "backend": None, "shuffle_seed": 3})
    assert config.backend == "sqlite"
    assert config.shuffle_seed == 3


def test_paths_are_expanded(mock_home):
    config = AppConfig(db_path="~/cards.db")
    assert config.db_path == (mock_home / "cards.db").resolve()
    assert isinstance(config.db_path, Path)


def test_config_files_order(mock_home):
    assert config_files() == [
        mock_home / ".config/lexicard/config.toml",
        mock_home / ".lexicard.toml",
    ]
