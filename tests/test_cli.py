import json

from petchain import cli
from petchain.const import ENV_BASE_URL


def test_parse_args_defaults():
    args = cli.parse_args([])
    assert args.once is False
    assert args.config is None
    assert args.log_level == "INFO"


def test_once_prints_status(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv(ENV_BASE_URL, raising=False)

    code = cli.main(["--once", "--db", str(tmp_path / "sync.db"), "--base-url", "https://api.example.com/api"])

    assert code == 0
    status = json.loads(capsys.readouterr().out)
    assert status["base_url"] == "https://api.example.com/api"
    assert status["pending_count"] == 0
    assert status["authenticated"] is False
    assert status["last_result"]["sent"] == 0


def test_invalid_configuration_exits_with_error(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_BASE_URL, raising=False)

    assert cli.main(["--once", "--db", str(tmp_path / "sync.db"), "--interval", "1"]) == 2
    assert not (tmp_path / "sync.db").exists()
