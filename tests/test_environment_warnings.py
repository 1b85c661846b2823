from harvester.workflows import harvest_utils


def _codes():
    return {item.get("code") for item in harvest_utils.collect_environment_warnings()}


def test_collect_environment_warnings_proxy_missing(monkeypatch):
    for name in ("HARVEST_PROXY_URL", "PROXY_ENDPOINT", "HARVEST_PROXY_DISABLE"):
        monkeypatch.delenv(name, raising=False)
    assert "proxy_missing" in _codes()


def test_collect_environment_warnings_proxy_disabled(monkeypatch):
    monkeypatch.setenv("HARVEST_PROXY_URL", "http://proxy.local:8080")
    monkeypatch.setenv("HARVEST_PROXY_DISABLE", "true")
    codes = _codes()
    assert "proxy_disabled" in codes
    assert "proxy_missing" not in codes


def test_collect_environment_warnings_credentials_missing(monkeypatch):
    for name in ("HARVEST_PROXY_URL", "HARVEST_PROXY_DISABLE", "HARVEST_PROXY_USER", "HARVEST_PROXY_CREDENTIALS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PROXY_ENDPOINT", "proxy.local:8080")
    assert "proxy_credentials_missing" in _codes()


def test_collect_environment_warnings_quiet_with_embedded_credentials(monkeypatch):
    monkeypatch.delenv("HARVEST_PROXY_DISABLE", raising=False)
    monkeypatch.setenv("HARVEST_PROXY_URL", "http://u:p@proxy.local:8080")
    codes = _codes()
    assert not {"proxy_missing", "proxy_disabled", "proxy_credentials_missing"} & codes


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("HARVEST_CONCURRENCY", " 8 ")
    monkeypatch.setenv("HARVEST_RETRY_DELAY", "oops")
    assert harvest_utils.env_int("HARVEST_CONCURRENCY", 16) == 8
    assert harvest_utils.env_float("HARVEST_RETRY_DELAY", 0.5) == 0.5
    assert harvest_utils.as_bool("No") is False
