import pytest

from bridgebox.config import ClientConfig
from bridgebox.core.exceptions import ConfigError
from bridgebox.network.bridge import DEFAULT_BRIDGE


def test_defaults():
    cfg = ClientConfig()
    assert cfg.bridge == DEFAULT_BRIDGE
    assert cfg.protocol == "http"
    assert cfg.store == "memory"
    assert cfg.concurrency == 3
    assert cfg.persist_keys is True


@pytest.mark.parametrize("kwargs,message", [
    ({"bridge": 42}, "Bridge url must be a string"),
    ({"bridge": ""}, "Bridge url must be a string"),
    ({"protocol": None}, "Protocol must be a string"),
    ({"store": "s3"}, "store must be one of"),
    ({"timeout": "soon"}, "timeout must be a number"),
    ({"timeout": 0}, "timeout must be positive"),
    ({"concurrency": 0}, "concurrency must be a positive integer"),
    ({"file_concurrency": True}, "file_concurrency must be a positive integer"),
])
def test_invalid_options(kwargs, message):
    with pytest.raises(ConfigError, match=message):
        ClientConfig(**kwargs)


def test_callable_store_is_accepted():
    factory = lambda n: None  # noqa: E731
    assert ClientConfig(store=factory).store is factory


def test_from_env():
    env = {
        "BRIDGEBOX_BRIDGE": "https://bridge.example",
        "BRIDGEBOX_BUCKET": "b1",
        "BRIDGEBOX_STORE": "fs",
        "BRIDGEBOX_TIMEOUT": "5",
        "BRIDGEBOX_KEY": "",
    }
    cfg = ClientConfig.from_env(env)
    assert cfg.bridge == "https://bridge.example"
    assert cfg.bucket_id == "b1"
    assert cfg.store == "fs"
    assert cfg.timeout == 5.0
    assert cfg.key_material is None


def test_from_env_overrides_win():
    cfg = ClientConfig.from_env({"BRIDGEBOX_BUCKET": "b1"}, bucket_id="b2", protocol=None)
    assert cfg.bucket_id == "b2"
    assert cfg.protocol == "http"


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("BRIDGEBOX_PROTOCOL", "https")
    assert ClientConfig.from_env().protocol == "https"
