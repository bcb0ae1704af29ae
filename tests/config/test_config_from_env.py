import pytest

from dhcore.config import Config, CoreConfig, S3Config
from dhcore.kernel.transfer import TransferService


def test_from_env_reads_core_and_s3_settings():
    env = {
        "DHCORE_ENDPOINT": "https://core.example.com/",
        "DHCORE_ACCESS_TOKEN": "tok",
        "AWS_ACCESS_KEY_ID": "ak",
        "AWS_SECRET_ACCESS_KEY": "sk",
        "AWS_REGION": "eu-west-1",
        "S3_ENDPOINT_URL": "http://minio:9000",
    }

    config = Config.from_env(env)

    assert config.core.base_url == "https://core.example.com"
    assert config.core.api_version == "v1"
    assert config.core.access_token == "tok"
    assert config.core.basic_auth_username is None
    assert config.s3 == S3Config(
        access_key="ak", secret_key="sk", session_token=None, region="eu-west-1", endpoint_url="http://minio:9000"
    )


def test_from_env_requires_endpoint():
    with pytest.raises(ValueError, match="base_url cannot be empty"):
        Config.from_env({})


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("DHCORE_ENDPOINT", "http://localhost:8080")
    monkeypatch.setenv("DHCORE_API_VERSION", "v2")
    monkeypatch.setenv("DHCORE_USER", "admin")
    monkeypatch.setenv("DHCORE_PASSWORD", "secret")

    config = Config.from_env()

    assert config.core.api_version == "v2"
    assert config.core.basic_auth_username == "admin"
    assert config.core.basic_auth_password == "secret"


def test_empty_api_version_is_rejected():
    with pytest.raises(ValueError, match="api_version"):
        CoreConfig(base_url="http://x", api_version="")


def test_service_from_config_builds_clients():
    config = Config(
        core=CoreConfig(base_url="http://core.test", timeout=5.0),
        s3=S3Config(access_key="ak", secret_key="sk", region="us-east-1", endpoint_url="http://minio:9000"),
    )

    service = TransferService.from_config(config)

    assert service.core.config.base_url == "http://core.test"
    assert service.fetcher.timeout == 5.0
    service.core.close()
