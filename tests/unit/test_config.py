import pytest

from dsqlbench.config import Settings, region_from_host
from dsqlbench.db.retry import RetryPolicy


def _settings(**overrides):
    values = {"DB_HOST": None, "AWS_REGION": None, "DB_USER": "admin"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_region_from_dsql_endpoint():
    config = _settings(DB_HOST="abc123.dsql.eu-central-1.on.aws")
    assert config.db_region() == "eu-central-1"


def test_explicit_region_wins():
    config = _settings(DB_HOST="abc123.dsql.eu-central-1.on.aws", AWS_REGION="us-west-2")
    assert config.db_region() == "us-west-2"


@pytest.mark.parametrize("host", [None, "localhost", "db.example.com"])
def test_region_default(host):
    assert _settings(DB_HOST=host).db_region() == "us-east-1"


@pytest.mark.parametrize("user, expected", [("admin", True), ("ADMIN", True), ("app", False)])
def test_admin_user(user, expected):
    assert _settings(DB_USER=user).is_admin_user() is expected


def test_retry_policy_from_settings():
    policy = _settings(DB_RETRY_MAX_ATTEMPTS=5, DB_RETRY_BACKOFF_SECONDS=0.1).get_retry_policy()
    assert policy == RetryPolicy(max_attempts=5, backoff=0.1)


def test_pool_config_development_caps_timeout():
    config = _settings(environment="development", DB_POOL_TIMEOUT=60.0).get_db_pool_config()
    assert config["timeout"] == 15.0


def test_pool_config_production_uses_values():
    config = _settings(
        environment="production", DB_POOL_MIN_SIZE=2, DB_POOL_MAX_SIZE=20, DB_POOL_TIMEOUT=60.0
    ).get_db_pool_config()
    assert config["min_size"] == 2
    assert config["max_size"] == 20
    assert config["timeout"] == 60.0


@pytest.mark.parametrize(
    "host, expected",
    [
        ("abc123.dsql.ap-southeast-2.on.aws", "ap-southeast-2"),
        ("localhost", None),
        (None, None),
    ],
)
def test_region_from_host(host, expected):
    assert region_from_host(host) == expected
