from hivewatch.config import RateLimit, load_settings


def test_defaults(monkeypatch):
    for name in ("DATABASE_URL", "SENSOR_API_KEY", "HIVEWATCH_WEIGHT_MAX_KG", "HIVEWATCH_RATE_LIMIT_SENSOR_MAX"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.database_url.startswith("postgresql+asyncpg://")
    assert settings.weight_max_kg == 500
    assert settings.rate_limits["sensor"] == RateLimit(60, 60.0)
    assert settings.rate_limits["auth"] == RateLimit(10, 900.0)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("HIVEWATCH_WEIGHT_MAX_KG", "250")
    monkeypatch.setenv("HIVEWATCH_RATE_LIMIT_SENSOR_MAX", "5")
    monkeypatch.setenv("HIVEWATCH_RATE_LIMIT_SENSOR_WINDOW", "10")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.weight_max_kg == 250
    assert settings.rate_limits["sensor"] == RateLimit(5, 10.0)
    assert settings.rate_limits["api"] == RateLimit(100, 60.0)
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.log_level == "DEBUG"
