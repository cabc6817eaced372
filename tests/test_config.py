from src.companion.config import Settings, get_settings


def test_defaults_when_environment_is_empty():
    settings = Settings.from_env({})
    assert settings.upstream_url == "http://localhost:11434"
    assert settings.model == "llama3"
    assert settings.allowed_origins == ("http://localhost:5173",)
    assert settings.session_cookie == "companion_session"
    assert settings.context_ttl_seconds == 1800
    assert settings.end_of_turn_marker is None
    assert settings.redis_url is None
    assert settings.cookie_secure is False


def test_values_are_parsed_from_environment():
    settings = Settings.from_env(
        {
            "COMPANION_UPSTREAM_URL": "http://ollama:11434/",
            "COMPANION_MODEL": "mistral",
            "COMPANION_ALLOWED_ORIGINS": "https://chat.example.com, https://chat.example.com/,http://localhost:3000",
            "COMPANION_CONTEXT_TTL_SECONDS": "60",
            "COMPANION_UPSTREAM_READ_TIMEOUT": "30.5",
            "COMPANION_END_OF_TURN_MARKER": "[[END]]",
            "COMPANION_COOKIE_SECURE": "true",
            "REDIS_URL": "redis://cache:6379/1",
        }
    )
    assert settings.upstream_url == "http://ollama:11434"
    assert settings.model == "mistral"
    assert settings.allowed_origins == ("https://chat.example.com", "http://localhost:3000")
    assert settings.context_ttl_seconds == 60
    assert settings.upstream_read_timeout == 30.5
    assert settings.end_of_turn_marker == "[[END]]"
    assert settings.cookie_secure is True
    assert settings.redis_url == "redis://cache:6379/1"


def test_invalid_numbers_fall_back_to_defaults():
    settings = Settings.from_env({"COMPANION_CONTEXT_TTL_SECONDS": "soon", "COMPANION_MAX_UPLOAD_BYTES": "-5"})
    assert settings.context_ttl_seconds == 1800
    assert settings.max_upload_bytes == 1


def test_origin_checks():
    settings = Settings.from_env({"COMPANION_ALLOWED_ORIGINS": "https://chat.example.com"})
    assert settings.origin_allowed("https://chat.example.com")
    assert settings.origin_allowed("https://chat.example.com/")
    assert settings.origin_allowed(None)
    assert not settings.origin_allowed("https://evil.example.com")

    anywhere = Settings.from_env({"COMPANION_ALLOWED_ORIGINS": "*"})
    assert anywhere.origin_allowed("https://evil.example.com")


def test_get_settings_is_cached_until_cleared(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("COMPANION_MODEL", "phi3")
    assert get_settings() is first
    get_settings.cache_clear()
    assert get_settings().model == "phi3"
