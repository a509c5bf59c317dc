import pytest

from app.core.config import Settings, parse_list_from_env


class TestParseListFromEnv:
    """Tests pour la fonction utilitaire parse_list_from_env."""

    def test_parse_direct(self):
        """Liste Python directe."""
        assert parse_list_from_env(["admin", "staff"], "WRITE_ROLES") == ["admin", "staff"]

    def test_parse_comma_separated_with_spaces(self):
        """Format virgules avec espaces."""
        assert parse_list_from_env("  admin , staff ", "WRITE_ROLES") == ["admin", "staff"]

    def test_parse_json_format(self):
        """Format JSON."""
        assert parse_list_from_env('["care-portal", "admin-portal"]', "KEYCLOAK_ALLOWED_AZP") == [
            "care-portal",
            "admin-portal",
        ]

    def test_parse_empty_string(self):
        assert parse_list_from_env("", "ALLOWED_ORIGINS") == []

    def test_empty_values_filtered(self):
        assert parse_list_from_env("a,,b,  ,c", "TRUSTED_HOSTS") == ["a", "b", "c"]

    def test_invalid_json_format(self):
        with pytest.raises(ValueError, match="Format JSON invalide pour test_field"):
            parse_list_from_env('["val1", "val2"', "test_field")

    def test_invalid_type(self):
        with pytest.raises(ValueError, match="Valeur invalide pour test_field"):
            parse_list_from_env(123, "test_field")  # type: ignore


class TestSettings:
    """Tests pour le chargement des paramètres depuis l'environnement."""

    @pytest.fixture
    def base_env(self, monkeypatch):
        monkeypatch.setenv("KEYCLOAK_SERVER_URL", "http://kc:8080")
        monkeypatch.setenv("KEYCLOAK_REALM", "care")
        monkeypatch.setenv("KEYCLOAK_CLIENT_ID", "core-care-participants")
        monkeypatch.setenv("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")
        return monkeypatch

    def test_defaults(self, base_env):
        """Valeurs par défaut du service participants."""
        base_env.delenv("WRITE_ROLES", raising=False)
        base_env.delenv("KEYCLOAK_ALLOWED_AZP", raising=False)
        settings = Settings(_env_file=None)

        assert settings.PROJECT_NAME == "core-care-participants"
        assert settings.WRITE_ROLES == ["admin", "staff"]
        assert settings.KEYCLOAK_ALLOWED_AZP == ["care-portal"]
        assert settings.CACHE_TTL_PARTICIPANT == 600

    def test_lists_from_env(self, base_env):
        """Les listes acceptent le format virgules depuis l'environnement."""
        base_env.setenv("WRITE_ROLES", "admin,coordinator")
        base_env.setenv("ALLOWED_ORIGINS", "http://localhost:3000,https://care.example.com")
        settings = Settings(_env_file=None)

        assert settings.WRITE_ROLES == ["admin", "coordinator"]
        assert settings.ALLOWED_ORIGINS == ["http://localhost:3000", "https://care.example.com"]

    def test_api_prefix(self, base_env):
        settings = Settings(_env_file=None)
        assert settings.get_api_prefix() == "/api/v1"
        assert settings.get_api_prefix("v2") == "/api/v2"
