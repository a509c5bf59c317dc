import json
from typing import Literal, TypeAlias

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Type personnalisé pour les listes configurables depuis l'environnement
ConfigurableList: TypeAlias = str | list[str] | list[AnyHttpUrl]


def parse_list_from_env(value: ConfigurableList, field_name: str = "field") -> list[str]:
    """
    Fonction utilitaire pour parser une liste depuis une variable d'environnement.

    Supporte les formats suivants:
    - Liste Python directe: ['val1', 'val2']
    - Format JSON: '["val1", "val2"]'
    - Format virgules: "val1,val2,val3"
    - Chaîne vide: "" → []

    Args:
        value: La valeur à parser (chaîne ou liste)
        field_name: Nom du champ pour les messages d'erreur

    Returns:
        Liste de chaînes parsée

    Raises:
        ValueError: Si le format n'est pas valide
    """
    if isinstance(value, list):
        return [str(item) for item in value]
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("[") and value.endswith("]"):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                raise ValueError(f"Format JSON invalide pour {field_name}: {value}")
            return [str(item) for item in parsed]
        if value:
            return [item.strip() for item in value.split(",") if item.strip()]
        return []
    raise ValueError(f"Valeur invalide pour {field_name}: {value}")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore",
    )

    try:
        from app import __version__
    except ImportError:
        __version__ = "0.1.0"

    PROJECT_NAME: str = "core-care-participants"
    PROJECT_SLUG: str = "participants"
    VERSION: str = __version__
    DESCRIPTION: str = "Participant records, care partnerships and schedules"

    API_VERSIONS: list[str] = ["v1"]
    API_LATEST_VERSION: str = "v1"

    # Environnement
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False

    # Keycloak Authentication (bearer-only)
    KEYCLOAK_SERVER_URL: str
    KEYCLOAK_REALM: str
    KEYCLOAK_CLIENT_ID: str
    # Clients frontend autorisés à appeler ce service (claim azp)
    KEYCLOAK_ALLOWED_AZP: ConfigurableList = ["care-portal"]
    # Rôles autorisés à modifier les dossiers participants
    WRITE_ROLES: ConfigurableList = ["admin", "staff"]

    # OpenTelemetry
    OTEL_SERVICE_NAME: str = "core-care-participants"
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4317"
    OTEL_EXPORTER_OTLP_PROTOCOL: str = "grpc"
    OTEL_EXPORTER_OTLP_INSECURE: bool = True
    OTEL_LOG_LEVEL: str = "info"
    OTEL_PYTHON_LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] [%(filename)s:%(lineno)d] [trace_id=%(otelTraceID)s span_id=%(otelSpanID)s resource.service.name=%(otelServiceName)s trace_sampled=%(otelTraceSampled)s] - %(message)s"

    # CORS
    # Définir dans .env, ex: ALLOWED_ORIGINS='["http://localhost:3000","https://myfrontend.com"]'
    ALLOWED_ORIGINS: ConfigurableList = []
    # Définir dans .env, ex: TRUSTED_HOSTS='["localhost","127.0.0.1"]'
    TRUSTED_HOSTS: ConfigurableList = ["localhost", "127.0.0.1"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: ConfigurableList) -> list[str]:
        """
        Permet de définir ALLOWED_ORIGINS de plusieurs façons:
        - Chaîne séparée par des virgules: "http://localhost:3000,https://api.exemple.com"
        - Format JSON: '["http://localhost:3000","https://api.exemple.com"]'
        - Liste Python directe (si déjà parsée)
        """
        return parse_list_from_env(v, "ALLOWED_ORIGINS")

    @field_validator("TRUSTED_HOSTS", "KEYCLOAK_ALLOWED_AZP", "WRITE_ROLES", mode="before")
    @classmethod
    def assemble_lists(cls, v: ConfigurableList, info) -> list[str]:
        """Parse les listes simples depuis une variable d'environnement."""
        return parse_list_from_env(v, info.field_name)

    # Base de données
    # postgresql+asyncpg://... en production, sqlite+aiosqlite://... pour les tests
    SQLALCHEMY_DATABASE_URI: str

    # Redis (événements + cache)
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_DB: int = 0

    # Cache
    CACHE_ENABLED: bool = True
    CACHE_TTL_DEFAULT: int = 300
    CACHE_TTL_PARTICIPANT: int = 600

    def get_api_prefix(self, version: str | None = None) -> str:
        """
        Get API prefix for a specific version.

        Args:
            version: API version (e.g., "v1", "v2"). Defaults to latest.

        Returns:
            API prefix string (e.g., "/api/v1")
        """
        version = version or self.API_LATEST_VERSION
        return f"/api/{version}"


# Instance unique des paramètres chargée depuis .env
settings = Settings()
