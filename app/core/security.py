import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from keycloak import KeycloakOpenID
from opentelemetry import trace
from pydantic import BaseModel

from app.core.config import settings
from app.core.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Keycloak client configuration (bearer-only mode - no client_secret needed)
keycloak_openid = KeycloakOpenID(
    server_url=settings.KEYCLOAK_SERVER_URL,
    client_id=settings.KEYCLOAK_CLIENT_ID,
    realm_name=settings.KEYCLOAK_REALM,
)

# auto_error=False: le token peut aussi venir du query param ou d'un cookie
security_scheme = HTTPBearer(auto_error=False)


class User(BaseModel):
    sub: str  # Keycloak user ID
    email: str | None = None
    preferred_username: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    realm_access: dict | None = None
    resource_access: dict | None = None

    @property
    def roles(self) -> list[str]:
        """Rôles realm + rôles du client de ce service."""
        user_roles = []
        if self.realm_access and "roles" in self.realm_access:
            user_roles.extend(self.realm_access["roles"])
        if self.resource_access and settings.KEYCLOAK_CLIENT_ID in self.resource_access:
            user_roles.extend(self.resource_access[settings.KEYCLOAK_CLIENT_ID].get("roles", []))
        return user_roles


def _unauthorized(detail: str) -> UnauthorizedError:
    return UnauthorizedError(detail)


def validate_token_claims(token_info: dict) -> None:
    """
    Valide les claims iss, azp et aud d'un token déjà décodé.

    Raises:
        UnauthorizedError si un claim n'est pas accepté
    """
    # iss: ignoré en DEBUG (localhost vs keycloak vs host.docker.internal)
    iss = token_info.get("iss")
    if not settings.DEBUG:
        expected_issuer = f"{settings.KEYCLOAK_SERVER_URL.rstrip('/')}/realms/{settings.KEYCLOAK_REALM}"
        if not iss or iss != expected_issuer:
            logger.error(f"Invalid issuer in token: {iss}. Expected: {expected_issuer}")
            raise _unauthorized(f"Token from unauthorized issuer: {iss}")
    else:
        logger.debug(f"DEBUG mode: Skipping issuer validation. Token issuer: {iss}")

    allowed_azp = set(settings.KEYCLOAK_ALLOWED_AZP)
    azp = token_info.get("azp")
    if not azp or azp not in allowed_azp:
        logger.error(f"Invalid azp in token: {azp}. Expected one of: {allowed_azp}")
        raise _unauthorized(f"Token not authorized for this service (invalid azp: {azp})")

    aud = token_info.get("aud", [])
    if isinstance(aud, str):
        aud = [aud]
    valid_audiences = {"account", settings.KEYCLOAK_CLIENT_ID}
    if not any(audience in valid_audiences for audience in aud):
        logger.error(f"Invalid audience in token: {aud}. Expected one of: {valid_audiences}")
        raise _unauthorized(f"Token not intended for this service (invalid audience: {aud})")


async def verify_token(token: str) -> dict:
    """
    Verify JWT token with Keycloak.

    Validates:
    - Token signature and expiration (via decode_token)
    - iss (issuer) - must be from our Keycloak realm
    - azp (authorized party) - must be one of KEYCLOAK_ALLOWED_AZP
    - aud (audience) - must include this service or be 'account'
    """
    with tracer.start_as_current_span("verify_keycloak_token") as span:
        try:
            token_info = keycloak_openid.decode_token(token, validate=True)
            validate_token_claims(token_info)
        except UnauthorizedError:
            span.set_attribute("auth.error", True)
            raise
        except Exception as e:
            logger.error(f"Token verification failed: {e}")
            span.set_attribute("auth.error", True)
            span.set_attribute("auth.error_detail", str(e))
            raise _unauthorized("Invalid token") from e

        span.set_attribute("auth.user_id", token_info.get("sub") or "")
        span.set_attribute("auth.azp", token_info.get("azp") or "")
        logger.debug(f"Token validated successfully - user: {token_info.get('sub')}")
        return token_info


async def extract_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)] = None,
) -> str:
    """
    Extrait le JWT de la requête.

    Ordre de priorité:
    1. Header Authorization: Bearer <token>
    2. Query parameter: ?token=<token>
    3. Cookie: auth_token

    Raises:
        UnauthorizedError si aucun token n'est trouvé
    """
    # Source 1: Authorization header (Bearer token)
    if credentials:
        logger.debug("Token extracted from Authorization header")
        return credentials.credentials

    # Source 2: Query parameter (?token=<jwt>)
    token = request.query_params.get("token")
    if token:
        logger.debug("Token extracted from query parameter")
        return token

    # Source 3: Cookie (auth_token)
    token = request.cookies.get("auth_token")
    if token:
        logger.debug("Token extracted from cookie")
        return token

    # No token found in any source
    logger.warning("No authentication token found in request")
    raise _unauthorized(
        "Authentication required. Provide token via Authorization header, query parameter, or cookie."
    )


async def get_token_data(token: Annotated[str, Depends(extract_token)]) -> dict:
    """Extract and verify token from multiple sources."""
    return await verify_token(token)


async def get_current_user(token_data: Annotated[dict, Depends(get_token_data)]) -> User:
    """Get current user from verified Keycloak token."""
    with tracer.start_as_current_span("get_current_user") as span:
        try:
            user = User(**token_data)
            span.set_attribute("auth.user_id", user.sub)
            span.set_attribute("auth.username", user.preferred_username or "unknown")
            logger.info(f"User authenticated: {user.sub}")
            return user
        except Exception as e:
            logger.error(f"Failed to create user from token data: {e}")
            span.set_attribute("auth.error", True)
            span.set_attribute("auth.error_detail", str(e))
            raise _unauthorized("Could not validate credentials") from e


def require_roles(*roles: str, require_all: bool = False):
    """
    Dependency factory for role-based access control.

    Args:
        *roles: One or more role names required for access
        require_all: If True, user must have ALL roles. If False (default), user needs ANY role.

    Examples:
        @router.put("/{participant_id}", dependencies=[Depends(require_roles("admin", "staff"))])
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        with tracer.start_as_current_span("check_user_roles") as span:
            span.set_attribute("auth.required_roles", ",".join(roles))
            span.set_attribute("auth.require_all", require_all)
            span.set_attribute("auth.user_id", current_user.sub)

            user_roles = current_user.roles
            span.set_attribute("auth.user_roles", ",".join(user_roles))

            if require_all:
                has_access = all(role in user_roles for role in roles)
                missing_roles = [role for role in roles if role not in user_roles]
            else:
                has_access = any(role in user_roles for role in roles)
                missing_roles = list(roles) if not has_access else []

            if not has_access:
                logger.warning(
                    f"Access denied for user {current_user.sub}. "
                    f"Required roles: {roles} (require_all={require_all}). "
                    f"User roles: {user_roles}. "
                    f"Missing: {missing_roles}"
                )
                span.set_attribute("auth.access_denied", True)
                span.set_attribute("auth.missing_roles", ",".join(missing_roles))

                detail = (
                    f"Access denied. Required roles: {', '.join(roles)}"
                    if not require_all
                    else f"Access denied. All required roles must be present: {', '.join(roles)}"
                )
                raise ForbiddenError(detail)

            span.set_attribute("auth.access_granted", True)
            return current_user

    return role_checker


# Modification des dossiers participants
require_write_access = require_roles(*settings.WRITE_ROLES)
