"""Tests unitaires pour le module de securite.

Authentification JWT Keycloak, extraction de tokens et controle d'acces
par roles (RBAC) pour les endpoints participants.
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from app.core.exceptions import (
    PROBLEM_MEDIA_TYPE,
    ForbiddenError,
    UnauthorizedError,
    setup_problem_handlers,
)
from app.core.security import (
    User,
    extract_token,
    get_current_user,
    require_roles,
    validate_token_claims,
    verify_token,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def staff_token_data():
    """Token data typique Keycloak pour un membre du staff."""
    return {
        "sub": "staff-uuid-123",
        "email": "staff@care.example.com",
        "preferred_username": "staff1",
        "realm_access": {"roles": ["staff", "offline_access"]},
        "resource_access": {"core-care-participants": {"roles": ["export"]}},
        "iss": "http://localhost:8080/realms/care",
        "azp": "care-portal",
        "aud": ["account"],
    }


@pytest.fixture
def mock_request():
    request = MagicMock()
    request.query_params = {}
    request.cookies = {}
    return request


# =============================================================================
# User
# =============================================================================


class TestUserModel:
    """Tests pour la classe User."""

    def test_roles_merge_realm_and_client(self, staff_token_data):
        user = User(**staff_token_data)

        assert user.roles == ["staff", "offline_access", "export"]

    def test_roles_ignore_other_clients(self):
        user = User(sub="u", resource_access={"other-service": {"roles": ["admin"]}})

        assert user.roles == []


# =============================================================================
# Extraction et verification du token
# =============================================================================


class TestExtractToken:
    """Tests pour extract_token()."""

    @pytest.mark.asyncio
    async def test_from_header(self, mock_request):
        credentials = MagicMock(credentials="header-token")

        assert await extract_token(mock_request, credentials) == "header-token"

    @pytest.mark.asyncio
    async def test_from_query_then_cookie(self, mock_request):
        mock_request.query_params = {"token": "query-token"}
        assert await extract_token(mock_request, None) == "query-token"

        mock_request.query_params = {}
        mock_request.cookies = {"auth_token": "cookie-token"}
        assert await extract_token(mock_request, None) == "cookie-token"

    @pytest.mark.asyncio
    async def test_missing_token(self, mock_request):
        with pytest.raises(HTTPException) as exc_info:
            await extract_token(mock_request, None)

        assert exc_info.value.status_code == 401


class TestValidateTokenClaims:
    """Tests pour la validation iss / azp / aud."""

    def test_valid_claims(self, staff_token_data):
        validate_token_claims(staff_token_data)

    def test_wrong_issuer(self, staff_token_data):
        staff_token_data["iss"] = "http://evil/realms/care"

        with pytest.raises(HTTPException) as exc_info:
            validate_token_claims(staff_token_data)
        assert exc_info.value.status_code == 401

    def test_unknown_azp(self, staff_token_data):
        staff_token_data["azp"] = "some-other-portal"

        with pytest.raises(HTTPException, match="invalid azp"):
            validate_token_claims(staff_token_data)

    def test_wrong_audience(self, staff_token_data):
        staff_token_data["aud"] = "another-service"

        with pytest.raises(HTTPException, match="invalid audience"):
            validate_token_claims(staff_token_data)


class TestVerifyToken:
    """Tests pour verify_token()."""

    @pytest.mark.asyncio
    async def test_valid_token(self, staff_token_data):
        with patch("app.core.security.keycloak_openid") as mock_keycloak:
            mock_keycloak.decode_token.return_value = staff_token_data

            result = await verify_token("jwt")

        assert result["sub"] == "staff-uuid-123"
        mock_keycloak.decode_token.assert_called_once_with("jwt", validate=True)

    @pytest.mark.asyncio
    async def test_decode_failure_is_401(self):
        with patch("app.core.security.keycloak_openid") as mock_keycloak:
            mock_keycloak.decode_token.side_effect = Exception("signature expired")

            with pytest.raises(HTTPException) as exc_info:
                await verify_token("jwt")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid token"


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_user_from_token_data(self, staff_token_data):
        user = await get_current_user(staff_token_data)

        assert user.sub == "staff-uuid-123"

    @pytest.mark.asyncio
    async def test_missing_sub(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            await get_current_user({"email": "x@example.com"})

        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}
        assert exc_info.value.problem_detail.detail == "Could not validate credentials"


# =============================================================================
# RBAC
# =============================================================================


class TestRequireRoles:
    """Tests pour require_roles()."""

    @pytest.mark.asyncio
    async def test_any_role_granted(self, staff_token_data):
        checker = require_roles("admin", "staff")

        user = await checker(User(**staff_token_data))

        assert user.sub == "staff-uuid-123"

    @pytest.mark.asyncio
    async def test_denied_without_role(self):
        checker = require_roles("admin", "staff")

        with pytest.raises(ForbiddenError) as exc_info:
            await checker(User(sub="viewer", realm_access={"roles": ["viewer"]}))

        assert exc_info.value.status_code == 403
        assert exc_info.value.problem_detail.title == "Forbidden"
        assert "admin, staff" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_require_all(self, staff_token_data):
        checker = require_roles("staff", "export", require_all=True)
        assert (await checker(User(**staff_token_data))).sub == "staff-uuid-123"

        strict = require_roles("staff", "admin", require_all=True)
        with pytest.raises(HTTPException) as exc_info:
            await strict(User(**staff_token_data))
        assert "All required roles" in exc_info.value.detail


class TestAuthProblemResponses:
    """Les erreurs d'authentification sont rendues en application/problem+json."""

    def test_missing_token_is_problem_detail(self):
        app = FastAPI()
        setup_problem_handlers(app)

        @app.get("/protected")
        async def protected(user: User = Depends(get_current_user)):
            return {"sub": user.sub}

        response = TestClient(app).get("/protected")

        assert response.status_code == 401
        assert response.headers["content-type"] == PROBLEM_MEDIA_TYPE
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["title"] == "Unauthorized"
