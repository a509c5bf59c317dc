"""
Tests des handlers RFC 9457 Problem Details.
"""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel, field_validator

from app.core.exceptions import (
    PROBLEM_MEDIA_TYPE,
    ForbiddenError,
    NotFoundError,
    ParticipantUpdateError,
    StoreWriteError,
    UnauthorizedError,
    ValidationError,
    problem_type,
    setup_problem_handlers,
)
from app.schemas import COMMON_RESPONSES, ParticipantUpdateErrorResponse, build_responses


class ScheduleRequest(BaseModel):
    """Modèle de requête pour les tests de validation."""

    month: int
    year: int

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: int) -> int:
        if not 1 <= v <= 12:
            raise ValueError("Month must be between 1 and 12")
        return v


app = FastAPI()
setup_problem_handlers(app)


@app.get("/test/success")
async def endpoint_success():
    return {"message": "success"}


@app.get("/test/http-exception")
async def endpoint_http_exception():
    raise HTTPException(status_code=404, detail="Resource not found")


@app.get("/test/not-found")
async def endpoint_not_found():
    raise NotFoundError("Participant p-1 not found", participantid="p-1")


@app.get("/test/validation-error")
async def endpoint_validation_error():
    raise ValidationError(
        "Invalid input",
        errors=[{"loc": ["schedule", "year"], "msg": "field required"}],
    )


@app.get("/test/unauthorized")
async def endpoint_unauthorized():
    raise UnauthorizedError()


@app.get("/test/forbidden")
async def endpoint_forbidden():
    raise ForbiddenError("Insufficient permissions")


@app.get("/test/update-failed")
async def endpoint_update_failed():
    raise ParticipantUpdateError.from_exception(
        StoreWriteError("Failed to update demographics", table="participant_demographics"),
        updated_data={"general_info": {"id": "p-1", "first_name": "Jo"}},
        updated_tables=["general_info"],
        participantid="p-1",
    )


@app.get("/test/internal-error")
async def endpoint_internal_error():
    raise Exception("password=hunter2")


@app.post("/test/request-validation")
async def endpoint_request_validation(data: ScheduleRequest):
    return {"message": "validated", "data": data.model_dump()}


client = TestClient(app, raise_server_exceptions=False)


class TestProblemDetailsHandlers:
    """Tests pour les handlers RFC 9457."""

    def test_successful_request(self):
        response = client.get("/test/success")

        assert response.status_code == 200
        assert response.json() == {"message": "success"}

    def test_http_exception_conversion(self):
        response = client.get("/test/http-exception")

        assert response.status_code == 404
        assert response.headers["content-type"] == PROBLEM_MEDIA_TYPE
        assert response.json() == {
            "type": "about:blank",
            "title": "Not Found",
            "status": 404,
            "detail": "Resource not found",
            "instance": "/test/http-exception",
        }

    def test_problem_exception_with_extension(self):
        response = client.get("/test/not-found")

        data = response.json()
        assert response.status_code == 404
        assert data["type"] == problem_type("not-found")
        assert data["detail"] == "Participant p-1 not found"
        assert data["instance"] == "/test/not-found"
        assert data["participantid"] == "p-1"

    def test_validation_error(self):
        response = client.get("/test/validation-error")

        data = response.json()
        assert response.status_code == 422
        assert data["title"] == "Validation Error"
        assert data["errors"][0]["loc"] == ["schedule", "year"]

    def test_unauthorized_error(self):
        response = client.get("/test/unauthorized")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["title"] == "Unauthorized"

    def test_forbidden_error(self):
        response = client.get("/test/forbidden")

        assert response.status_code == 403
        assert response.headers["content-type"] == PROBLEM_MEDIA_TYPE
        assert response.json()["title"] == "Forbidden"

    def test_participant_update_failure(self):
        response = client.get("/test/update-failed")

        data = response.json()
        assert response.status_code == 500
        assert data["type"] == problem_type("participant-update-failed")
        assert data["error"] == "store_write_error"
        assert data["detail"] == "Failed to update demographics"
        assert data["updated_tables"] == ["general_info"]
        assert data["updated_data"]["general_info"]["first_name"] == "Jo"
        assert data["participantid"] == "p-1"

    def test_unexpected_error_is_generic(self):
        response = client.get("/test/internal-error")

        data = response.json()
        assert response.status_code == 500
        assert response.headers["content-type"] == PROBLEM_MEDIA_TYPE
        assert data["detail"] == "Internal server error"
        assert "hunter2" not in response.text

    def test_request_validation_error(self):
        response = client.post("/test/request-validation", json={"month": 13, "year": 2024})

        data = response.json()
        assert response.status_code == 422
        assert data["type"] == problem_type("validation-error")
        assert data["errors"][0]["loc"] == ["body", "month"]


class TestOpenAPIResponses:
    """Tests pour les schémas de réponses OpenAPI."""

    def test_common_responses(self):
        assert set(COMMON_RESPONSES) == {401, 403, 422, 500}

    def test_build_responses_override(self):
        responses = build_responses(400, 500, s500=ParticipantUpdateErrorResponse)

        assert responses[500]["model"] is ParticipantUpdateErrorResponse
        assert PROBLEM_MEDIA_TYPE in responses[400]["content"]
