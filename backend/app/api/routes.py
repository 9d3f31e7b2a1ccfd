import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from ..schemas import (
    ChatRequest,
    DashboardResponse,
    ErrorResponse,
    UserProfileResponse,
    UserProfileUpdate,
)
from ..services.chat_relay import (
    ChatRelay,
    QuotaExceeded,
    RateLimited,
    RelayFailure,
    get_chat_relay,
)
from ..services.profile_service import (
    ProfileService,
    describe_diet,
    describe_goal,
    get_profile_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again in a moment."
QUOTA_MESSAGE = "AI service quota exceeded. Please contact support."
GENERIC_ERROR_MESSAGE = "An error occurred processing your request"


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=CORS_HEADERS)


def relay_failure_response(exc: RelayFailure) -> JSONResponse:
    if isinstance(exc, RateLimited):
        return _error_response(429, RATE_LIMIT_MESSAGE)
    if isinstance(exc, QuotaExceeded):
        return _error_response(402, QUOTA_MESSAGE)
    # Not configured and other upstream statuses are standardized to 500
    return _error_response(500, str(exc) or GENERIC_ERROR_MESSAGE)


@router.get("/health")
def healthcheck() -> dict:
    return {"status": "ok"}


@router.options("/chat")
def chat_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


CHAT_ERROR_RESPONSES = {
    402: {"model": ErrorResponse, "description": "AI service quota exceeded"},
    429: {"model": ErrorResponse, "description": "Upstream rate limit"},
    500: {"model": ErrorResponse, "description": "Not configured, malformed request or gateway failure"},
}


@router.post("/chat", responses=CHAT_ERROR_RESPONSES)
async def relay_chat(request: Request, relay: ChatRelay = Depends(get_chat_relay)) -> Response:
    try:
        body = await request.body()
        logger.info("Chat request received (%d bytes)", len(body))
        payload = ChatRequest.model_validate_json(body)
        upstream = await relay.open_stream(payload.messages, payload.user_profile)
    except RelayFailure as exc:
        return relay_failure_response(exc)
    except Exception as exc:  # noqa: BLE001 - every failure becomes a JSON error
        logger.exception("Chat relay error")
        return _error_response(500, str(exc) or GENERIC_ERROR_MESSAGE)

    return StreamingResponse(
        upstream.iter_bytes(),
        headers={**CORS_HEADERS, "Content-Type": "text/event-stream"},
        # Runs even if the client disconnects before the first chunk
        background=BackgroundTask(upstream.aclose),
    )


def _profile_response(profile) -> UserProfileResponse:
    return UserProfileResponse(**profile.as_dict())


@router.get("/profiles/{user_id}", response_model=UserProfileResponse)
def get_profile(
    user_id: str,
    profiles: ProfileService = Depends(get_profile_service),
) -> UserProfileResponse:
    profile = profiles.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_response(profile)


@router.put("/profiles/{user_id}", response_model=UserProfileResponse)
def save_profile(
    user_id: str,
    payload: UserProfileUpdate,
    profiles: ProfileService = Depends(get_profile_service),
) -> UserProfileResponse:
    profile = profiles.upsert_profile(user_id, payload.model_dump())
    return _profile_response(profile)


@router.delete("/profiles/{user_id}")
def delete_profile(
    user_id: str,
    profiles: ProfileService = Depends(get_profile_service),
) -> dict:
    if not profiles.delete_profile(user_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"ok": True}


@router.get("/dashboard/{user_id}", response_model=DashboardResponse)
def get_dashboard(
    user_id: str,
    profiles: ProfileService = Depends(get_profile_service),
) -> DashboardResponse:
    profile = profiles.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return DashboardResponse(
        calorie_target=profile.daily_calorie_target,
        water_target_ml=profile.daily_water_target_ml,
        goal_label=describe_goal(profile.health_goal),
        diet_label=describe_diet(profile.dietary_preference),
        profile=_profile_response(profile),
    )
