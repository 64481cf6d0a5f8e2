"""Account endpoints: register, development token issue, me."""

from fastapi import APIRouter, Depends

from plantlife.auth import create_access_token, get_current_user
from plantlife.config import Settings
from plantlife.dependencies import get_app_settings, get_services
from plantlife.entities import NewUser, User
from plantlife.exceptions import ForbiddenError, NotFoundError
from plantlife.logging_config import get_logger
from plantlife.schemas import MeResponse, RegisterRequest, TokenRequest, TokenResponse
from plantlife.services import Services

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    services: Services = Depends(get_services),
    settings: Settings = Depends(get_app_settings),
):
    """Create an account for a phone number confirmed by the OTP provider."""
    user = await services.identity.create(NewUser(**body.model_dump()))
    return TokenResponse(
        access_token=create_access_token(user.id, settings),
        user=MeResponse.model_validate(user),
    )


@router.post("/token", response_model=TokenResponse)
async def issue_token(
    body: TokenRequest,
    services: Services = Depends(get_services),
    settings: Settings = Depends(get_app_settings),
):
    """Issue a token for an existing phone number. Development only."""
    if not settings.allow_dev_tokens:
        raise ForbiddenError("Token issue by phone is disabled")
    user = await services.identity.get_by_phone(body.phone)
    if user is None:
        raise NotFoundError("User with phone", body.phone)
    logger.info("dev_token_issued", user_id=str(user.id))
    return TokenResponse(
        access_token=create_access_token(user.id, settings),
        user=MeResponse.model_validate(user),
    )


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)):
    return MeResponse.model_validate(user)
