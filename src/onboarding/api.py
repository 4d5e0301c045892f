"""
Onboarding API Endpoints.

Exposes checkpoint state and progress writes to the mobile client.
Handlers build an OnboardingProgressController per request from the
app's shared store resources and the authenticated caller.
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from moai.db.client import AppResources

from .checkpoints import CheckpointStatus
from .forms import OnboardingFormData
from .progress import AuthState, OnboardingProgressController, OnboardingSnapshot
from .steps import FIRST_STEP, LAST_STEP

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


# =============================================================================
# Dependencies
# =============================================================================


class AuthenticatedUser(BaseModel):
    """Authenticated user info from Supabase JWT."""
    id: str
    email: str | None
    access_token: str


def get_resources(request: Request) -> AppResources:
    """Store resources created by the app lifespan."""
    resources = getattr(request.app.state, "resources", None)
    if resources is None:
        raise HTTPException(status_code=503, detail="Store not configured")
    return resources


async def get_current_user(
    authorization: str = Header(None),
    resources: AppResources = Depends(get_resources),
) -> AuthenticatedUser:
    """
    Validate Supabase JWT and extract user info.

    Expects: Authorization: Bearer <supabase_access_token>
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    token = authorization.replace("Bearer ", "")

    try:
        user_response = resources.client.auth.get_user(token)

        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid token")

        return AuthenticatedUser(
            id=user_response.user.id,
            email=user_response.user.email,
            access_token=token,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Auth error: {e}")
        raise HTTPException(status_code=401, detail="Authentication failed")


async def get_controller(
    user: AuthenticatedUser = Depends(get_current_user),
    resources: AppResources = Depends(get_resources),
) -> OnboardingProgressController:
    controller = OnboardingProgressController(
        resources.profiles,
        user.id,
        AuthState(is_authenticated=True),
    )
    await controller.refresh()
    return controller


# =============================================================================
# Request/Response Models
# =============================================================================


class ProgressRequest(BaseModel):
    """Answers for one checkpoint (1-based)."""
    step: int = Field(ge=FIRST_STEP, le=LAST_STEP)
    data: OnboardingFormData = Field(default_factory=OnboardingFormData)


class CompleteRequest(BaseModel):
    data: OnboardingFormData | None = None


class ProgressResponse(BaseModel):
    success: bool
    snapshot: OnboardingSnapshot


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/checkpoints", response_model=OnboardingSnapshot)
async def get_checkpoints(controller: OnboardingProgressController = Depends(get_controller)):
    """Current checkpoint and per-step status for the caller."""
    return controller.snapshot()


@router.get("/checkpoints/{step}", response_model=CheckpointStatus)
async def get_checkpoint(step: int, controller: OnboardingProgressController = Depends(get_controller)):
    if step < FIRST_STEP or step > LAST_STEP:
        raise HTTPException(status_code=400, detail=f"Step must be between {int(FIRST_STEP)} and {int(LAST_STEP)}")
    return controller.get_checkpoint_status(step)


@router.post("/progress", response_model=ProgressResponse)
async def save_progress(
    request: ProgressRequest,
    controller: OnboardingProgressController = Depends(get_controller),
):
    """Save one checkpoint's answers. The checkpoint must be reachable."""
    if not controller.can_proceed_to_step(request.step):
        raise HTTPException(
            status_code=403,
            detail=f"Step {request.step} is locked until earlier steps are complete",
        )

    if not await controller.save_progress(request.step - 1, request.data):
        raise HTTPException(status_code=500, detail=controller.error or "Failed to save onboarding progress")

    return ProgressResponse(success=True, snapshot=controller.snapshot())


@router.post("/complete", response_model=ProgressResponse)
async def complete_onboarding(
    request: CompleteRequest | None = None,
    controller: OnboardingProgressController = Depends(get_controller),
):
    data = request.data if request else None
    if not await controller.complete_onboarding(data):
        raise HTTPException(status_code=500, detail=controller.error or "Failed to complete onboarding")

    logger.info(f"Onboarding completed for {controller.user_id}")
    return ProgressResponse(success=True, snapshot=controller.snapshot())


@router.post("/reset", response_model=ProgressResponse)
async def reset_onboarding(controller: OnboardingProgressController = Depends(get_controller)):
    if not await controller.reset_progress():
        raise HTTPException(status_code=500, detail=controller.error or "Failed to reset onboarding")

    return ProgressResponse(success=True, snapshot=controller.snapshot())
