"""
Auth Router - identity echo endpoints for the authenticated caller
"""
import logging

from fastapi import APIRouter, Depends

from auth import Principal, get_current_user
from backend.utils.responses import success_response
from routers.dependencies import get_entitlement_service
from services.entitlement_service import EntitlementService

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


def principal_view(principal: Principal) -> dict:
    return {
        "user_id": principal.user_id,
        "email": principal.email,
        "role": principal.role.value,
        "is_admin": principal.is_admin,
    }


@auth_router.get("/check")
async def check_auth(current_user: Principal = Depends(get_current_user)):
    """Confirm the token is valid and echo who it belongs to"""
    return success_response(
        data={"authenticated": True, "user": principal_view(current_user)},
        message="Authenticated",
    )


@auth_router.get("/profile")
async def get_profile(
    current_user: Principal = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    """Caller identity plus the plan it currently resolves to"""
    pro = await entitlement_service.get_pro_status(current_user.user_id)
    profile = principal_view(current_user)
    profile["plan"] = "pro" if pro.is_pro else "free"
    profile["pro_status"] = pro
    return success_response(data=profile, message="Profile retrieved")
