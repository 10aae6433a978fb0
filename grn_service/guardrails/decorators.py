from fastapi import HTTPException, Depends, Request
from grn_service.api.auth import get_current_active_user, User
from grn_service.guardrails.permissions import permission_checker, Permission
from grn_service.workflow.coordinator import approval_coordinator

def require_permission(permission: Permission):
    """
    Dependency to check static permission.
    """
    def check(user: User = Depends(get_current_active_user)):
        if not permission_checker.check_permission(user, permission):
            raise HTTPException(
                status_code=403,
                detail=f"Permission denied: {permission.value} required"
            )
        return user
    return check

class SoDChecker:
    """Dependency enforcing Segregation of Duties on routes with a `grn_id` path parameter."""
    def __init__(self, action: str, permission: Permission):
        self.action = action
        self.permission = permission

    async def __call__(self, request: Request, current_user: User = Depends(get_current_active_user)) -> User:
        if not permission_checker.check_permission(current_user, self.permission):
            raise HTTPException(
                status_code=403,
                detail=f"Permission denied: {self.permission.value} required"
            )
        grn_id = request.path_params.get("grn_id")
        if not grn_id:
            return current_user

        # NotFound propagates to the GRN error handler
        grn = await approval_coordinator.get_grn(grn_id)
        if not permission_checker.check_sod(grn, current_user, self.action):
            raise HTTPException(
                status_code=403,
                detail=f"SoD Violation: You cannot {self.action.replace('_', ' ')} this GRN."
            )
        return current_user
