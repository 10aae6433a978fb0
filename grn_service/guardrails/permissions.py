from enum import Enum
from typing import Optional
import logging
from grn_service.api.auth import User
from grn_service.models.grn import GoodsReceiptNote, GRNStatus

logger = logging.getLogger(__name__)

class Permission(str, Enum):
    # GRN documents
    VIEW_GRN = "VIEW_GRN"
    CREATE_GRN = "CREATE_GRN"
    DELETE_GRN = "DELETE_GRN"

    # Inspection team
    INSPECT_GRN = "INSPECT_GRN"
    SEND_TO_INVENTORY = "SEND_TO_INVENTORY"
    REJECT_GRN = "REJECT_GRN"

    # Inventory team
    SEND_BACK_GRN = "SEND_BACK_GRN"
    INVENTORY_APPROVE = "INVENTORY_APPROVE"
    VIEW_STOCK = "VIEW_STOCK"

class Role(str, Enum):
    ADMIN = "admin"
    INSPECTOR = "inspector" # Quality inspection team
    INVENTORY_MANAGER = "inventory_manager" # Confirms storage, posts stock
    STORE_CLERK = "store_clerk" # Records receipts
    VIEWER = "viewer"

# Role -> Permissions Mapping
ROLE_PERMISSIONS = {
    Role.ADMIN: [p for p in Permission], # All
    Role.INSPECTOR: [
        Permission.VIEW_GRN, Permission.INSPECT_GRN, Permission.SEND_TO_INVENTORY, Permission.REJECT_GRN
    ],
    Role.INVENTORY_MANAGER: [
        Permission.VIEW_GRN, Permission.SEND_BACK_GRN, Permission.INVENTORY_APPROVE,
        Permission.REJECT_GRN, Permission.VIEW_STOCK
    ],
    Role.STORE_CLERK: [
        Permission.VIEW_GRN, Permission.CREATE_GRN, Permission.DELETE_GRN
    ],
    Role.VIEWER: [
        Permission.VIEW_GRN
    ]
}

class PermissionChecker:
    def check_permission(self, user: User, permission: Permission) -> bool:
        """
        Basic Role-Based Check.
        """
        try:
            role_enum = Role(user.role)
        except ValueError:
            logger.warning(f"Unknown role {user.role} for user {user.username}")
            return False

        if permission in ROLE_PERMISSIONS.get(role_enum, []):
            return True

        logger.warning(f"User {user.username} ({user.role}) denied permission {permission.value}")
        return False

    def check_sod(self, grn: GoodsReceiptNote, user: User, action: str) -> bool:
        """
        Segregation of Duties Check, read from the GRN's own audit log.
        Rule: whoever sent the GRN to inventory cannot also give the
        inventory approval that posts stock.

        Returns True if the check passes, False on a violation.
        """
        if action != "inventory_approve":
            return True

        submitter = self._last_actor_into(grn, GRNStatus.AWAITING_INVENTORY_APPROVAL)
        if submitter and submitter == user.username:
            logger.warning(f"SoD Violation: {user.username} sent GRN {grn.grn_no} to inventory "
                           f"and cannot approve it.")
            return False
        return True

    def _last_actor_into(self, grn: GoodsReceiptNote, status: GRNStatus) -> Optional[str]:
        for entry in reversed(grn.logs):
            if entry.status_to == status.value:
                return entry.actor.id
        return None

permission_checker = PermissionChecker()
