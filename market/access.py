"""Access control module for role-based authorization.

Roles are named sets of principals. Each role has an admin role whose holders
may grant and revoke it; unless configured otherwise that is
``DEFAULT_ADMIN_ROLE``. Gated operations call :meth:`AccessControl.check_role`
first thing.
"""
import logging
from typing import Optional, Set

from .errors import MissingRole, Unauthorized
from .events import EventBus, RoleGranted, RoleRevoked
from .storage import MarketStorage

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROLE = 'DEFAULT_ADMIN_ROLE'
PAUSER_ROLE = 'PAUSER_ROLE'
UPGRADER_ROLE = 'UPGRADER_ROLE'

ROLES = (DEFAULT_ADMIN_ROLE, PAUSER_ROLE, UPGRADER_ROLE)


class AccessControl:
    """Role registry over market storage."""

    def __init__(self, storage: MarketStorage, events: Optional[EventBus] = None):
        self.storage = storage
        self.events = events

    async def has_role(self, role: str, principal: str) -> bool:
        return await self.storage.has_role(role, principal)

    async def check_role(self, role: str, principal: str) -> None:
        """Raise MissingRole unless ``principal`` holds ``role``."""
        if not await self.storage.has_role(role, principal):
            logger.warning(f"{principal} rejected: missing {role}")
            raise MissingRole(principal, role)

    async def get_role_admin(self, role: str) -> str:
        return await self.storage.get_role_admin(role) or DEFAULT_ADMIN_ROLE

    async def role_members(self, role: str) -> Set[str]:
        return await self.storage.role_members(role)

    async def grant_role(self, caller: str, role: str, principal: str) -> bool:
        """Grant ``role`` to ``principal``; caller must hold the role's admin role.

        Returns:
            True if the principal did not hold the role before
        """
        await self.check_role(await self.get_role_admin(role), caller)
        return await self._grant(role, principal, caller)

    async def revoke_role(self, caller: str, role: str, principal: str) -> bool:
        """Revoke ``role`` from ``principal``; caller must hold the role's admin role."""
        await self.check_role(await self.get_role_admin(role), caller)
        return await self._revoke(role, principal, caller)

    async def renounce_role(self, caller: str, role: str, principal: str) -> bool:
        """Let a principal give up one of its own roles."""
        if caller != principal:
            raise Unauthorized("AccessControl: can only renounce roles for self")
        return await self._revoke(role, principal, caller)

    async def set_role_admin(self, caller: str, role: str, admin_role: str) -> None:
        """Change which role administers ``role``; requires DEFAULT_ADMIN_ROLE."""
        await self.check_role(DEFAULT_ADMIN_ROLE, caller)
        await self.storage.set_role_admin(role, admin_role)
        logger.info(f"Admin role of {role} set to {admin_role} by {caller}")

    async def seed(self, deployer: str) -> None:
        """Give the deploying principal every built-in role."""
        for role in ROLES:
            await self._grant(role, deployer, deployer)

    async def _grant(self, role: str, principal: str, sender: str) -> bool:
        added = await self.storage.add_role_member(role, principal)
        if added:
            logger.info(f"{role} granted to {principal} by {sender}")
            if self.events:
                await self.events.publish(RoleGranted(role=role, principal=principal, sender=sender))
        return added

    async def _revoke(self, role: str, principal: str, sender: str) -> bool:
        removed = await self.storage.remove_role_member(role, principal)
        if removed:
            logger.info(f"{role} revoked from {principal} by {sender}")
            if self.events:
                await self.events.publish(RoleRevoked(role=role, principal=principal, sender=sender))
        return removed


__all__ = [
    'AccessControl', 'DEFAULT_ADMIN_ROLE', 'PAUSER_ROLE', 'UPGRADER_ROLE', 'ROLES',
]
