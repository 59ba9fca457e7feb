from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated staff member."""

    id: UUID
    name: str
    role: str
    branch_id: UUID

    def context(self) -> "TenantContext":
        return TenantContext(branch_id=self.branch_id, actor_id=self.id, actor_name=self.name)


class TenantContext(BaseModel):
    """Branch scope and actor passed explicitly into every ledger operation."""

    branch_id: UUID
    actor_id: UUID
    actor_name: str
