"""Mini README: Landing decisions for authenticated identities.

Structure:
    * Identity - email, identity id and role claims supplied by the identity provider.
    * DestinationKind / Destination - where the caller should be sent.
    * AccessRouter - resolves an identity against the ledger store.

Administrators are recognised by an explicit role claim, never by the shape
of their email address. Everyone else is matched to projects by email OR by
the identity id recorded on a project once its responsible party has
logged in. A single match skips the project list; no match is a normal
outcome and lands on a notice rather than raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from ..configuration import get_settings
from ..logging_utils import get_logger
from ..ledger.models import Project
from ..ledger.store import LedgerStore

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Identity:
    """An authenticated caller."""

    email: str
    identity_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def build(cls, email: str, identity_id: str, roles: Iterable[str] = ()) -> "Identity":
        return cls(
            email=email.strip(),
            identity_id=identity_id,
            roles=frozenset(str(role).strip().lower() for role in roles),
        )

    def has_role(self, role: str) -> bool:
        return role.strip().lower() in self.roles


class DestinationKind(str, Enum):
    ADMIN_PROJECT_LIST = "admin_project_list"
    PROJECT_BALANCE = "project_balance"
    PROJECT_LIST = "project_list"
    NO_PROJECT_ASSIGNED = "no_project_assigned"


@dataclass(frozen=True, slots=True)
class Destination:
    """Landing decision returned by ``AccessRouter.route``."""

    kind: DestinationKind
    project_ids: Tuple[str, ...] = ()

    @property
    def project_id(self) -> Optional[str]:
        """The single project of a fast-path destination."""

        if self.kind is DestinationKind.PROJECT_BALANCE:
            return self.project_ids[0]
        return None

    def as_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "project_id": self.project_id,
            "project_ids": list(self.project_ids),
        }


class AccessRouter:
    """Decide which view an identity reaches first."""

    def __init__(
        self,
        store: LedgerStore,
        *,
        admin_role: Optional[str] = None,
        auto_claim: Optional[bool] = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._admin_role = (admin_role or settings.admin_role).strip().lower()
        self._auto_claim = settings.auto_claim_projects if auto_claim is None else auto_claim

    async def route(self, identity: Identity) -> Destination:
        if identity.has_role(self._admin_role):
            LOGGER.info("Routing %s to the administrative project list", identity.email)
            return Destination(DestinationKind.ADMIN_PROJECT_LIST)

        projects = await self._store.find_projects_by_responsible_party(
            identity.email, identity.identity_id
        )
        if self._auto_claim:
            await self._claim_unlinked(projects, identity)

        project_ids = tuple(project.project_id for project in projects)
        if len(project_ids) == 1:
            destination = Destination(DestinationKind.PROJECT_BALANCE, project_ids)
        elif project_ids:
            destination = Destination(DestinationKind.PROJECT_LIST, project_ids)
        else:
            destination = Destination(DestinationKind.NO_PROJECT_ASSIGNED)
        LOGGER.info(
            "Routing %s to %s (%s matching projects)",
            identity.email,
            destination.kind.value,
            len(project_ids),
        )
        return destination

    async def _claim_unlinked(self, projects: Iterable[Project], identity: Identity) -> None:
        for project in projects:
            if project.responsible_identity_id is None:
                await self._store.claim_project(project.project_id, identity.identity_id)
