"""Ownership guard — only the owner of a resource may mutate it.

Applied before update, delete and publish-toggle. Never applied to
reads. Pure: the caller has already loaded both the subject and the
resource.
"""

import uuid
from typing import Protocol

import structlog

from vidstream.errors import PermissionDenied

logger = structlog.get_logger()


class Subject(Protocol):
    id: uuid.UUID


class OwnedResource(Protocol):
    id: uuid.UUID
    owner_id: uuid.UUID


class OwnershipGuard:
    """Authorizes mutations of owned resources."""

    def authorize_mutation(
        self,
        subject: Subject,
        resource: OwnedResource,
        message: str | None = None,
    ) -> None:
        """Raise PermissionDenied unless `subject` owns `resource`."""
        if resource.owner_id != subject.id:
            logger.info(
                "ownership.denied",
                account_id=str(subject.id),
                resource_id=str(resource.id),
            )
            raise PermissionDenied(message)
