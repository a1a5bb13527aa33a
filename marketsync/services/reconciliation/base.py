"""
Shared batch loop for the reconciliation engine.

A reconciler turns an ordered batch of raw records into create, update or
delete decisions against the caller's catalog:

1. every record is validated on its own; a failing record is reported in
   `additionalInfo` with its batch index and processing moves on
2. valid records are applied in payload order
3. a second pass runs once for the whole batch (price list membership)
4. the batch commits, then uploaded media is moved to permanent storage

A unique-key collision aborts the batch: the session is rolled back, pending
media moves are discarded and a ConflictError is raised.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.exceptions import BusinessError, ConflictError
from marketsync.models.integration import Integration
from marketsync.schemas.reconciliation import AdditionalInfo, ReconciliationResult
from marketsync.schemas.settings import IntegrationSettings
from marketsync.services.media_service import MediaService

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"


def field_errors(error: ValidationError) -> Dict[str, List[str]]:
    """Group pydantic errors by dotted field path."""
    errors: Dict[str, List[str]] = {}
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "__root__") or "record"
        errors.setdefault(location, []).append(item.get("msg", "Invalid value"))
    return errors


class BaseReconciler(ABC):
    schema: Type[BaseModel]

    def __init__(
        self,
        db: AsyncSession,
        user_id: int,
        integration: Optional[Integration] = None,
        media: Optional[MediaService] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.integration = integration
        self.settings = IntegrationSettings.from_raw(integration.settings if integration else None)
        self.media = media

    async def reconcile(self, records: Sequence[Any]) -> ReconciliationResult:
        result = ReconciliationResult(all=len(records))

        for index, raw in self.prepare(list(enumerate(records))):
            try:
                payload = self.schema.model_validate(raw)
            except ValidationError as e:
                result.additional_info.append(
                    AdditionalInfo(index=index, field_errors=field_errors(e), original_payload=raw)
                )
                continue

            staged_moves = self.media.pending_moves if self.media else 0
            try:
                outcome = await self.apply(payload)
            except ConflictError:
                await self._abort()
                raise
            except IntegrityError as e:
                await self._abort()
                logger.critical(f"Unique key violation in batch for user {self.user_id}: {e}")
                raise self.conflict_error(payload)
            except BusinessError as e:
                # a rejected record keeps its uploads in temp
                if self.media:
                    self.media.discard_pending(staged_moves)
                result.additional_info.append(
                    AdditionalInfo(index=index, field_errors={"record": [e.user_message]}, original_payload=raw)
                )
                continue

            if outcome == CREATED:
                result.created += 1
            elif outcome == UPDATED:
                result.updated += 1
            elif outcome == DELETED:
                result.deleted += 1

        try:
            await self.finalize()
            await self.db.commit()
        except IntegrityError as e:
            await self._abort()
            logger.critical(f"Unique key violation on commit for user {self.user_id}: {e}")
            raise ConflictError("Some records are not unique")

        if self.media:
            await self.media.apply_pending_moves()

        logger.info(
            f"{type(self).__name__} user {self.user_id}: all={result.all} created={result.created} "
            f"updated={result.updated} deleted={result.deleted} rejected={len(result.additional_info)}"
        )
        return result

    def prepare(self, records: List[Tuple[int, Any]]) -> List[Tuple[int, Any]]:
        """Hook to reshape the (index, record) batch before validation."""
        return records

    @abstractmethod
    async def apply(self, payload: BaseModel) -> Optional[str]:
        """Apply one valid record; return CREATED, UPDATED, DELETED or None."""

    async def finalize(self) -> None:
        """Batch-level second pass, run before commit."""

    def conflict_error(self, payload: BaseModel) -> ConflictError:
        return ConflictError("Record is not unique")

    async def _abort(self) -> None:
        await self.db.rollback()
        if self.media:
            self.media.discard_pending()
