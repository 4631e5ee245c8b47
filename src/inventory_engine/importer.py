"""Chunked persistence of bulk-import rows."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings
from .database import commit
from .errors import (
    EmptyFile,
    MissingIdentifier,
    PersistenceFailure,
    RowValidationFailure,
)
from .fields import FieldResolver, ResolvedRow
from .formats import detect_format
from .models import InventoryItem, new_item_id, utcnow
from .parsers import iter_records
from .stock import status_for
from .validation import ImportProfile, RowValidator, get_profile

logger = logging.getLogger(__name__)


@dataclass
class ChunkFailure:
    chunk: int
    rows: List[int]
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"chunk": self.chunk, "rows": self.rows, "error": self.error}


@dataclass
class ImportResult:
    total_processed: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    invalid: int = 0
    items: List[InventoryItem] = field(default_factory=list)
    violations: Dict[int, List[str]] = field(default_factory=dict)
    errors: List[ChunkFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def count(self) -> int:
        return self.succeeded


class ChunkedImporter:
    """Resolve, validate and persist rows in fixed-size chunks.

    Each chunk is its own transaction: a failed chunk is rolled back and
    reported while later chunks still run. Cancellation is honoured between
    chunks and never undoes chunks that were already committed.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        *,
        profile: ImportProfile,
        resolver: Optional[FieldResolver] = None,
        chunk_size: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        should_stop: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> None:
        self.session = session
        self.settings = settings
        self.profile = profile
        self.resolver = resolver or FieldResolver()
        self.chunk_size = chunk_size or settings.import_chunk_size
        self.cancel_event = cancel_event
        self.should_stop = should_stop

    def build_item(self, row: ResolvedRow) -> InventoryItem:
        """Turn a validated row into a new item.

        ``FieldResolver`` always synthesizes a SKU and a name, so
        ``MissingIdentifier`` only fires for rows produced by a custom resolver
        that leaves either blank. Such rows are dropped and counted, not written.
        """
        fields = row.fields
        sku = str(fields.get("sku") or "").strip()
        name = str(fields.get("name") or "").strip()
        if not sku or not name:
            raise MissingIdentifier(row.source_index)
        now = utcnow()
        status = status_for(
            fields["current_stock"],
            reorder_point=fields["reorder_point"],
            minimum_stock=fields["minimum_stock"],
            default_threshold=self.settings.low_stock_threshold,
            discontinued=fields["discontinued"],
        )
        return InventoryItem(
            id=new_item_id(),
            sku=sku,
            name=name,
            description=fields["description"],
            category=fields["category"],
            unit=fields["unit"],
            bin_location=fields["bin_location"],
            warehouse=fields["warehouse"],
            supplier=fields["supplier"],
            batch_number=fields["batch_number"],
            notes=fields["notes"],
            gl_code=fields["gl_code"],
            product_code=fields["product_code"],
            vendor_code=fields["vendor_code"],
            current_stock=fields["current_stock"],
            minimum_stock=fields["minimum_stock"],
            reorder_point=fields["reorder_point"],
            cost=fields["cost"],
            lead_time=fields["lead_time"],
            discontinued=fields["discontinued"],
            status=status.value,
            version=1,
            created_at=now,
            last_updated=now,
        )

    async def _stop_requested(self) -> bool:
        if self.cancel_event is not None and self.cancel_event.is_set():
            return True
        if self.should_stop is not None:
            return await self.should_stop()
        return False

    async def _persist_chunk(
        self, chunk_number: int, chunk: List[ResolvedRow], result: ImportResult
    ) -> None:
        items: List[InventoryItem] = []
        rows: List[int] = []
        for row in chunk:
            try:
                items.append(self.build_item(row))
            except MissingIdentifier as exc:
                logger.warning("Dropping row %s: %s", exc.source_index, exc.message)
                result.dropped += 1
                continue
            rows.append(row.source_index)
        if not items:
            return

        self.session.add_all(items)
        try:
            await commit(self.session)
        except PersistenceFailure as exc:
            logger.exception("Chunk %s (%s rows) failed to persist", chunk_number, len(items))
            result.failed += len(items)
            result.errors.append(
                ChunkFailure(chunk=chunk_number, rows=rows, error=str(exc.details or exc.message))
            )
            self.session.expunge_all()
            return

        result.succeeded += len(items)
        room = self.settings.import_sample_limit - len(result.items)
        if room > 0:
            result.items.extend(items[:room])
        self.session.expunge_all()
        logger.debug("Chunk %s committed %s items", chunk_number, len(items))

    async def run(self, records: Iterable[Mapping[str, Any]]) -> ImportResult:
        result = ImportResult()
        validator = RowValidator(self.profile)
        chunk: List[ResolvedRow] = []
        chunk_number = 0

        for source_index, record in enumerate(records, start=1):
            result.total_processed += 1
            row = self.resolver.resolve(record, source_index)
            if validator.check(row):
                result.invalid += 1
                continue
            chunk.append(row)
            if len(chunk) >= self.chunk_size:
                chunk_number += 1
                await self._persist_chunk(chunk_number, chunk, result)
                chunk = []
                if await self._stop_requested():
                    result.cancelled = True
                    logger.info("Import cancelled after chunk %s", chunk_number)
                    break

        if chunk and not result.cancelled:
            chunk_number += 1
            await self._persist_chunk(chunk_number, chunk, result)

        result.violations = validator.violations
        return result


async def import_upload(
    session: AsyncSession,
    content: bytes,
    *,
    content_type: Optional[str],
    filename: Optional[str],
    settings: Settings,
    profile: Optional[str] = None,
    cancel_event: Optional[asyncio.Event] = None,
    should_stop: Optional[Callable[[], Awaitable[bool]]] = None,
) -> ImportResult:
    """Run the full upload pipeline: detect, parse, resolve, validate, persist."""

    import_profile = get_profile(profile)
    detected = detect_format(content, content_type, filename)
    logger.info(
        "Importing %s (%s bytes) as %s using profile %s",
        filename or "upload",
        len(content),
        detected.workbook or detected.kind,
        import_profile.name,
    )
    importer = ChunkedImporter(
        session,
        settings,
        profile=import_profile,
        cancel_event=cancel_event,
        should_stop=should_stop,
    )
    result = await importer.run(iter_records(content, detected))
    logger.info(
        "Import finished: processed=%s succeeded=%s failed=%s invalid=%s dropped=%s",
        result.total_processed,
        result.succeeded,
        result.failed,
        result.invalid,
        result.dropped,
    )

    if result.total_processed == 0:
        raise EmptyFile("No data rows found")
    if result.succeeded == 0 and result.failed == 0 and result.invalid:
        raise RowValidationFailure(result.violations)
    if result.succeeded == 0 and result.failed:
        raise PersistenceFailure(
            "Failed to import inventory",
            details=[failure.to_dict() for failure in result.errors],
        )
    return result


__all__ = ["ChunkFailure", "ChunkedImporter", "ImportResult", "import_upload"]
