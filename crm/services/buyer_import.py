"""Persist the valid rows of a parsed CSV import."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.config import settings
from crm.core.exceptions import ImportLimitExceededError
from crm.core.logging import get_structlog_logger
from crm.models.buyer import Buyer
from crm.schemas.buyer import BuyerRecord
from crm.schemas.csv_import import ImportOutcome, ImportRecordError, ImportResponse
from crm.services.buyers import create_buyer
from crm.services.csv_import import FIRST_DATA_ROW

logger = get_structlog_logger(__name__)

BuyerCreator = Callable[[AsyncSession, BuyerRecord, str], Awaitable[Buyer]]


async def _create_in_batch(session: AsyncSession, record: BuyerRecord, owner_id: str) -> Buyer:
    return await create_buyer(session, record, owner_id, commit=False)


@dataclass
class ImportReport:
    outcome: ImportOutcome
    imported: List[Buyer] = field(default_factory=list)
    import_errors: List[ImportRecordError] = field(default_factory=list)

    def to_response(self) -> ImportResponse:
        return ImportResponse(
            success=True,
            total_rows=self.outcome.total_data_rows,
            valid_rows=len(self.outcome.valid_rows),
            imported_count=len(self.imported),
            validation_errors=self.outcome.errors,
            import_errors=self.import_errors,
        )


def source_row_numbers(outcome: ImportOutcome) -> List[int]:
    """File row of each valid record, positional when the outcome carries none."""
    if len(outcome.valid_row_numbers) == len(outcome.valid_rows):
        return list(outcome.valid_row_numbers)
    return list(range(FIRST_DATA_ROW, FIRST_DATA_ROW + len(outcome.valid_rows)))


def enforce_import_cap(outcome: ImportOutcome, max_rows: Optional[int] = None) -> None:
    """Reject the whole batch when it carries more valid rows than allowed."""
    limit = settings.csv_import_max_rows if max_rows is None else max_rows
    if len(outcome.valid_rows) > limit:
        logger.warning(
            "buyer_import.cap_exceeded",
            valid_rows=len(outcome.valid_rows),
            limit=limit,
        )
        raise ImportLimitExceededError(limit=limit, valid_rows=len(outcome.valid_rows))


async def import_buyers(
    session: AsyncSession,
    outcome: ImportOutcome,
    owner_id: str,
    *,
    max_rows: Optional[int] = None,
    creator: BuyerCreator = _create_in_batch,
) -> ImportReport:
    """
    Create one buyer per valid row.

    Each create runs in its own savepoint: a failing record is rolled back
    and reported, and the loop moves on to the next one.
    """
    enforce_import_cap(outcome, max_rows)
    report = ImportReport(outcome=outcome)

    for record, row_number in zip(outcome.valid_rows, source_row_numbers(outcome)):
        try:
            async with session.begin_nested():
                buyer = await creator(session, record, owner_id)
        except Exception as e:
            logger.exception("buyer_import.record_failed", row=row_number, error=str(e))
            report.import_errors.append(
                ImportRecordError(
                    row=row_number,
                    message=str(e) or "Failed to create buyer",
                    data=record.as_row(),
                )
            )
            continue
        report.imported.append(buyer)

    await session.commit()

    logger.info(
        "buyer_import.completed",
        owner_id=owner_id,
        total_rows=outcome.total_data_rows,
        valid_rows=len(outcome.valid_rows),
        imported=len(report.imported),
        import_errors=len(report.import_errors),
        validation_errors=len(outcome.errors),
    )
    return report
