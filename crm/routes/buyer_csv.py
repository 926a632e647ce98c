from __future__ import annotations

from pathlib import PurePath

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.config import settings
from crm.core.exceptions import BusinessRuleError
from crm.core.logging import get_structlog_logger
from crm.db.session import get_session
from crm.middleware.rate_limiter import api_rate_limit, csv_import_rate_limit
from crm.routes.buyers import get_buyer_filter
from crm.schemas.buyer import BuyerFilter
from crm.schemas.csv_import import ImportResponse
from crm.services.auth import get_current_user_id
from crm.services.buyer_import import import_buyers
from crm.services.buyers import list_all_buyers
from crm.services.csv_export import CSV_CONTENT_TYPE, CSV_SAMPLE_DATA, export_filename, generate_csv_content
from crm.services.csv_import import parse_csv_text

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/buyers", tags=["buyers-csv"])


def _csv_attachment(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _read_csv_upload(file: UploadFile) -> str:
    suffix = PurePath(file.filename or "").suffix.lower()
    if file.content_type != CSV_CONTENT_TYPE and suffix not in settings.file_types():
        raise BusinessRuleError(
            message="File must be a CSV",
            code="invalid_file_type",
            details={"filename": file.filename, "content_type": file.content_type},
        )

    content = await file.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise BusinessRuleError(
            message=f"File exceeds the {settings.max_upload_size_mb} MB upload limit",
            code="file_too_large",
        )

    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        logger.warning("buyer_import.decode_error", filename=file.filename, error=str(e))
        raise BusinessRuleError(
            message="File must be UTF-8 encoded text",
            code="invalid_encoding",
        ) from e


@router.post(
    "/import",
    response_model=ImportResponse,
    dependencies=[Depends(csv_import_rate_limit)],
)
async def import_buyers_csv(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> ImportResponse:
    """Validate every row of an uploaded CSV and create the valid ones."""
    text = await _read_csv_upload(file)
    outcome = parse_csv_text(text)
    report = await import_buyers(session, outcome, user_id)
    return report.to_response()


@router.get("/import/template", dependencies=[Depends(api_rate_limit)])
async def download_import_template(
    user_id: str = Depends(get_current_user_id),
) -> Response:
    return _csv_attachment(CSV_SAMPLE_DATA, "buyers-import-template.csv")


@router.get("/export", dependencies=[Depends(api_rate_limit)])
async def export_buyers_csv(
    filters: BuyerFilter = Depends(get_buyer_filter),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> Response:
    buyers = await list_all_buyers(session, filters, settings.csv_export_max_rows)
    logger.info("buyer_export.generated", rows=len(buyers), user_id=user_id)
    return _csv_attachment(
        generate_csv_content(buyer.as_row() for buyer in buyers),
        export_filename(),
    )
