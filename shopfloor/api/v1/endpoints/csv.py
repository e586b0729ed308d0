# shopfloor/api/v1/endpoints/csv.py

import logging
import math
import uuid
from typing import Any, Dict, Optional

import orjson
from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from fastapi.responses import FileResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from shopfloor.api.dependencies import (
    get_csv_service, get_current_active_user, get_current_admin_user,
    get_exception_service, get_query_service, get_settings
)
from shopfloor.core.config import Settings
from shopfloor.models.audit_log import AUDIT_ACTIONS
from shopfloor.models.user import User
from shopfloor.schemas import DeleteRequest, PartUpdate
from shopfloor.services.csv_service import (
    CsvService, PartNotFoundError, PartValidationError, PROCESSING_FAILED
)
from shopfloor.services.exception_service import (
    EDITED_ROWS_FILENAME, INVALID_ROWS_FILENAME, ExceptionService
)
from shopfloor.services.query_service import QueryService
from shopfloor.utils.csv_utils import cleanup_file, iter_export_csv
from shopfloor.utils.file_validation import validate_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/csv", tags=["csv"])

UTF8_BOM = "\ufeff"
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def orjson_response(data: Any, status_code: int = 200) -> Response:
    return Response(
        content=orjson.dumps(data),
        status_code=status_code,
        media_type="application/json"
    )


def csv_download(content: str, filename: str) -> Response:
    """CSV attachment with a BOM so spreadsheet applications pick up UTF-8"""
    return Response(
        content=UTF8_BOM + content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"', **NO_CACHE_HEADERS}
    )


def parse_row_id(value: Any) -> int:
    """Whole-number ids, given as integers or digit strings. Anything else raises ValueError."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid id: {value}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Invalid id: {value}")
        return int(value)
    return int(str(value).strip())


def page_size(limit: Optional[int], settings: Settings) -> int:
    if limit is None:
        return settings.DEFAULT_PAGE_SIZE
    return min(limit, settings.MAX_PAGE_SIZE)


@router.post("/upload")
async def upload_csv(
        csvFile: Optional[UploadFile] = File(None),
        settings: Settings = Depends(get_settings),
        csv_service: CsvService = Depends(get_csv_service),
        current_user: User = Depends(get_current_active_user)
):
    """Validate an uploaded CSV, store its valid rows and report the rejected ones"""
    if csvFile is None or not csvFile.filename:
        raise HTTPException(status_code=400, detail={"error": "No file uploaded"})

    content = await csvFile.read()
    errors = validate_upload(csvFile.filename, csvFile.content_type, len(content), settings)
    if errors:
        logger.warning(f"Rejected upload {csvFile.filename}: {errors}")
        raise HTTPException(status_code=400, detail={
            "error": "File validation failed",
            "details": errors,
            "code": "FILE_VALIDATION_FAILED",
        })

    upload_path = settings.get_upload_dir / f"{uuid.uuid4().hex}.csv"
    try:
        upload_path.write_bytes(content)
        result = await run_in_threadpool(
            csv_service.process_file,
            upload_path,
            csvFile.filename,
            current_user
        )
    except OSError:
        logger.exception(f"Failed to store upload {csvFile.filename}")
        raise HTTPException(status_code=500, detail={"error": PROCESSING_FAILED})
    finally:
        cleanup_file(upload_path)

    if not result.success:
        return orjson_response(result.to_dict(), status_code=500)

    return orjson_response(result.to_dict())


@router.get("/data")
def get_data(
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        settings: Settings = Depends(get_settings),
        query_service: QueryService = Depends(get_query_service),
        current_user: User = Depends(get_current_active_user)
):
    """
    Get paginated part data with optional search
    """
    try:
        result = query_service.list_parts(search=search, page=page, limit=page_size(limit, settings))
    except Exception:
        logger.exception("Error getting part data")
        raise HTTPException(status_code=500, detail="Failed to retrieve data")

    return orjson_response(result)


@router.get("/data/{row_id}")
def get_record(
        row_id: int,
        csv_service: CsvService = Depends(get_csv_service),
        current_user: User = Depends(get_current_active_user)
):
    record = csv_service.get_part(row_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return orjson_response(record)


@router.put("/data/{row_id}")
def update_record(
        row_id: int,
        payload: PartUpdate,
        csv_service: CsvService = Depends(get_csv_service),
        current_user: User = Depends(get_current_active_user)
):
    """Apply a partial update; the audit trail records the field-level diff"""
    try:
        result = csv_service.update_part(row_id, payload.model_dump(exclude_unset=True), current_user)
    except PartNotFoundError:
        raise HTTPException(status_code=404, detail="Record not found")
    except PartValidationError as e:
        raise HTTPException(status_code=400, detail={"error": "Validation failed", "details": e.errors})
    except Exception:
        logger.exception(f"Error updating record {row_id}")
        raise HTTPException(status_code=500, detail="Failed to update record")

    return orjson_response(result)


@router.delete("/data/clear")
def clear_data(
        csv_service: CsvService = Depends(get_csv_service),
        current_user: User = Depends(get_current_admin_user)
):
    try:
        deleted = csv_service.clear_all(current_user)
    except Exception:
        logger.exception("Error clearing data")
        raise HTTPException(status_code=500, detail="Failed to clear data")

    logger.info(f"User {current_user.email} cleared {deleted} records")
    return orjson_response({"success": True, "deletedCount": deleted})


@router.delete("/data")
def delete_records(
        payload: DeleteRequest,
        csv_service: CsvService = Depends(get_csv_service),
        current_user: User = Depends(get_current_active_user)
):
    if not payload.ids:
        raise HTTPException(status_code=400, detail={
            "error": "IDs array is required and cannot be empty"
        })

    try:
        ids = [parse_row_id(row_id) for row_id in payload.ids]
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail={
            "error": "All IDs must be valid numbers",
            "details": [str(row_id) for row_id in payload.ids],
        })

    try:
        deleted = csv_service.delete_parts(ids, current_user)
    except PartValidationError as e:
        raise HTTPException(status_code=400, detail={"error": "Validation failed", "details": e.errors})
    except Exception:
        logger.exception(f"Error deleting records {ids}")
        raise HTTPException(status_code=500, detail="Failed to delete records")

    return orjson_response({"success": True, "deletedCount": deleted})


@router.get("/export")
def export_data(
        csv_service: CsvService = Depends(get_csv_service),
        current_user: User = Depends(get_current_active_user)
):
    """Stream every stored part as CSV"""
    try:
        records = csv_service.all_parts()
    except Exception:
        logger.exception("Error exporting data")
        raise HTTPException(status_code=500, detail="Failed to export data")

    return StreamingResponse(
        iter_export_csv(records),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="export.csv"'}
    )


@router.get("/error")
def download_error_report(
        settings: Settings = Depends(get_settings),
        current_user: User = Depends(get_current_active_user)
):
    report_path = settings.ERROR_REPORT_PATH
    if not report_path.exists():
        raise HTTPException(status_code=404, detail="Error file not found")

    return FileResponse(
        report_path,
        media_type="text/csv",
        filename=settings.ERROR_REPORT_FILENAME,
        headers=NO_CACHE_HEADERS
    )


@router.get("/error/check")
def check_error_report(
        settings: Settings = Depends(get_settings),
        current_user: User = Depends(get_current_active_user)
):
    if settings.ERROR_REPORT_PATH.exists():
        return {"hasErrorFile": True, "message": "Error file is available for download"}
    return {"hasErrorFile": False, "message": "No error file available"}


@router.get("/audit")
def get_audit_log(
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        action: Optional[str] = None,
        row_id: Optional[int] = Query(None, alias="rowId"),
        settings: Settings = Depends(get_settings),
        query_service: QueryService = Depends(get_query_service),
        current_user: User = Depends(get_current_active_user)
):
    """Audit history; regular users only see entries they caused"""
    if action and action not in AUDIT_ACTIONS:
        raise HTTPException(status_code=400, detail={
            "error": "Invalid action",
            "details": [f"action must be one of {', '.join(AUDIT_ACTIONS)}"],
        })

    limit = page_size(limit, settings)
    try:
        result = query_service.list_audit_entries(
            page=page, limit=limit, action=action, row_id=row_id, acting_user=current_user
        )
    except Exception:
        logger.exception("Error getting audit log")
        raise HTTPException(status_code=500, detail="Failed to retrieve audit log")

    return orjson_response({
        "success": True,
        "data": result["data"],
        "pagination": {
            "total": result["total"],
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(result["total"] / limit),
        },
    })


@router.get("/exceptions/invalid")
def export_invalid_rows(
        exception_service: ExceptionService = Depends(get_exception_service),
        current_user: User = Depends(get_current_active_user)
):
    try:
        content = exception_service.invalid_rows_csv()
    except Exception:
        logger.exception("Error exporting invalid rows")
        raise HTTPException(status_code=500, detail="Failed to export invalid rows")
    return csv_download(content, INVALID_ROWS_FILENAME)


@router.get("/exceptions/edited")
def export_edited_rows(
        exception_service: ExceptionService = Depends(get_exception_service),
        current_user: User = Depends(get_current_active_user)
):
    try:
        content = exception_service.edited_rows_csv()
    except Exception:
        logger.exception("Error exporting edited rows")
        raise HTTPException(status_code=500, detail="Failed to export edited rows")
    return csv_download(content, EDITED_ROWS_FILENAME)


@router.get("/exceptions/invalid/count")
def count_invalid_rows(
        exception_service: ExceptionService = Depends(get_exception_service),
        current_user: User = Depends(get_current_active_user)
) -> Dict[str, Any]:
    return {"success": True, "count": exception_service.invalid_rows_count()}


@router.get("/exceptions/edited/count")
def count_edited_rows(
        exception_service: ExceptionService = Depends(get_exception_service),
        current_user: User = Depends(get_current_active_user)
) -> Dict[str, Any]:
    return {"success": True, "count": exception_service.edited_rows_count()}


@router.post("/exceptions/revalidate")
def revalidate_rows(
        exception_service: ExceptionService = Depends(get_exception_service),
        current_user: User = Depends(get_current_admin_user)
):
    try:
        summary = exception_service.revalidate_all()
    except Exception:
        logger.exception("Error revalidating rows")
        raise HTTPException(status_code=500, detail="Failed to revalidate rows")
    return {"success": True, **summary}


@router.delete("/{row_id}")
def delete_record(
        row_id: int,
        csv_service: CsvService = Depends(get_csv_service),
        current_user: User = Depends(get_current_active_user)
):
    try:
        deleted = csv_service.delete_part(row_id, current_user)
    except Exception:
        logger.exception(f"Error deleting record {row_id}")
        raise HTTPException(status_code=500, detail="Failed to delete record")

    if deleted == 0:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"success": True, "deletedCount": deleted}
