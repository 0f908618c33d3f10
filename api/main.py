from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import List, Optional
import argparse
import datetime as dt
import logging

from stolen_ai.common import config
from stolen_ai.common.schemas import (DeviceReport, ErrorKind, MatchCriteria,
                                      MatchStatus, ReportType, ServiceResult)
from stolen_ai.common.utils import generate_report_id
from stolen_ai.matching_db import MatchingService, build_matching_service

# Logging to console and activity file
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(config.LOG_FILE),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.INVALID_TRANSITION: 400,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.STORE_ERROR: 500,
}


# Request models
class ReportRequest(BaseModel):
    id: Optional[str] = None
    report_type: ReportType
    device_category: str
    device_model: Optional[str] = None
    serial_number: Optional[str] = None
    description: str = ""
    location_lat: float
    location_lng: float
    location_address: str = ""
    incident_date: dt.datetime
    reward_amount: Optional[float] = None
    photos: List[str] = []


class CreateMatchRequest(BaseModel):
    lost_report_id: str
    found_report_id: str
    match_confidence: Optional[float] = None
    match_criteria: Optional[MatchCriteria] = None


class StatusUpdateRequest(BaseModel):
    status: MatchStatus


class MatchActionRequest(BaseModel):
    action: str


def get_service(request: Request) -> MatchingService:
    return request.app.state.matching_service


def _dump(items) -> list:
    return [item.model_dump(mode="json") for item in items]


def _error_response(result: ServiceResult) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_CODES.get(result.error_kind, 500),
        content={"success": False, "error": result.error_message},
    )


@router.get("/")
async def root():
    return {"message": "STOLEN matching API is running"}


@router.post("/api/reports")
async def register_report(request: ReportRequest, service: MatchingService = Depends(get_service)):
    fields = request.model_dump(exclude={"id"})
    try:
        report = DeviceReport(id=request.id or generate_report_id(request.report_type.value), **fields)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    result = await service.register_report(report)
    if result.failed:
        return _error_response(result)

    created = []
    if config.AUTO_MATCH_ON_REGISTER:
        auto = await service.auto_create_matches(report)
        if auto.ok:
            created = _dump(auto.data.created)
        else:
            logger.warning(f"Auto-match after registering {report.id} failed: {auto.error_message}")

    return {"success": True, "data": report.model_dump(mode="json"), "matches": created}


@router.get("/api/reports/{report_id}/suggestions")
async def get_match_suggestions(report_id: str, service: MatchingService = Depends(get_service)):
    # Suggestions fail soft: an empty list is shown whatever went wrong
    result = await service.get_match_suggestions(report_id)
    return {
        "success": result.ok,
        "data": _dump(result.data or []),
        "error": result.error_message,
    }


@router.post("/api/reports/{report_id}/auto-match")
async def auto_match_report(report_id: str,
                            min_confidence: Optional[float] = Query(None, ge=0.0, le=1.0),
                            service: MatchingService = Depends(get_service)):
    loaded = await service.get_report(report_id)
    if loaded.failed:
        return _error_response(loaded)

    result = await service.auto_create_matches(loaded.data, min_confidence=min_confidence)
    if result.failed:
        return _error_response(result)

    summary = result.data
    return {
        "success": True,
        "data": {
            "created": _dump(summary.created),
            "skipped": len(summary.skipped),
            "failed": len(summary.failed),
        },
    }


@router.get("/api/device-matches")
async def list_matches(status: Optional[MatchStatus] = None,
                       limit: int = Query(20, ge=1, le=100),
                       offset: int = Query(0, ge=0),
                       service: MatchingService = Depends(get_service)):
    result = await service.list_matches(status=status, limit=limit, offset=offset)
    if result.failed:
        return _error_response(result)

    return {
        "success": True,
        "data": _dump(result.data),
        "pagination": {
            "limit": limit,
            "offset": offset,
            "hasMore": len(result.data) == limit,
        },
    }


@router.post("/api/device-matches")
async def create_match(request: CreateMatchRequest, service: MatchingService = Depends(get_service)):
    result = await service.create_match(
        request.lost_report_id,
        request.found_report_id,
        match_confidence=request.match_confidence,
        match_criteria=request.match_criteria,
    )
    if result.failed:
        return _error_response(result)
    return {"success": True, "data": result.data.model_dump(mode="json")}


@router.get("/api/device-matches/report/{report_id}")
async def get_matches_for_report(report_id: str, service: MatchingService = Depends(get_service)):
    result = await service.get_matches_for_report(report_id)
    if result.failed:
        return _error_response(result)
    return {"success": True, "data": _dump(result.data)}


@router.put("/api/device-matches/{match_id}")
async def update_match_status(match_id: str, request: StatusUpdateRequest,
                              service: MatchingService = Depends(get_service)):
    result = await service.update_match_status(match_id, request.status)
    if result.failed:
        return _error_response(result)
    return {"success": True, "data": result.data.model_dump(mode="json")}


@router.post("/api/device-matches/{match_id}")
async def apply_match_action(match_id: str, request: MatchActionRequest,
                             service: MatchingService = Depends(get_service)):
    result = await service.apply_match_action(match_id, request.action)
    if result.failed:
        return _error_response(result)
    return {"success": True, "data": result.data.model_dump(mode="json")}


def create_app(service: Optional[MatchingService] = None) -> FastAPI:
    app = FastAPI(title="STOLEN Matching API", version="1.0.0")

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.matching_service = service or build_matching_service()
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='STOLEN Matching API Server')
    parser.add_argument('--port', type=int, default=config.API_PORT, help='Port to run the server on')
    args = parser.parse_args()

    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=args.port)
