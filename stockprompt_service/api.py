"""
FastAPI layer exposing the batch pipeline.

Endpoints:
 - GET /health
 - GET|PUT /config
 - POST /batch, POST /batch/urls, GET /batch, DELETE /batch, PUT /batch/active/{unit_id}
 - GET /batch/export.csv
 - GET|PATCH /units/{unit_id}, keyword, refine, point-tag, preview, SEO and export routes
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import requests
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, HttpUrl

from . import config, exporter
from .errors import (
    GenerationError,
    PreviewError,
    RefinementError,
    RefinementInProgressError,
    UnitNotFoundError,
    UnitStateError,
)
from .models import Asset, GenerationConfig, KeywordDensity, Metadata, SeoVariant, SeoVariants, TargetModel, Unit
from .pipeline import Admission, BatchPipeline
from .preprocessing import guess_media_type

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

router = APIRouter()


class UnitView(BaseModel):
    id: str
    filename: str
    media_type: str
    status: str
    result: Optional[Metadata] = None
    error_message: Optional[str] = None

    @classmethod
    def from_unit(cls, unit: Unit) -> "UnitView":
        return cls(
            id=unit.id,
            filename=unit.asset.filename,
            media_type=unit.asset.media_type,
            status=unit.status.value,
            result=unit.result,
            error_message=unit.error_message,
        )


class BatchView(BaseModel):
    units: List[UnitView]
    active_unit_id: Optional[str]
    is_processing: bool
    is_refining: bool
    version: int


class AdmissionResponse(BaseModel):
    unit_ids: List[str]
    skipped: List[str]
    skip_notice: Optional[str] = None


class UrlBatchRequest(BaseModel):
    urls: List[HttpUrl]


class ConfigUpdate(BaseModel):
    target_model: Optional[TargetModel] = None
    aspect_ratio: Optional[str] = None
    include_technical: Optional[bool] = None
    keyword_density: Optional[KeywordDensity] = None


class FieldEditRequest(BaseModel):
    field: str
    value: str


class KeywordRequest(BaseModel):
    keyword: str


class SortRequest(BaseModel):
    mode: str


class RefineRequest(BaseModel):
    instruction: str
    aspectRatio: Optional[str] = None


class PointRequest(BaseModel):
    x: float
    y: float


class PreviewRequest(BaseModel):
    aspectRatio: Optional[str] = None


class PreviewResponse(BaseModel):
    dataUrl: Optional[str] = None


class ChangedResponse(BaseModel):
    changed: bool
    unit: UnitView


class KeywordsResponse(BaseModel):
    keywords: List[str]


def get_pipeline(request: Request) -> BatchPipeline:
    return request.app.state.pipeline


def _unit_view(pipeline: BatchPipeline, unit_id: str) -> UnitView:
    unit = pipeline.state.get_unit(unit_id)
    if unit is None:
        raise UnitNotFoundError(unit_id)
    return UnitView.from_unit(unit)


def _completed_metadata(pipeline: BatchPipeline, unit_id: str) -> Metadata:
    unit = pipeline.state.get_unit(unit_id)
    if unit is None:
        raise UnitNotFoundError(unit_id)
    if unit.result is None:
        raise UnitStateError(f"Unit {unit_id} has no completed result")
    return unit.result


def _admission_response(admission: Admission) -> AdmissionResponse:
    return AdmissionResponse(
        unit_ids=admission.unit_ids,
        skipped=admission.skipped,
        skip_notice=admission.skip_notice,
    )


def _resolve_media_type(declared: Optional[str], filename: str) -> str:
    media_type = (declared or "").split(";")[0].strip().lower()
    if not media_type or media_type == "application/octet-stream":
        return guess_media_type(filename)
    return media_type


def _download_file(url: str) -> Tuple[bytes, str, str]:
    resp = requests.get(url, timeout=(5, settings.download_timeout_seconds))
    resp.raise_for_status()
    filename = PurePosixPath(urlparse(url).path).name or "download"
    return resp.content, filename, _resolve_media_type(resp.headers.get("Content-Type"), filename)


def _attachment(content: str, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config", response_model=GenerationConfig)
def get_config(pipeline: BatchPipeline = Depends(get_pipeline)):
    return pipeline.config_store.get()


@router.put("/config", response_model=GenerationConfig)
def update_config(body: ConfigUpdate, pipeline: BatchPipeline = Depends(get_pipeline)):
    changes = body.model_dump(exclude_none=True)
    try:
        return pipeline.config_store.update(**changes)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve


@router.post("/batch", response_model=AdmissionResponse)
def upload_batch(files: List[UploadFile] = File(...), pipeline: BatchPipeline = Depends(get_pipeline)):
    assets: List[Asset] = []
    for upload in files:
        data = upload.file.read()
        if len(data) > settings.max_upload_bytes:
            raise HTTPException(status_code=413, detail=f"{upload.filename} exceeds the upload size limit")
        filename = upload.filename or "upload"
        media_type = _resolve_media_type(upload.content_type, filename)
        assets.append(Asset(filename=filename, media_type=media_type, data=data))

    return _admission_response(pipeline.admit_and_run(assets))


@router.post("/batch/urls", response_model=AdmissionResponse)
def upload_batch_from_urls(body: UrlBatchRequest, pipeline: BatchPipeline = Depends(get_pipeline)):
    assets: List[Asset] = []
    for url in body.urls:
        try:
            data, filename, media_type = _download_file(str(url))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to download file: %s", exc)
            raise HTTPException(status_code=400, detail=f"Could not download {url}") from exc
        assets.append(Asset(filename=filename, media_type=media_type, data=data))

    return _admission_response(pipeline.admit_and_run(assets))


@router.get("/batch", response_model=BatchView)
def get_batch(pipeline: BatchPipeline = Depends(get_pipeline)):
    snapshot = pipeline.state.snapshot()
    return BatchView(
        units=[UnitView.from_unit(u) for u in snapshot.units],
        active_unit_id=snapshot.active_unit_id,
        is_processing=snapshot.is_processing,
        is_refining=pipeline.refiner.is_refining,
        version=snapshot.version,
    )


@router.delete("/batch")
def clear_batch(pipeline: BatchPipeline = Depends(get_pipeline)):
    pipeline.clear()
    return {"status": "cleared"}


@router.put("/batch/active/{unit_id}", response_model=UnitView)
def select_unit(unit_id: str, pipeline: BatchPipeline = Depends(get_pipeline)):
    view = _unit_view(pipeline, unit_id)
    pipeline.state.select_unit(unit_id)
    return view


@router.get("/batch/export.csv")
def export_batch_csv(pipeline: BatchPipeline = Depends(get_pipeline)):
    content = exporter.export_csv(pipeline.state.units)
    return _attachment(content, "text/csv; charset=utf-8", exporter.export_filename("csv"))


@router.get("/units/{unit_id}", response_model=UnitView)
def get_unit(unit_id: str, pipeline: BatchPipeline = Depends(get_pipeline)):
    return _unit_view(pipeline, unit_id)


@router.patch("/units/{unit_id}", response_model=UnitView)
def edit_unit(unit_id: str, body: FieldEditRequest, pipeline: BatchPipeline = Depends(get_pipeline)):
    try:
        pipeline.edit_field(unit_id, body.field, body.value)
    except (ValueError, TypeError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _unit_view(pipeline, unit_id)


@router.post("/units/{unit_id}/keywords", response_model=ChangedResponse)
def add_keyword(unit_id: str, body: KeywordRequest, pipeline: BatchPipeline = Depends(get_pipeline)):
    changed = pipeline.add_keyword(unit_id, body.keyword)
    return ChangedResponse(changed=changed, unit=_unit_view(pipeline, unit_id))


@router.delete("/units/{unit_id}/keywords/{index}", response_model=ChangedResponse)
def remove_keyword(unit_id: str, index: int, pipeline: BatchPipeline = Depends(get_pipeline)):
    changed = pipeline.remove_keyword(unit_id, index)
    return ChangedResponse(changed=changed, unit=_unit_view(pipeline, unit_id))


@router.post("/units/{unit_id}/keywords/sort", response_model=KeywordsResponse)
def sort_keywords(unit_id: str, body: SortRequest, pipeline: BatchPipeline = Depends(get_pipeline)):
    try:
        return KeywordsResponse(keywords=pipeline.sort_keywords(unit_id, body.mode))
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve


@router.post("/units/{unit_id}/refine", response_model=UnitView)
def refine_unit(unit_id: str, body: RefineRequest, pipeline: BatchPipeline = Depends(get_pipeline)):
    aspect_ratio = body.aspectRatio or pipeline.config_store.get().aspect_ratio
    try:
        pipeline.refine(unit_id, body.instruction, aspect_ratio)
    except RefinementError as exc:
        raise HTTPException(status_code=502, detail=f"Refinement failed: {exc}") from exc
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve
    return _unit_view(pipeline, unit_id)


@router.post("/units/{unit_id}/point-tags", response_model=KeywordsResponse)
def point_tags(unit_id: str, body: PointRequest, pipeline: BatchPipeline = Depends(get_pipeline)):
    try:
        return KeywordsResponse(keywords=pipeline.tag_point(unit_id, body.x, body.y))
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve


@router.post("/units/{unit_id}/preview", response_model=PreviewResponse)
def preview(unit_id: str, body: PreviewRequest, pipeline: BatchPipeline = Depends(get_pipeline)):
    try:
        image = pipeline.render_preview(unit_id, body.aspectRatio)
    except PreviewError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return PreviewResponse(dataUrl=image.as_data_url() if image else None)


@router.post("/units/{unit_id}/seo-variants", response_model=SeoVariants)
def seo_variants(unit_id: str, pipeline: BatchPipeline = Depends(get_pipeline)):
    try:
        return pipeline.seo_variants(unit_id)
    except GenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post("/units/{unit_id}/seo-variants/apply", response_model=UnitView)
def apply_seo_variant(unit_id: str, body: SeoVariant, pipeline: BatchPipeline = Depends(get_pipeline)):
    pipeline.apply_seo_variant(unit_id, body)
    return _unit_view(pipeline, unit_id)


@router.get("/units/{unit_id}/export.json")
def export_unit_json(unit_id: str, pipeline: BatchPipeline = Depends(get_pipeline)):
    metadata = _completed_metadata(pipeline, unit_id)
    return _attachment(exporter.export_json(metadata), "application/json", exporter.export_filename("json"))


@router.get("/units/{unit_id}/export.txt")
def export_unit_text(unit_id: str, pipeline: BatchPipeline = Depends(get_pipeline)):
    metadata = _completed_metadata(pipeline, unit_id)
    return _attachment(exporter.export_text(metadata), "text/plain; charset=utf-8", exporter.export_filename("txt"))


def _not_found(request: Request, exc: UnitNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def _conflict(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def create_app(pipeline: Optional[BatchPipeline] = None) -> FastAPI:
    app = FastAPI(title="StockPrompt Batch Metadata Service", version="0.1.0")
    app.state.pipeline = pipeline or BatchPipeline(settings=settings)
    app.include_router(router)
    app.add_exception_handler(UnitNotFoundError, _not_found)
    app.add_exception_handler(UnitStateError, _conflict)
    app.add_exception_handler(RefinementInProgressError, _conflict)
    return app


app = create_app()
