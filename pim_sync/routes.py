#=======================================================================================
# pim_sync/routes.py
# FastAPI routes for PIM → Shopify imports, style listing and the listing cache.
#
# All endpoints live under /api/* and require HTTP Basic (admin).
# Imports run as background jobs by default; pass "blocking": true to wait.
#=======================================================================================

import json
import secrets
import asyncio
import uuid
import time
from typing import Any, Dict, List
import logging

from fastapi import APIRouter, Query, Request, Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.responses import JSONResponse

from pim_sync.config import settings
from pim_sync.models.audit_log import add_audit_entry, get_audit_log
from pim_sync.pim.style_cache_store import cache_info, clear_cache
from pim_sync.sync.image_sync import import_images
from pim_sync.sync.product_sync import fetch_published_styles, import_products

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["PIM Sync API"])

# ---------------------------
# HTTP Basic
# ---------------------------
security = HTTPBasic()

def verify_admin(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    ok_user = secrets.compare_digest(credentials.username or "", settings.ADMIN_USER or "")
    ok_pass = secrets.compare_digest(credentials.password or "", settings.ADMIN_PASS or "")
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username

# ---------------------------
# Helpers
# ---------------------------
async def _safe_json(req: Request) -> Dict[str, Any]:
    """Best-effort JSON body parsing with fallbacks."""
    try:
        body = await req.json()
    except ValueError:
        raw = (await req.body()).decode("utf-8", "ignore")
        try:
            body = json.loads(raw) if raw.strip() else {}
        except ValueError:
            body = {}
    return body if isinstance(body, dict) else {}

def _normalize_codes(payload: Dict[str, Any], *keys: str) -> List[str]:
    """Accepts a list or a CSV / newline separated string under any of the keys."""
    raw = None
    for k in keys:
        if payload.get(k) is not None:
            raw = payload.get(k)
            break
    if isinstance(raw, list):
        return [str(s).strip() for s in raw if str(s).strip()]
    if isinstance(raw, str):
        return [s.strip() for s in raw.replace("\n", ",").replace(";", ",").split(",") if s.strip()]
    return []

def _get_bool(payload: Dict[str, Any], *keys: str, default: bool = False) -> bool:
    for k in keys:
        if k in payload:
            return bool(payload.get(k))
    return default

def _now_ts() -> int:
    return int(time.time())

# ---------------------------
# Background job store (in-memory)
# ---------------------------
_JOBS: Dict[str, Dict[str, Any]] = {}
_JOBS_LOCK = asyncio.Lock()
_JOBS_TTL_SECONDS = 60 * 60  # keep finished jobs 1 hour

async def _cleanup_jobs_now():
    """Remove finished jobs older than TTL."""
    cutoff = _now_ts() - _JOBS_TTL_SECONDS
    async with _JOBS_LOCK:
        to_del = [jid for jid, rec in _JOBS.items()
                  if rec.get("finished") and rec.get("finished") < cutoff]
        for jid in to_del:
            _JOBS.pop(jid, None)

async def _execute(kind: str, params: Dict[str, Any]) -> Dict[str, Any]:
    if kind == "images":
        return await import_images(params["style_codes"], image_names=params.get("image_names"))
    return await import_products(
        params["style_codes"],
        language=params.get("language"),
        update_existing=params.get("update_existing", True),
    )

async def _run_job(job_id: str, kind: str, params: Dict[str, Any], user: str):
    """Background runner for one import run."""
    logger.info(f"[JOB][RUN] Job {job_id} starting ({kind}, {len(params['style_codes'])} styles)")
    async with _JOBS_LOCK:
        rec = _JOBS.get(job_id) or {}
        rec.update({"status": "running", "started": rec.get("started") or _now_ts()})
        _JOBS[job_id] = rec

    try:
        result = await _execute(kind, params)
        async with _JOBS_LOCK:
            _JOBS[job_id].update({"status": "done", "finished": _now_ts(), "result": result})
        add_audit_entry(f"import_{kind}", user, f"job {job_id} done", errors=len(result.get("errors") or []))
        logger.info(f"[JOB][COMPLETE] Job {job_id} finished")
    except Exception as e:
        async with _JOBS_LOCK:
            _JOBS[job_id].update({"status": "error", "finished": _now_ts(), "error": str(e)})
        add_audit_entry(f"import_{kind}", user, f"job {job_id} failed: {e}")
        logger.error(f"[JOB][ERROR] Job {job_id} failed: {e}")

    await _cleanup_jobs_now()

async def _start(kind: str, params: Dict[str, Any], blocking: bool, user: str) -> JSONResponse:
    if blocking:
        logger.info(f"[JOB][SYNC] Blocking {kind} import for {params['style_codes']}")
        result = await _execute(kind, params)
        add_audit_entry(f"import_{kind}", user, f"{len(params['style_codes'])} styles (blocking)",
                        errors=len(result.get("errors") or []))
        result.setdefault("request", {**params, "blocking": True})
        return JSONResponse(content=result)

    job_id = uuid.uuid4().hex
    async with _JOBS_LOCK:
        _JOBS[job_id] = {
            "id": job_id,
            "kind": kind,
            "status": "queued",
            "started": None,
            "finished": None,
            "request": params,
        }
    logger.info(f"[JOB][REGISTER] {kind} job {job_id} queued")
    asyncio.create_task(_run_job(job_id, kind, params, user))
    return JSONResponse(
        status_code=202,
        content={"job_id": job_id, "status": "queued"},
        headers={"Location": f"/api/jobs/{job_id}"},
    )

# ----------------------------------------------------------------------
# Style listing + cache
# ----------------------------------------------------------------------

@router.get("/styles")
async def api_styles(
    language: str | None = Query(default=None),
    force_refresh: bool = Query(default=False),
    user: str = Depends(verify_admin),
):
    """Published PIM styles, served from the persisted cache while fresh."""
    return JSONResponse(content=await fetch_published_styles(language=language, force_refresh=force_refresh))

@router.get("/cache/info", dependencies=[Depends(verify_admin)])
async def api_cache_info():
    return JSONResponse(content=await cache_info(settings.SHOPIFY_SHOP or "default"))

@router.post("/cache/clear")
async def api_cache_clear(user: str = Depends(verify_admin)):
    removed = await clear_cache(settings.SHOPIFY_SHOP or "default")
    add_audit_entry("cache_clear", user, f"{removed} rows removed")
    return JSONResponse(content={"ok": True, "removed": removed})

# ----------------------------------------------------------------------
# Imports
# ----------------------------------------------------------------------

@router.post("/import/products")
async def api_import_products(request: Request, user: str = Depends(verify_admin)):
    """
    Import styles as products.

    Body:
      {
        "styleCodes" | "style_codes": [..] | "CSV",
        "language": "EN",
        "update_existing" | "updateExisting": bool (default True),
        "blocking": bool (default False)
      }
    """
    payload = await _safe_json(request)
    codes = _normalize_codes(payload, "styleCodes", "style_codes")
    if not codes:
        raise HTTPException(status_code=400, detail="Style codes are required")
    params = {
        "style_codes": codes,
        "language": payload.get("language"),
        "update_existing": _get_bool(payload, "update_existing", "updateExisting", default=True),
    }
    return await _start("products", params, _get_bool(payload, "blocking", default=False), user)

@router.post("/import/images")
async def api_import_images(request: Request, user: str = Depends(verify_admin)):
    """
    Import PIM images for styles already in the catalog.

    Body: { "styleCodes": [..], "imageNames": [..] (optional FName filter), "blocking": bool }
    """
    payload = await _safe_json(request)
    codes = _normalize_codes(payload, "styleCodes", "style_codes")
    if not codes:
        raise HTTPException(status_code=400, detail="Style codes are required")
    params = {
        "style_codes": codes,
        "image_names": _normalize_codes(payload, "imageNames", "image_names") or None,
    }
    return await _start("images", params, _get_bool(payload, "blocking", default=False), user)

# ----------------------------------------------------------------------
# Jobs + audit
# ----------------------------------------------------------------------

@router.get("/jobs", dependencies=[Depends(verify_admin)])
async def api_jobs():
    async with _JOBS_LOCK:
        jobs = list(_JOBS.values())
    jobs.sort(key=lambda j: j.get("started") or 0, reverse=True)
    return JSONResponse(content={"jobs": jobs})

@router.get("/jobs/{job_id}", dependencies=[Depends(verify_admin)])
async def api_job_status(job_id: str):
    """Poll a background import job."""
    async with _JOBS_LOCK:
        rec = _JOBS.get(job_id)
    if not rec:
        raise HTTPException(status_code=404, detail="job not found")
    return JSONResponse(content=rec)

@router.get("/audit", dependencies=[Depends(verify_admin)])
async def api_audit(limit: int = Query(default=100, ge=1, le=500)):
    return JSONResponse(content={"entries": get_audit_log(limit)})
