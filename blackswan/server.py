# blackswan/server.py
"""
Status API
BSO v1

Endpoints:
  GET  /  Service descriptor and endpoint index
  GET  /health  Health summary (200 healthy / 503 unhealthy)
  GET  /status  Health + cached scores + configuration
  GET  /scores  Cached (last confirmed) scores and IPFS references
  POST /update  Run one update cycle now

Every read goes through the orchestrator's snapshot methods, so a request
never sees a half-applied cycle.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from blackswan import SERVICE_NAME, __version__
from blackswan.orchestrator import CycleResult, utc_now
from blackswan.publisher import gateway_url

log = logging.getLogger("blackswan.server")


def _iso(dt: datetime | None):
    if dt is None:
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def create_app(orchestrator, settings, wallet_address: str | None = None, scheduler=None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app):
        orchestrator.mark_running()
        if scheduler is not None:
            scheduler.start()
        log.info(f"{SERVICE_NAME} v{__version__} started")
        yield
        orchestrator.mark_stopping()
        if scheduler is not None:
            await asyncio.to_thread(scheduler.stop)
        orchestrator.mark_stopped()
        log.info("Service stopped")

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    def health_fields():
        status = orchestrator.status_snapshot()
        now = utc_now()
        last_error = None
        if status.last_error is not None:
            last_error = {
                "message": status.last_error["message"],
                "timestamp": _iso(status.last_error["timestamp"]),
            }
        return status, {
            "status": status.phase,
            "healthy": status.is_healthy,
            "uptime": int((now - status.start_time).total_seconds()),
            "startTime": _iso(status.start_time),
            "lastUpdate": _iso(status.last_attempt_time),
            "lastSuccessfulUpdate": _iso(status.last_success_time),
            "updateCount": status.update_count,
            "errorCount": status.error_count,
            "lastError": last_error,
            "service": SERVICE_NAME,
            "version": __version__,
            "timestamp": _iso(now),
        }

    def current_scores():
        cache = orchestrator.cache_snapshot()
        scores = {
            "blackswanScore": cache.black_swan,
            "marketPeakScore": cache.market_peak,
        }
        if orchestrator.publishing:
            scores.update({
                "blackswanIpfs": cache.black_swan_ref,
                "marketPeakIpfs": cache.market_peak_ref,
                "blackswanIpfsUrl": gateway_url(cache.black_swan_ref, settings.ipfs_gateway),
                "marketPeakIpfsUrl": gateway_url(cache.market_peak_ref, settings.ipfs_gateway),
            })
        return scores

    @app.get("/health")
    def health():
        status, body = health_fields()
        return JSONResponse(body, status_code=200 if status.is_healthy else 503)

    @app.get("/status")
    def service_status():
        _, body = health_fields()
        body["currentScores"] = current_scores()
        body["configuration"] = {
            "pollInterval": settings.poll_interval,
            "apiEndpoint": settings.api_endpoint,
            "contractAddress": settings.contract_address,
            "walletAddress": wallet_address or "Not initialized",
            "ipfsEnabled": orchestrator.publishing,
            "dryRun": settings.dry_run,
        }
        return body

    @app.get("/scores")
    def scores():
        status = orchestrator.status_snapshot()
        body = current_scores()
        body.update({
            "lastUpdate": _iso(status.last_attempt_time),
            "lastSuccessfulUpdate": _iso(status.last_success_time),
            "timestamp": _iso(utc_now()),
        })
        return body

    @app.post("/update")
    def manual_update():
        log.info("Manual update triggered via API")
        outcome = orchestrator.run_cycle()
        ts = _iso(outcome.timestamp)
        if outcome.ok:
            message = "Scores updated on-chain" if outcome.result is CycleResult.UPDATED else "No score changes"
            body = {"success": True, "message": message, "result": outcome.result.value, "timestamp": ts}
            if outcome.mode is not None:
                body["mode"] = outcome.mode.value
            if outcome.tx_hash is not None:
                body["txHash"] = outcome.tx_hash
            return body
        code = 409 if outcome.result is CycleResult.BUSY else 500
        return JSONResponse(
            {"success": False, "error": outcome.error, "result": outcome.result.value, "timestamp": ts},
            status_code=code,
        )

    @app.get("/")
    def root():
        status = orchestrator.status_snapshot()
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "status": status.phase,
            "healthy": status.is_healthy,
            "endpoints": {
                "health": "/health",
                "status": "/status",
                "scores": "/scores",
                "update": "POST /update",
            },
            "timestamp": _iso(utc_now()),
        }

    return app
