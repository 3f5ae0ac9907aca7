"""
============================================================================
UPTIME ENGINE - HTTP SERVER
============================================================================
Small aiohttp server exposing the passive check endpoints and a health
view of the engine.

    GET  /                      → 200 "OK"            (liveness)
    GET  /health                → 200 JSON            (engine stats)
    ANY  /api/heartbeat/{token} → 200 JSON | 404
    ANY  /api/cronjob/{token}   → 200 JSON | 404      (?status=&duration=)
============================================================================
"""

import json
import time
from typing import Any, Callable, Dict, Optional

from aiohttp import web

from config.constants import CronRunStatus
from config.settings import ServerSettings
from monitoring.passive import PassiveCheckService
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("Server")


class EngineServer:
    """
    aiohttp application wrapper.

    Parameters
    ----------
    settings : ServerSettings
        Bind address and port.
    passive : PassiveCheckService
        Records heartbeats and cron runs.
    stats_provider : callable, optional
        Returns the engine stats shown by /health.
    """

    def __init__(
        self,
        settings: ServerSettings,
        passive: PassiveCheckService,
        stats_provider: Optional[Callable[[], Dict[str, Any]]] = None,
        app_name: str = "Uptime Engine",
        app_version: str = "",
    ):
        self.settings = settings
        self.passive = passive
        self.stats_provider = stats_provider or dict
        self.app_name = app_name
        self.app_version = app_version

        self._app = self.build_app()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = 0.0
        self._request_count: int = 0

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self._handle_root)
        app.router.add_get("/health", self._handle_health)
        app.router.add_route("*", "/api/heartbeat/{token}", self._handle_heartbeat)
        app.router.add_route("*", "/api/cronjob/{token}", self._handle_cronjob)
        return app

    @property
    def app(self) -> web.Application:
        return self._app

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.settings.host, self.settings.port)
        await self._site.start()
        logger.info(f"✓ Server listening on {self.settings.host}:{self.settings.port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ Server stopped")

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_root(self, request: web.Request) -> web.Response:
        """GET / - simple liveness probe."""
        self._request_count += 1
        return web.Response(text="OK", status=200)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health - engine stats as JSON."""
        self._request_count += 1
        uptime_seconds = time.time() - self._start_time if self._start_time else 0

        health = {
            "status": "healthy",
            "app_name": self.app_name,
            "app_version": self.app_version,
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": TimeHelper.seconds_to_human_readable(int(uptime_seconds)),
            "requests_served": self._request_count,
            "timestamp": TimeHelper.get_utc_now().isoformat(),
            "engine": self.stats_provider(),
        }
        return web.json_response(health, status=200, dumps=_dumps)

    async def _handle_heartbeat(self, request: web.Request) -> web.Response:
        self._request_count += 1
        try:
            receipt = await self.passive.record_heartbeat(request.match_info["token"])
        except Exception as e:
            logger.opt(exception=e).error(f"[Server] Heartbeat error: {e}")
            return web.json_response({"success": False, "message": "Server error"}, status=500)

        if receipt is None:
            return web.json_response(
                {"success": False, "error": "Invalid heartbeat token"}, status=404
            )
        return web.json_response({
            "success": True,
            "message": "Heartbeat recorded",
            "monitor": receipt.monitor_name,
        })

    async def _handle_cronjob(self, request: web.Request) -> web.Response:
        self._request_count += 1
        status = request.query.get("status") or CronRunStatus.SUCCESS.value

        duration_ms: Optional[int] = None
        raw_duration = request.query.get("duration")
        if raw_duration:
            try:
                duration_ms = int(raw_duration)
            except ValueError:
                return web.json_response(
                    {"success": False, "error": "duration must be an integer"}, status=400
                )

        try:
            receipt = await self.passive.record_cron_run(
                request.match_info["token"], status, duration_ms
            )
        except Exception as e:
            logger.opt(exception=e).error(f"[Server] Cronjob ping error: {e}")
            return web.json_response({"success": False, "message": "Server error"}, status=500)

        if receipt is None:
            return web.json_response(
                {"success": False, "error": "Invalid cronjob token"}, status=404
            )
        return web.json_response({
            "success": True,
            "message": "Cronjob run recorded",
            "monitor": receipt.monitor_name,
            "nextExpectedRun": (
                receipt.next_expected_run.isoformat() if receipt.next_expected_run else None
            ),
        })


def _dumps(data: Any) -> str:
    return json.dumps(data, default=str)
