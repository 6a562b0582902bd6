"""HTTP handler for Health Auto Export data ingestion via REST API."""

from __future__ import annotations

import asyncio
import hmac
from pathlib import Path

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse
from opentelemetry import trace
from opentelemetry.trace import SpanKind
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import HTTPSettings
from .metrics import HTTP_REQUESTS_TOTAL, METRICS_FAILED
from .models import HealthDataPayload
from .tracing import request_context
from .transcoder import Transcoder

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

DATA_PATH = "/data"
FORBIDDEN_MESSAGE = "missing or invalid Authorization header"


def _log_task_exception(task: asyncio.Task) -> None:
    """Log exceptions from background tasks that would otherwise be silently lost."""
    if not task.cancelled() and task.exception():
        logger.error("background_task_failed", error=str(task.exception()))


class HTTPHandler:
    """Serves ``/data``, the Health Auto Export push endpoint.

    Each request is authenticated against the shared secret, decoded and
    then every metric is handed to the transcoder in order. A failing metric
    does not stop the ones after it; the request answers 500 once all metrics
    have been attempted.
    """

    def __init__(
        self,
        settings: HTTPSettings,
        transcoder: Transcoder,
        payload_dump_path: Path | str | None = None,
    ) -> None:
        self._settings = settings
        self._transcoder = transcoder
        self._payload_dump_path = Path(payload_dump_path) if payload_dump_path else None
        self._app: FastAPI | None = None
        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task | None = None

    def _check_auth(self, request: Request) -> bool:
        """Compare the Authorization header with the shared secret."""
        # Header values arrive latin-1 decoded; encoding back restores the raw bytes
        supplied = request.headers.get("Authorization", "").encode("latin-1")
        return hmac.compare_digest(supplied, self._settings.auth_token.encode("utf-8"))

    def _dump_payload(self, raw_body: bytes) -> None:
        """Keep the most recent payload on disk for troubleshooting."""
        if not self._payload_dump_path:
            return
        try:
            self._payload_dump_path.write_bytes(raw_body)
        except OSError as e:
            logger.error(
                "payload_dump_failed",
                path=str(self._payload_dump_path),
                error=str(e),
            )

    async def _process_metrics(self, payload: HealthDataPayload) -> bool:
        """Transcode all metrics of a payload.

        Returns:
            True if at least one metric failed.
        """
        has_errors = False
        for metric in payload.data.metrics:
            with tracer.start_as_current_span("transcode.metric") as span:
                span.set_attribute("health.metric", metric.name)
                span.set_attribute("health.records", len(metric.data))
                try:
                    await self._transcoder.process(metric)
                except Exception as e:
                    span.record_exception(e)
                    METRICS_FAILED.labels(error_type=type(e).__name__).inc()
                    logger.error(
                        "metric_failed",
                        metric=metric.name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    has_errors = True
        return has_errors

    def _build_app(self) -> FastAPI:
        app = FastAPI(
            title="Health Ingester",
            version=__version__,
            description="Ingestion API for Health Auto Export payloads.",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        def respond(method: str, status_code: int, body: str | None = None) -> Response:
            HTTP_REQUESTS_TOTAL.labels(
                method=method, path=DATA_PATH, status=str(status_code)
            ).inc()
            if body is None:
                return Response(status_code=status_code)
            return PlainTextResponse(body, status_code=status_code)

        @app.exception_handler(StarletteHTTPException)
        async def bare_method_not_allowed(
            request: Request, exc: StarletteHTTPException
        ) -> Response:
            """Answer any non-POST request on /data with an empty 405."""
            if exc.status_code != status.HTTP_405_METHOD_NOT_ALLOWED:
                return await http_exception_handler(request, exc)
            return respond(request.method, status.HTTP_405_METHOD_NOT_ALLOWED)

        @app.post(DATA_PATH)
        async def data(request: Request) -> Response:
            """Handle POST /data -- ingest a Health Auto Export payload."""
            with tracer.start_as_current_span(
                "http.data",
                context=request_context(request.headers),
                kind=SpanKind.SERVER,
            ) as span:
                span.set_attribute("http.method", "POST")
                span.set_attribute("http.route", DATA_PATH)
                client_host = request.client.host if request.client else None

                if not self._check_auth(request):
                    logger.warning(
                        "http_auth_rejected",
                        client_host=client_host,
                        header_present="authorization" in request.headers,
                    )
                    return respond("POST", status.HTTP_403_FORBIDDEN, FORBIDDEN_MESSAGE)

                try:
                    raw_body = await request.body()
                except Exception as e:
                    logger.error("http_body_read_failed", client_host=client_host, error=str(e))
                    return respond("POST", status.HTTP_500_INTERNAL_SERVER_ERROR)

                span.set_attribute("payload.size", len(raw_body))

                try:
                    payload = HealthDataPayload.model_validate_json(raw_body)
                except ValidationError as e:
                    logger.error(
                        "http_payload_parse_error",
                        client_host=client_host,
                        errors=e.error_count(),
                        error=str(e),
                    )
                    return respond("POST", status.HTTP_400_BAD_REQUEST)

                self._dump_payload(raw_body)

                logger.info(
                    "http_payload_received",
                    client_host=client_host,
                    metrics=len(payload.data.metrics),
                    workouts=len(payload.data.workouts),
                )

                if await self._process_metrics(payload):
                    return respond("POST", status.HTTP_500_INTERNAL_SERVER_ERROR)

                return respond("POST", status.HTTP_200_OK)

        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self._build_app()
        config = uvicorn.Config(
            self._app,
            host=self._settings.host,
            port=self._settings.port,
            log_config=None,
        )
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._server.serve())
        self._server_task.add_done_callback(_log_task_exception)
        logger.info(
            "http_server_started",
            host=self._settings.host,
            port=self._settings.port,
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._server:
            self._server.should_exit = True
        if self._server_task:
            await self._server_task
            self._server_task = None
        logger.info("http_server_stopped")

    @property
    def app(self) -> FastAPI:
        """Expose the FastAPI app for testing."""
        if not self._app:
            self._app = self._build_app()
        return self._app
