"""
FastAPI Service Bus
-------------------
HTTP surface over a ToolRegistry, for agent loops running out of process.

Errors are data here too: a failed or unknown tool call is a 200 carrying
a failure body. HTTP errors are reserved for malformed requests.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from core.cancellation import CancellationToken
from tools.registry import DECLARATION_STYLES, ToolRegistry


VERSION = "0.1.0"


# Request/Response Models

class InvokeRequest(BaseModel):
    """One tool call."""
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")
    timeout_seconds: Optional[float] = Field(
        None, gt=0, description="Cancel the call if it runs longer than this"
    )


class ErrorInfo(BaseModel):
    """Failure details of a tool call."""
    kind: str
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)
    recoverable: bool


class InvokeResponse(BaseModel):
    """Outcome of a tool call: either `result` or `error` is set."""
    tool: str
    status: str
    call_id: Optional[str] = None
    execution_time_ms: float = 0.0
    result: Optional[Any] = None
    error: Optional[ErrorInfo] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str = VERSION
    root: str
    tools: int
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


# Service Bus

class ServiceBus:
    """
    HTTP front end for one registry.

    Provides:
    - Health check
    - Tool declarations for the model-calling API
    - Tool invocation
    """

    def __init__(self, registry: ToolRegistry):
        self._registry = registry
        self._logger = logging.getLogger("workbench.infra.service_bus")
        self._app: Optional[FastAPI] = None

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self._logger.info(f"Service bus starting for {self._registry.root}")
            yield
            self._logger.info("Service bus shutting down...")

        app = FastAPI(
            title="Workbench Tool API",
            description="Workspace-confined tools for agent loops",
            version=VERSION,
            lifespan=lifespan
        )

        self._register_routes(app)

        self._app = app
        return app

    def _register_routes(self, app: FastAPI) -> None:
        """Register all API routes."""
        registry = self._registry

        @app.get("/health", response_model=HealthResponse, tags=["System"])
        async def health_check():
            """Health check endpoint."""
            return HealthResponse(
                status="healthy",
                root=str(registry.root),
                tools=len(registry),
            )

        @app.get("/tools", response_model=List[Dict[str, Any]], tags=["Tools"])
        async def list_tools(style: str = "gemini"):
            """Function declarations for every registered tool."""
            if style not in DECLARATION_STYLES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Unknown style '{style}'; expected one of {list(DECLARATION_STYLES)}"
                )
            return registry.export_declarations(style)

        # Plain def: tool calls block, so FastAPI runs them in its threadpool
        @app.post("/tools/{name}/invoke", response_model=InvokeResponse, tags=["Tools"])
        def invoke_tool(name: str, request: InvokeRequest):
            """Invoke a tool. Failures come back as data, not HTTP errors."""
            with CancellationToken.linked(None, request.timeout_seconds) as token:
                result = registry.invoke(name, request.arguments, token)

            body = result.to_dict()
            return InvokeResponse(
                tool=body["tool"],
                status=body["status"],
                call_id=result.call_id,
                execution_time_ms=result.execution_time_ms,
                result=body.get("result"),
                error=body.get("error"),
            )


def create_app(registry: ToolRegistry) -> FastAPI:
    """Create the FastAPI application."""
    bus = ServiceBus(registry)
    return bus.create_app()
