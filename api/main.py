"""
FastAPI server for Stepflow workflows.

Provides REST API endpoints for:
- Saving (and compiling) workflow definitions
- Checking whether a workflow can run for the caller
- Running a workflow with streamed progress events

Usage:
    uvicorn api.main:app --host 0.0.0.0 --port 2024 --reload
"""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware.auth import CallerIdentityMiddleware
from api.workflows.router import router as workflows_router
from api.workflows.services import WorkflowServices, build_default_services
from shared.config import config
from shared.logger import get_logger

logger = get_logger("api.main")


def create_app(workflow_services: Optional[WorkflowServices] = None) -> FastAPI:
    app = FastAPI(
        title="Stepflow API",
        description="Compile and run step-based workflows",
        version="1.0.0",
    )
    app.state.workflows = workflow_services or build_default_services()
    if not config.is_composio_configured:
        logger.warning("COMPOSIO_API_KEY is not set; external tool steps will fail")

    app.include_router(workflows_router)

    # Identity middleware registered before CORS so caller_id is set first
    app.add_middleware(CallerIdentityMiddleware, allow_unauthenticated_paths=["/health"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        get_logger("api.main.errors").error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/health", tags=["System"])
    async def health_check():
        return {
            "status": "ok",
            "server": "Stepflow API",
            "version": "1.0.0",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
