import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

# Import API router
from api import router
from profiler import config
from profiler.orchestrator import AnalysisOrchestrator
from profiler.storage import InMemoryAnalysisStore
from profiler.synthesizer import LLMSynthesizer

config.configure_logging()
logger = logging.getLogger(__name__)


def build_orchestrator() -> AnalysisOrchestrator:
    return AnalysisOrchestrator(store=InMemoryAnalysisStore(), synthesizer=LLMSynthesizer())


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator()
    logger.info("Website analysis service ready.")
    try:
        yield
    finally:
        await app.state.orchestrator.close()
        logger.info("Website analysis service stopped.")


def create_app(orchestrator: AnalysisOrchestrator = None) -> FastAPI:
    app = FastAPI(
        title="Website Profiler API",
        description="Builds structured business profiles from a business's own website",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    # Add CORS middleware to allow cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include the API router
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint with API info"""
        return {
            "name": "Website Profiler API",
            "version": "1.0.0",
            "endpoints": {
                "GET /api/website-analysis": "Get analysis status and profile",
                "POST /api/website-analysis": "Start a new analysis",
                "PATCH /api/website-analysis": "Edit the extracted profile",
                "DELETE /api/website-analysis": "Reset the analysis",
                "GET /api/analyzed-pages": "List analyzed pages",
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok"}

    return app


app = create_app()


def main():
    uvicorn.run("app:app", host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    main()
