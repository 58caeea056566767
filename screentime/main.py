from prometheus_fastapi_instrumentator import Instrumentator

from .core.config import settings
from .core.logging import configure_logging
from . import app as base_app

configure_logging(settings.LOG_LEVEL)
app = base_app
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


def serve() -> None:
    """Console entry point: run the API with uvicorn on the configured host and port."""

    import uvicorn

    uvicorn.run("screentime.main:app", host=settings.HOST, port=settings.PORT)
