"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from converter.api.routes import router
from converter.config import CORS_ORIGINS, logger as config_logger
from converter.conversion.errors import ValidationError
from converter.conversion.formats import get_format_registry

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry = get_format_registry()
    config_logger.info("Converter API started, outputs: %s", ", ".join(registry.candidates()))
    yield
    config_logger.info("Converter API shutting down")


app = FastAPI(
    title="Streaming Image Converter API",
    description="Convert one uploaded image to JPEG, PNG, WebP or TIFF and stream it back.",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Parameter and content-type problems are reported as plain text before the body is read."""
    return PlainTextResponse(str(exc), status_code=400)


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    from converter.config import HOST, PORT
    uvicorn.run("converter.main:app", host=HOST, port=PORT)
