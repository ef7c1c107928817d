import logging
import traceback
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder

from fatturapa_sdi import __version__
from fatturapa_sdi.routers import fatturapa
from fatturapa_sdi.core.settings import get_fatturapa_settings
from fatturapa_sdi.core.exceptions import BaseApplicationException, ErrorCode

app = FastAPI(
    title="FatturaPA SdI API",
    description="Generazione e validazione della fattura elettronica FatturaPA",
    version=__version__
)

# Configure logging
logging.basicConfig(
    level=get_fatturapa_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(BaseApplicationException)
async def application_exception_handler(request: Request, exc: BaseApplicationException):
    """Handler per le eccezioni applicative (pre-flight e validazione)"""
    logger.warning(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}", extra={
        "error_code": exc.error_code,
        "details": exc.details
    })
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """InvoiceDocument non costruibile dal body della richiesta"""
    logger.warning(f"Request validation error on {request.url.path}: {len(exc.errors())} error(s)")
    return JSONResponse(
        status_code=422,
        content={
            "error_code": ErrorCode.VALIDATION_ERROR.value,
            "message": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
            "status_code": 422
        }
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", extra={
        "traceback": traceback.format_exc()
    })
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_SERVER_ERROR",
            "message": "Internal server error",
            "details": {},
            "status_code": 500
        }
    )


app.include_router(fatturapa.router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
