import logging

from fastapi import FastAPI, Request  # type: ignore
from fastapi.exceptions import RequestValidationError  # type: ignore
from fastapi.middleware.cors import CORSMiddleware  # type: ignore
from fastapi.responses import JSONResponse  # type: ignore

from app.config import CORS_ORIGINS, LOG_LEVEL
from app.errors import DiagnosisProviderError, ValidationError
from app.middleware.preflight import preflight_middleware
from app.models.diagnosis import ErrorResponse
from app.routers import guided_diagnosis

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cardiag.app")

app = FastAPI(title="Guided Car Diagnosis API")

app.middleware("http")(preflight_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(guided_diagnosis.router)


def _error(status_code: int, message: str, errors=None) -> JSONResponse:
    body = ErrorResponse(message=message, errors=errors)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(loc) for loc in err.get("loc", ()) if loc != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return _error(400, "Validation failed", errors)


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return _error(400, str(exc))


@app.exception_handler(DiagnosisProviderError)
async def diagnosis_provider_handler(request: Request, exc: DiagnosisProviderError):
    logger.error("Diagnosis failed on %s: %s", request.url.path, exc.message)
    return _error(exc.status_code, "AI analysis failed: " + exc.message)


@app.exception_handler(Exception)
async def unhandled_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return _error(500, "Internal server error")


@app.get("/")
@app.get("/health")
async def health():
    return {"status": "ok"}
