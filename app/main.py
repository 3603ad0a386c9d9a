import logging
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.api import auth, invitations, campaigns
from app.core.config import settings
from app.core.errors import RedemptionEngineError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=f"{settings.APP_NAME} API", version="1.0.0")

# CORS: default localhost origins plus ALLOWED_ORIGINS_EXTRA
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

_HTTP_ERROR_CODES = {
    401: "unauthenticated",
    403: "permission_denied",
    404: "not_found",
    429: "rate_limited",
}


def _error_response(status_code: int, code: str, detail, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "code": code, "detail": detail},
        headers=headers,
    )


@app.exception_handler(RedemptionEngineError)
async def redemption_engine_error_handler(request: Request, exc: RedemptionEngineError):
    return _error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return _error_response(exc.status_code, code, exc.detail, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error_response(422, "invalid_argument", jsonable_encoder(exc.errors()))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions and answer with the standard error envelope."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}")
    response = _error_response(500, "internal", "Internal server error")

    # Exceptions raised past the middleware stack lose the CORS headers
    origin = request.headers.get("origin")
    if origin and origin in settings.get_allowed_origins():
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(invitations.organizations_router, prefix="/organizations", tags=["invitations"])
app.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
app.include_router(campaigns.router, prefix="/campaigns", tags=["campaigns"])


@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} API", "version": "1.0.0"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
