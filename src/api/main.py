from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.decoders import describe_errors
from src.api.dependencies import get_public_dir
from src.api.exceptions import MalformedRequestError, PortfolioException
from src.api.limiter import limiter
from src.api.logging_config import logger, setup_logging
from src.api.routes import auth, metrics, projects
from src.api.services.factory import build_services
from src.api.static import public_files
from src.config import config

setup_logging()

app = FastAPI(
    title="Portfolio API",
    description="Projects, page-view analytics and admin login for the portfolio site",
    version="1.0.0",
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.on_event("startup")
async def startup():
    app.state.services = build_services(config)
    logger.info(f"Portfolio server started ({config.get('server', 'env')})")


@app.on_event("shutdown")
async def shutdown():
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.sessions.close()


app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Prometheus endpoint at /metrics (not in tests)
if config.get("server", "env") != "test":
    Instrumentator().instrument(app).expose(app)
    logger.info("Prometheus Instrumentator initialized")


def problem_response(request: Request, status_code: int, title: str, detail, code: str, headers=None):
    return JSONResponse(
        status_code=status_code,
        content={
            "type": f"/errors/{title.lower()}",
            "title": title,
            "status": status_code,
            "detail": detail,
            "instance": str(request.url),
            "code": code,
            "extensions": {"timestamp": datetime.now(timezone.utc).isoformat()},
        },
        headers=headers,
    )


@app.exception_handler(PortfolioException)
async def portfolio_exception_handler(request: Request, exc: PortfolioException):
    error_code = exc.__class__.__name__.replace("Error", "").upper()
    if error_code == "PORTFOLIOEXCEPTION":
        error_code = "INTERNAL_ERROR"
    return problem_response(
        request, exc.status_code, exc.__class__.__name__, exc.detail, error_code, exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return await portfolio_exception_handler(
        request, MalformedRequestError(detail=describe_errors(exc.errors()))
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return problem_response(
        request,
        exc.status_code,
        "HTTPException",
        exc.detail,
        f"HTTP_{exc.status_code}",
        getattr(exc, "headers", None),
    )


app.include_router(auth.router)  # /api/me, /auth, /logout
app.include_router(projects.router)  # /api/projects
app.include_router(metrics.router)  # /api/metrics

origins = config.get("server", "allowed_origins")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def enforce_https_redirect(request: Request, call_next):
    if config.is_production:
        # Proxies (Heroku, Fly.io, nginx) report the original scheme here
        if request.headers.get("x-forwarded-proto") != "https":
            url = request.url.replace(scheme="https")
            return RedirectResponse(url, status_code=status.HTTP_301_MOVED_PERMANENTLY)
    return await call_next(request)


@app.middleware("http")
async def log_requests(request, call_next):
    logger.info(f"Request: {request.method} {request.url}")
    response = await call_next(request)
    logger.info(f"Response: {response.status_code}")
    return response


@app.get("/health")
def health_check():
    return {"status": "ok"}


def allowed_methods(request: Request):
    """Methods of other routes whose path matches this request's path."""
    methods = set()
    for route in request.app.router.routes:
        if getattr(route, "endpoint", None) is spa_fallback:
            continue
        path_regex = getattr(route, "path_regex", None)
        route_methods = getattr(route, "methods", None)
        if path_regex is not None and route_methods and path_regex.match(request.url.path):
            methods.update(route_methods)
    return methods


STATIC_METHODS = {"GET", "HEAD"}


# Must stay the last route: everything unmatched lands here, whatever the method
@app.api_route(
    "/{full_path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def spa_fallback(request: Request, full_path: str, public_dir: str = Depends(get_public_dir)):
    methods = allowed_methods(request)
    if methods:
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="Method Not Allowed",
            headers={"Allow": ", ".join(sorted(methods))},
        )
    if full_path == "api" or full_path.startswith("api/"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown API endpoint")
    if request.method not in STATIC_METHODS:
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="Method Not Allowed",
            headers={"Allow": ", ".join(sorted(STATIC_METHODS))},
        )

    files = public_files(public_dir)
    return await files.get_response(files.get_path(request.scope), request.scope)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host=config.get("server", "host"),
        port=int(config.get("server", "port")),
        reload=config.get("server", "env") == "development",
    )
