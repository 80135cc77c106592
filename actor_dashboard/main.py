import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from actor_dashboard.api.routes_actors import router as actors_router
from actor_dashboard.api.routes_auth import router as auth_router
from actor_dashboard.api.routes_executions import router as executions_router
from actor_dashboard.api.routes_health import router as health_router
from actor_dashboard.core.config import get_settings
from actor_dashboard.core.errors import DashboardError

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s (%s)", settings.APP_NAME, settings.ENV)
    yield
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(title="Actor Dashboard", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"message": f"{where}: {message}" if where else message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error."})


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(actors_router)
app.include_router(executions_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "actor_dashboard.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.ENV == "local",
    )
