# main.py
import logging
from fastapi_limiter import FastAPILimiter
import routes
from contextlib import asynccontextmanager
from util.enums import Environment, Color
from util.errors import ArkError
from model.api import ErrorEnvelope
from fastapi import FastAPI, Request
from starlette.middleware.cors import CORSMiddleware
from config.context import open_context
from config.settings import settings
from fastapi.responses import JSONResponse
from util.logger import init_logger

logger = logging.getLogger(__name__)


async def _real_ip(request: Request) -> str:
    if settings.TRUST_PROXY:
        fwd = request.headers.get("x-forwarded-for")
        if fwd:
            return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@asynccontextmanager
async def lifespan(fastApi: FastAPI):
    init_logger(settings)
    print(f"{Color.GREEN}Initializing...{Color.RESET}")
    try:
        ctx = await open_context(settings)
        await FastAPILimiter.init(ctx.redis, identifier=_real_ip)
    except Exception as e:
        print("Failed to initialize service context:", e)
        raise

    fastApi.state.ctx = ctx
    if settings.SCHEDULER_ENABLED:
        ctx.scheduler.start()
    print(f"{Color.BLUE}Server Started{Color.RESET}")

    try:
        yield
    finally:
        try:
            await ctx.aclose()
        except Exception as e:
            print("Error closing service context:", e)

        print(f"{Color.RED}Server Shutdown{Color.RESET}")


app: FastAPI = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.ALLOWED_ORIGIN],
    allow_credentials=True,  # Allow cookies and other credentials
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "Authorization", "Content-Type", "Accept"],
)


@app.get("/healthz")
async def healthz(request: Request):
    ctx = getattr(request.app.state, "ctx", None)
    return {"ok": True, "scheduler": bool(ctx and ctx.scheduler.running)}


@app.get("/ping")
async def ping():
    return {"message": "pong"}


@app.exception_handler(ArkError)
async def ark_error_handler(request: Request, exc: ArkError):
    logger.error("request.failed path=%s error=%s msg=%s", request.url.path, exc.code, exc)
    return JSONResponse(
        status_code=exc.http_status,
        content=ErrorEnvelope(error=exc.code, message=str(exc)).model_dump(),
    )


@app.exception_handler(429)
async def ratelimit_handler(request: Request, exc):
    window = settings.RATE_LIMIT_SECONDS
    return JSONResponse(
        status_code=429,
        content=ErrorEnvelope(
            error="rate_limited",
            message=f"Too many requests. Try again in {window}s.",
        ).model_dump(),
        headers={"Retry-After": str(window)},
    )


routes.register_routes(app)

if __name__ == "__main__":
    import uvicorn

    reload = settings.APP_ENV == Environment.DEV
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=reload)
