import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dietify.api.auth import router as auth_router
from dietify.api.routes import router as api_router
from dietify.api.users import router as users_router
from dietify.auth.mailer import OtpMailer
from dietify.auth.otp import OtpCache
from dietify.config import settings
from dietify.core.checkpoint import CheckpointStore
from dietify.core.loop import ConversationLoop
from dietify.database import async_session, engine, init_db
from dietify.intake.store import IntakeStore
from dietify.llm.router import create_provider
from dietify.memory.store import MemoryStore
from dietify.observability.logger import get_logger, setup_logging
from dietify.tools.registry import ToolRegistry

setup_logging(settings.log_level, settings.log_format)
log = get_logger("main")

# Shared application state, accessed by API routes
app_state = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("dietify_starting")

    # 1. Create database tables
    await init_db()
    log.info("database_initialized")

    # 2. Stores and tools
    checkpoints = CheckpointStore(async_session)
    memory = MemoryStore(async_session)
    intake = IntakeStore(async_session, tz=settings.local_timezone)
    tools = ToolRegistry(memory, intake, timeout_seconds=settings.tool_timeout_seconds)
    log.info("tools_available", tools=sorted(tools.get_tool_names()))

    # 3. Model provider and conversation loop
    provider = create_provider()
    conversation_loop = ConversationLoop(provider, checkpoints, memory, tools)

    # 4. OTP cache with its expiry sweeper
    otp_cache = OtpCache(ttl_seconds=settings.otp_ttl_seconds, max_attempts=settings.otp_max_attempts)
    sweeper_task = asyncio.create_task(otp_cache.run_sweeper(settings.otp_sweep_interval_seconds))

    app_state.update({
        "session_factory": async_session,
        "checkpoints": checkpoints,
        "memory": memory,
        "intake": intake,
        "tools": tools,
        "provider": provider,
        "conversation_loop": conversation_loop,
        "otp_cache": otp_cache,
        "mailer": OtpMailer(),
    })
    log.info("dietify_ready", provider=provider.name)

    yield

    # Shutdown
    log.info("dietify_shutting_down")
    sweeper_task.cancel()
    app_state.clear()
    await engine.dispose()


app = FastAPI(title="Dietify", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(api_router)
app.include_router(users_router)


@app.get("/health")
async def health():
    return {"status": "ok", "provider": getattr(app_state.get("provider"), "name", None)}
