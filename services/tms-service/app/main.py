from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager
import logging
import os
import time

# Scheduler
from apscheduler.schedulers.asyncio import AsyncIOScheduler

# Imports Locales
from . import models
from .database import engine, db_manager
from .notifications import get_notifier
from .services.reminders import send_daily_reminders
from app.routers import (
    users, departments, clients, projects, tasks, comments,
    meetings, events, reports, contacts, dashboard
)

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("tms-service")

REMINDERS_ENABLED = os.getenv("REMINDERS_ENABLED", "true").lower() == "true"
REMINDERS_HOUR = int(os.getenv("REMINDERS_HOUR", "8"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]

# --- SCHEDULER (Segundo Plano) ---
async def run_daily_reminders_job():
    """Tarea programada: recordatorios de vencimientos y eventos."""
    logger.info("⏰ [SCHEDULER] Iniciando recordatorios diarios...")
    try:
        async with db_manager.session() as db:
            await send_daily_reminders(db, get_notifier())
        logger.info("⏰ [SCHEDULER] Tarea finalizada con éxito.")
    except Exception as e:
        logger.error(f"❌ [SCHEDULER] Falló la tarea: {e}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1. Crear tablas al inicio
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

    # 2. Iniciar el Scheduler
    scheduler = None
    if REMINDERS_ENABLED:
        scheduler = AsyncIOScheduler()
        scheduler.add_job(run_daily_reminders_job, "cron", hour=REMINDERS_HOUR, minute=0)
        scheduler.start()
        logger.info(f"⏰ Scheduler iniciado (diario a las {REMINDERS_HOUR:02d}:00).")

    yield

    # 3. Apagado
    if scheduler:
        scheduler.shutdown()
    await db_manager.dispose()

# --- Configuración de FastAPI ---
app = FastAPI(
    title="TMS Service",
    description="Gestión de Proyectos y Tareas: clientes, departamentos, agenda, reportes y dashboard.",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.0f}ms)")
    return response

# --- MANEJO DE ERRORES ---

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return JSONResponse(status_code=400, content={"detail": "; ".join(messages)})

@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"❌ Error de base de datos en {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

# --- ROUTERS ---
for module in (users, departments, clients, projects, tasks, comments, meetings, events, reports, contacts, dashboard):
    app.include_router(module.router, prefix="/api")

@app.get("/health")
def health_check():
    """Health check para Kubernetes/Docker."""
    return {"status": "ok"}
