import logging
import uuid
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from config import get_settings
from create_tables import crear_tablas
from database import SessionLocal

from modules.common.errors import SignatureError
from modules.identity.models import User, UserRole, Worker
from modules.identity.services.rut import format_rut
from modules.signature_requests.job.expire_requests import start_expiration_job
from modules.identity.controllers.worker_controller import router as worker_router
from modules.enrollment.controllers.enrollment_controller import router as enrollment_router
from modules.signatures.controllers.signature_controller import router as signature_router
from modules.signature_requests.controllers.signature_request_controller import router as signature_request_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    logger.info("Iniciando aplicación...")
    crear_tablas()
    scheduler = None
    if settings.expiration_job_enabled:
        scheduler = start_expiration_job()
    if settings.seed_demo_data:
        _crear_datos_prueba()
    yield
    # --- Shutdown logic ---
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("Aplicación detenida")


def _crear_datos_prueba():
    """Crea un prevencionista y dos trabajadores sin PIN para probar el enrolamiento."""
    with SessionLocal() as session:
        if session.query(Worker).count() > 0:
            logger.info("Datos de prueba ya existen")
            return

        prevencionista = User(
            user_id=str(uuid.uuid4()),
            rut=format_rut("11111111-1"),
            nombre="Paula",
            apellido="Rojas",
            email="prevencion@empresa.com",
            rol=UserRole.prevencionista,
        )
        juan = Worker(
            worker_id=str(uuid.uuid4()),
            rut=format_rut("12345678-5"),
            nombre="Juan",
            apellido="Pérez",
            cargo="Operador",
        )
        ana = Worker(
            worker_id=str(uuid.uuid4()),
            rut=format_rut("9876543-3"),
            nombre="Ana",
            apellido="García",
            cargo="Supervisora",
        )
        session.add_all([prevencionista, juan, ana])
        session.commit()

        logger.info("Datos de prueba creados: solicitante %s, trabajadores %s y %s",
                    prevencionista.user_id, juan.worker_id, ana.worker_id)


app = FastAPI(
    title=settings.app_name,
    description="API de firma digital con PIN (DS44): enrolamiento, solicitudes de firma y disputas",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Origin",
        "Access-Control-Request-Method",
        "Access-Control-Request-Headers"
    ],
    expose_headers=["*"],
    max_age=86400,
)


@app.exception_handler(SignatureError)
async def signature_error_handler(request: Request, exc: SignatureError):
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Routers
app.include_router(worker_router)
app.include_router(enrollment_router)
app.include_router(signature_router)
app.include_router(signature_request_router)


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
