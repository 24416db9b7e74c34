from datetime import datetime
from typing import Optional

from modules.common.schemas import CamelModel


class WorkerCreate(CamelModel):
    rut: str
    nombre: str
    cargo: str
    apellido: str = ""
    email: Optional[str] = None
    empresa_id: str = "default"
    user_id: Optional[str] = None


class WorkerResponse(CamelModel):
    worker_id: str
    rut: str
    nombre: str
    apellido: str
    cargo: str
    email: Optional[str] = None
    empresa_id: str
    user_id: Optional[str] = None
    habilitado: bool
    estado: str
    created_at: datetime


class ResolvedIdentityResponse(CamelModel):
    input_id: str
    resolved_worker_id: str
    resolved_user_id: str
    worker_found: bool
    user_found: bool
