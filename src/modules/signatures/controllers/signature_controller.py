# src/modules/signatures/controllers/signature_controller.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from modules.common.context import RequestContext, get_request_context
from modules.signature_requests.schemas.signature_request_schemas import SignatureRequestResponse, SignResponse
from modules.signature_requests.services.signature_request_service import SignatureRequestService
from modules.signatures.schemas.signature_schemas import (
    DisputeRequest, ResolveRequest, SignatureResponse, SignRequest, SignTargetRequest,
    WorkerSignaturesResponse,
)
from modules.signatures.services.signature_ledger import SignatureLedger
from modules.signatures.services.target_signing import TargetSigningService

router = APIRouter(
    prefix="/signatures",
    tags=["signatures"]
)


@router.post("", response_model=SignResponse, status_code=status.HTTP_201_CREATED)
def sign_request(
    payload: SignRequest,
    db: Session = Depends(get_db),
    contexto: RequestContext = Depends(get_request_context),
):
    """
    Firma de un miembro sobre una solicitud, validada con PIN.
    """
    firma, solicitud = SignatureRequestService.sign_as_member(
        db, payload.request_id, payload.worker_id, payload.pin, contexto,
        metadata=payload.metadata, offline=payload.offline,
    )
    return SignResponse(
        signature_id=firma.signature_id,
        token=firma.token,
        fecha=firma.fecha,
        horario=firma.horario,
        estado=solicitud.estado,
        solicitud=SignatureRequestResponse.model_validate(solicitud),
    )


@router.post("/targets", response_model=SignatureResponse, status_code=status.HTTP_201_CREATED)
def sign_target(
    payload: SignTargetRequest,
    db: Session = Depends(get_db),
    contexto: RequestContext = Depends(get_request_context),
):
    """Firma de un documento, actividad o encuesta."""
    return TargetSigningService.sign_target(
        db,
        payload.worker_id,
        payload.pin,
        payload.target_type,
        payload.target_id,
        contexto,
        target_title=payload.target_title,
        survey_answers=payload.survey_answers,
        metadata=payload.metadata,
        offline=payload.offline,
    )


@router.get("/worker/{worker_id}", response_model=WorkerSignaturesResponse)
def list_by_worker(worker_id: str, db: Session = Depends(get_db)):
    resolved, firmas = SignatureLedger.list_by_worker(db, worker_id)
    return WorkerSignaturesResponse(
        resolved_worker_id=resolved.worker_id,
        resolved_user_id=resolved.user_id,
        total_firmas=len(firmas),
        firmas=[SignatureResponse.model_validate(f) for f in firmas],
    )


@router.get("/request/{request_id}", response_model=List[SignatureResponse])
def list_by_request(request_id: str, db: Session = Depends(get_db)):
    return SignatureLedger.list_by_request(db, request_id)


@router.get("/verify/{token}", response_model=SignatureResponse)
def verify_token(token: str, db: Session = Depends(get_db)):
    """Verificación pública de una firma por su token."""
    return SignatureLedger.verify_by_token(db, token)


@router.get("/disputes", response_model=List[SignatureResponse])
def list_disputes(empresa_id: Optional[str] = None, db: Session = Depends(get_db)):
    return SignatureLedger.list_disputes(db, empresa_id)


@router.get("/{signature_id}", response_model=SignatureResponse)
def get_signature(signature_id: str, db: Session = Depends(get_db)):
    return SignatureLedger.get(db, signature_id)


@router.post("/{signature_id}/dispute", response_model=SignatureResponse)
def dispute(signature_id: str, payload: DisputeRequest, db: Session = Depends(get_db)):
    return SignatureLedger.dispute(db, signature_id, payload.motivo, payload.reportado_por)


@router.put("/{signature_id}/resolve", response_model=SignatureResponse)
def resolve(signature_id: str, payload: ResolveRequest, db: Session = Depends(get_db)):
    return SignatureLedger.resolve(
        db, signature_id, payload.resolucion, payload.resuelto_por, payload.nuevo_estado
    )
