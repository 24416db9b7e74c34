from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from modules.common.context import RequestContext, get_request_context
from modules.signature_requests.schemas.signature_request_schemas import (
    CancelRequest, HistoryItem, HistoryResponse, OfflineBatchRequest, OfflineBatchResponse, OfflineBatchResult,
    PendingResponse, RequestTypeResponse, SignatureRequestCreate, SignatureRequestDetail, SignatureRequestResponse,
    StatsResponse,
)
from modules.signature_requests.services.signature_request_service import SignatureRequestService
from modules.signatures.schemas.signature_schemas import SignatureResponse

router = APIRouter(
    prefix="/signature-requests",
    tags=["signature-requests"]
)


@router.post("", response_model=SignatureRequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(payload: SignatureRequestCreate, db: Session = Depends(get_db)):
    return SignatureRequestService.create(
        db,
        tipo=payload.tipo,
        titulo=payload.titulo,
        documentos=payload.documentos,
        worker_ids=payload.trabajadores_ids,
        solicitante_id=payload.solicitante_id,
        fecha_limite=payload.fecha_limite,
        descripcion=payload.descripcion,
        ubicacion=payload.ubicacion,
    )


@router.post("/offline-batch", response_model=OfflineBatchResponse)
def offline_batch(payload: OfflineBatchRequest, db: Session = Depends(get_db),
                  contexto: RequestContext = Depends(get_request_context)):
    """Solicitud armada en terreno sin conexión, con las firmas RUT + PIN recolectadas."""
    result = SignatureRequestService.process_offline_batch(
        db,
        tipo=payload.tipo,
        titulo=payload.titulo,
        solicitante_id=payload.solicitante_id,
        firmas_offline=[f.model_dump() for f in payload.firmas_offline],
        contexto=contexto,
        descripcion=payload.descripcion,
        ubicacion=payload.ubicacion,
        fecha_creacion_offline=payload.fecha_creacion_offline,
        batch_id=payload.batch_id,
    )
    return OfflineBatchResponse(
        message=result["message"],
        request_id=result["request_id"],
        firmas_validas=result["firmas_validas"],
        firmas_invalidas=result["firmas_invalidas"],
        resultados_firmas=[OfflineBatchResult(**r) for r in result["resultados_firmas"]],
        solicitud=SignatureRequestResponse.model_validate(result["solicitud"]) if result["solicitud"] else None,
    )


@router.get("/types", response_model=List[RequestTypeResponse])
def list_types():
    return SignatureRequestService.list_types()


@router.get("/stats", response_model=StatsResponse)
def stats(empresa_id: Optional[str] = None, solicitante_id: Optional[str] = None,
          db: Session = Depends(get_db)):
    return SignatureRequestService.stats(db, empresa_id, solicitante_id)


@router.get("/pending/{worker_id}", response_model=PendingResponse)
def pending(worker_id: str, db: Session = Depends(get_db)):
    pendientes = SignatureRequestService.pending_for_worker(db, worker_id)
    return PendingResponse(
        pendientes=[SignatureRequestResponse.model_validate(r) for r in pendientes],
        total=len(pendientes),
    )


@router.get("/history/{worker_id}", response_model=HistoryResponse)
def history(worker_id: str, db: Session = Depends(get_db)):
    """Firmas de la persona (por cualquiera de sus ids) con su solicitud asociada."""
    resolved, historial = SignatureRequestService.history_for_worker(db, worker_id)
    return HistoryResponse(
        resolved_worker_id=resolved.worker_id,
        resolved_user_id=resolved.user_id,
        total_firmas=len(historial),
        historial=[
            HistoryItem(
                firma=SignatureResponse.model_validate(item["firma"]),
                solicitud=SignatureRequestResponse.model_validate(item["solicitud"]) if item["solicitud"] else None,
            )
            for item in historial
        ],
    )


@router.get("/{request_id}", response_model=SignatureRequestDetail)
def get_request(request_id: str, db: Session = Depends(get_db)):
    req, firmas = SignatureRequestService.get(db, request_id)
    detalle = SignatureRequestDetail.model_validate(req)
    detalle.firmas = [SignatureResponse.model_validate(f) for f in firmas]
    return detalle


@router.post("/{request_id}/cancel", response_model=SignatureRequestResponse)
def cancel(request_id: str, payload: Optional[CancelRequest] = None, db: Session = Depends(get_db)):
    motivo = payload.motivo if payload else None
    return SignatureRequestService.cancel(db, request_id, motivo)
