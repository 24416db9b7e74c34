import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session

from modules.common.context import RequestContext, to_naive_utc, utcnow
from modules.common.errors import (
    AuthorizationError, ConflictError, ErrorCode, InvalidInputError, NotFoundError, SignatureError,
)
from modules.enrollment.services.enrollment_service import EnrollmentService
from modules.identity.models.user import User
from modules.identity.models.worker import Worker
from modules.identity.repositories.identity_repository import IdentityRepository
from modules.identity.services.identity_resolver import IdentityResolver, ResolvedIdentity, SigningSubject
from modules.signature_requests.models.signature_request import (
    RequestMember, RequestStatus, SignatureRequest, TERMINAL_STATES,
)
from modules.signature_requests.services.request_status import derive_request_status
from modules.signatures.models.signature import Signature
from modules.signatures.services.signature_ledger import TIPO_SOLICITUD, SignatureLedger, SignatureTarget

logger = logging.getLogger(__name__)

REQUEST_TYPES = {
    "CHARLA_5MIN": {"label": "Charla de 5 Minutos", "requiresDoc": False},
    "CAPACITACION": {"label": "Capacitación", "requiresDoc": True},
    "INDUCCION": {"label": "Inducción", "requiresDoc": True},
    "ENTREGA_EPP": {"label": "Entrega de EPP", "requiresDoc": True},
    "ART": {"label": "Análisis de Riesgos en Terreno", "requiresDoc": True},
    "PROCEDIMIENTO": {"label": "Procedimiento de Trabajo", "requiresDoc": True},
    "INSPECCION": {"label": "Inspección de Seguridad", "requiresDoc": False},
    "REGLAMENTO": {"label": "Reglamento Interno", "requiresDoc": True},
    "OTRO": {"label": "Otro", "requiresDoc": False},
}

# No se puede cancelar lo que ya terminó
_NOT_CANCELLABLE = {RequestStatus.cancelada, RequestStatus.completada, RequestStatus.vencida}


class SignatureRequestService:

    @staticmethod
    def list_types() -> List[Dict[str, Any]]:
        return [{"tipo": tipo, **info} for tipo, info in REQUEST_TYPES.items()]

    @staticmethod
    def _get_or_404(session: Session, request_id: str) -> SignatureRequest:
        req = session.get(SignatureRequest, request_id)
        if req is None:
            raise NotFoundError(ErrorCode.REQUEST_NOT_FOUND, "Solicitud no encontrada")
        return req

    @staticmethod
    def _sync_status(req: SignatureRequest, now: datetime) -> bool:
        """Aplica el estado derivado sobre el almacenado; True si cambió."""
        estado = derive_request_status(req.estado, req.members, req.fecha_limite, now)
        if estado == req.estado:
            return False
        req.estado = estado
        return True

    @staticmethod
    def _solicitante(session: Session, solicitante_id: str) -> Union[User, Worker]:
        solicitante = IdentityResolver.resolve(session, solicitante_id)
        record = solicitante.user if solicitante.user is not None else solicitante.worker
        if record is None:
            raise NotFoundError(ErrorCode.SOLICITANTE_NOT_FOUND, "Solicitante no encontrado")
        return record

    @staticmethod
    def create(
        session: Session,
        tipo: str,
        titulo: str,
        documentos: Optional[List[Dict[str, Any]]],
        worker_ids: List[str],
        solicitante_id: str,
        fecha_limite: Optional[datetime] = None,
        descripcion: Optional[str] = None,
        ubicacion: Optional[str] = None,
    ) -> SignatureRequest:
        if tipo not in REQUEST_TYPES:
            raise InvalidInputError(ErrorCode.INVALID_REQUEST_TYPE,
                                    f"Tipo inválido. Tipos válidos: {', '.join(REQUEST_TYPES)}")
        if not titulo or not titulo.strip():
            raise InvalidInputError(ErrorCode.INVALID_FORMAT, "El título es requerido")
        if not worker_ids:
            raise InvalidInputError(ErrorCode.NO_WORKERS, "Debe seleccionar al menos un trabajador")

        documentos = list(documentos or [])
        if REQUEST_TYPES[tipo]["requiresDoc"] and not documentos:
            raise InvalidInputError(ErrorCode.DOCUMENT_REQUIRED,
                                    f"El tipo {REQUEST_TYPES[tipo]['label']} requiere al menos un documento")

        solicitante_record = SignatureRequestService._solicitante(session, solicitante_id)

        request_id = str(uuid.uuid4())
        members: List[RequestMember] = []
        vistos = set()
        for raw_id in worker_ids:
            resolved = IdentityResolver.resolve(session, raw_id)
            if not resolved.found:
                logger.warning("Trabajador %s no encontrado, se omite de la solicitud", raw_id)
                continue
            if resolved.worker_id in vistos:
                continue
            vistos.add(resolved.worker_id)

            persona = resolved.worker if resolved.worker is not None else resolved.user
            members.append(RequestMember(
                request_id=request_id,
                worker_id=resolved.worker_id,
                user_id=resolved.user.user_id if resolved.user is not None else None,
                position=len(members),
                nombre=persona.nombre_completo,
                rut=persona.rut,
                cargo=persona.cargo,
                firmado=False,
            ))

        if not members:
            raise InvalidInputError(ErrorCode.NO_WORKERS, "No se encontraron trabajadores válidos")

        req = SignatureRequest(
            request_id=request_id,
            tipo=tipo,
            titulo=titulo.strip(),
            descripcion=descripcion or "",
            ubicacion=ubicacion or "",
            documentos=documentos,
            solicitante_id=solicitante_id,
            solicitante_nombre=solicitante_record.nombre_completo,
            solicitante_rut=solicitante_record.rut,
            empresa_id=solicitante_record.empresa_id or "default",
            fecha_limite=to_naive_utc(fecha_limite),
            estado=RequestStatus.pendiente,
            members=members,
        )
        # con fecha límite ya pasada nace vencida
        SignatureRequestService._sync_status(req, utcnow())
        session.add(req)
        session.commit()
        session.refresh(req)

        logger.info("Solicitud %s (%s) creada con %d trabajadores", request_id, tipo, len(members))
        return req

    @staticmethod
    def sign_as_member(
        session: Session,
        request_id: str,
        worker_id: str,
        pin: str,
        contexto: RequestContext,
        metadata: Optional[Dict[str, Any]] = None,
        offline: bool = False,
    ) -> Tuple[Signature, SignatureRequest]:
        req = SignatureRequestService._get_or_404(session, request_id)

        if req.estado in TERMINAL_STATES:
            raise ConflictError(ErrorCode.REQUEST_TERMINAL, f"La solicitud está {req.estado.value}")
        if (req.fecha_limite is not None and contexto.now > req.fecha_limite
                and req.estado != RequestStatus.completada):
            req.estado = RequestStatus.vencida
            session.commit()
            logger.info("Solicitud %s vencida al intentar firmar", request_id)
            raise ConflictError(ErrorCode.REQUEST_TERMINAL, "La solicitud está vencida")

        ids = IdentityResolver.resolve(session, worker_id).ids
        member = next((m for m in req.members if m.worker_id in ids or m.user_id in ids), None)
        if member is None:
            raise AuthorizationError(ErrorCode.NOT_A_MEMBER, "No está incluido en esta solicitud")
        if member.firmado:
            raise ConflictError(ErrorCode.ALREADY_SIGNED, "Ya firmó esta solicitud")

        subject = IdentityResolver.signing_subject(session, worker_id)
        EnrollmentService.authorize_signer(subject, pin)

        firma = SignatureLedger.record(
            session,
            subject,
            SignatureTarget(
                tipo_firma=TIPO_SOLICITUD,
                referencia_id=request_id,
                referencia_tipo="solicitud",
                titulo=req.titulo,
                request_id=request_id,
                request_tipo=req.tipo,
                solicitante_id=req.solicitante_id,
                documentos=req.documentos,
            ),
            contexto,
            metadata,
            offline=offline,
        )

        # escritura condicional por miembro: solo si seguía sin firmar
        updated = (
            session.query(RequestMember)
            .filter(
                RequestMember.request_id == request_id,
                RequestMember.worker_id == member.worker_id,
                RequestMember.firmado.is_(False),
            )
            .update(
                {"firmado": True, "fecha_firma": contexto.now, "signature_id": firma.signature_id},
                synchronize_session="fetch",
            )
        )
        if updated == 0:
            session.rollback()
            raise ConflictError(ErrorCode.ALREADY_SIGNED, "Ya firmó esta solicitud")

        session.expire(req, ["members"])
        req.estado = derive_request_status(req.estado, req.members, req.fecha_limite, contexto.now)
        session.commit()

        logger.info("Solicitud %s firmada por %s (%d/%d)", request_id, member.worker_id,
                    req.total_firmados, req.total_requeridos)
        return firma, req

    @staticmethod
    def _batch_signer(session: Session, rut: str) -> Optional[SigningSubject]:
        """Firmante de un lote offline, buscado por RUT en workers y luego en users."""
        repo = IdentityRepository(session)
        worker = repo.find_worker_by_rut(rut)
        if worker is not None:
            return IdentityResolver.signing_subject(session, worker.worker_id)
        user = repo.find_user_by_rut(rut)
        if user is None:
            return None
        if user.worker_id and repo.get_worker(user.worker_id) is not None:
            return IdentityResolver.signing_subject(session, user.worker_id)
        return IdentityResolver.signing_subject(session, user.user_id)

    @staticmethod
    def process_offline_batch(
        session: Session,
        tipo: str,
        titulo: str,
        solicitante_id: str,
        firmas_offline: List[Dict[str, Any]],
        contexto: RequestContext,
        descripcion: Optional[str] = None,
        ubicacion: Optional[str] = None,
        fecha_creacion_offline: Optional[datetime] = None,
        batch_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Crea una solicitud a partir de firmas recolectadas sin conexión
        (RUT + PIN por asistente). Cada firma se valida por separado: las
        válidas quedan como miembros firmados y las rechazadas solo aparecen
        en ``resultados_firmas``. Un ``batch_id`` ya procesado se rechaza con
        BATCH_ALREADY_PROCESSED para que el reenvío del cliente no duplique.
        """
        if tipo not in REQUEST_TYPES:
            raise InvalidInputError(ErrorCode.INVALID_REQUEST_TYPE,
                                    f"Tipo inválido. Tipos válidos: {', '.join(REQUEST_TYPES)}")
        if not titulo or not titulo.strip():
            raise InvalidInputError(ErrorCode.INVALID_FORMAT, "El título es requerido")
        if not firmas_offline:
            raise InvalidInputError(ErrorCode.NO_WORKERS, "Se requiere al menos una firma offline")

        if batch_id and session.query(SignatureRequest).filter(
                SignatureRequest.offline_batch_id == batch_id).first() is not None:
            raise ConflictError(ErrorCode.BATCH_ALREADY_PROCESSED, "El lote offline ya fue sincronizado")

        solicitante_record = SignatureRequestService._solicitante(session, solicitante_id)

        request_id = str(uuid.uuid4())
        req = SignatureRequest(
            request_id=request_id,
            tipo=tipo,
            titulo=titulo.strip(),
            descripcion=descripcion or "",
            ubicacion=ubicacion or "",
            documentos=[],
            solicitante_id=solicitante_id,
            solicitante_nombre=solicitante_record.nombre_completo,
            solicitante_rut=solicitante_record.rut,
            empresa_id=solicitante_record.empresa_id or "default",
            estado=RequestStatus.pendiente,
            offline=True,
            offline_batch_id=batch_id,
            fecha_creacion_offline=to_naive_utc(fecha_creacion_offline),
            members=[],
        )
        session.add(req)

        resultados = []
        vistos = set()
        for firma_offline in firmas_offline:
            rut = firma_offline.get("rut") or ""
            try:
                subject = SignatureRequestService._batch_signer(session, rut)
                if subject is None:
                    raise NotFoundError(ErrorCode.WORKER_NOT_FOUND, "Trabajador no encontrado")
                if subject.worker_id in vistos:
                    raise ConflictError(ErrorCode.ALREADY_SIGNED, "Firma duplicada en el lote")
                EnrollmentService.authorize_signer(subject, firma_offline.get("pin"))
            except SignatureError as exc:
                logger.warning("Firma offline de %s rechazada en el lote: %s", rut, exc.message)
                resultados.append({"rut": rut, "success": False, "error": exc.message, "code": exc.code.value})
                continue
            vistos.add(subject.worker_id)

            # hora en que se firmó en terreno, no la de sincronización
            firmado_en = to_naive_utc(firma_offline.get("timestamp_local")) or contexto.now
            contexto_firma = RequestContext(
                ip_address=contexto.ip_address,
                user_agent=contexto.user_agent,
                now=firmado_en,
                tz_name=contexto.tz_name,
            )
            firma = SignatureLedger.record(
                session,
                subject,
                SignatureTarget(
                    tipo_firma=TIPO_SOLICITUD,
                    referencia_id=request_id,
                    referencia_tipo="solicitud",
                    titulo=req.titulo,
                    request_id=request_id,
                    request_tipo=tipo,
                    solicitante_id=solicitante_id,
                ),
                contexto_firma,
                metadata={"loteOffline": batch_id, "sincronizadoEn": contexto.now.isoformat()},
                metodo_validacion="PIN_OFFLINE",
                offline=True,
            )
            req.members.append(RequestMember(
                request_id=request_id,
                worker_id=subject.worker_id,
                user_id=subject.user_id,
                position=len(req.members),
                nombre=subject.nombre,
                rut=subject.rut,
                cargo=subject.cargo,
                firmado=True,
                fecha_firma=firmado_en,
                signature_id=firma.signature_id,
            ))
            resultados.append({
                "rut": rut,
                "success": True,
                "signature_id": firma.signature_id,
                "token": firma.token,
            })

        validas = len(req.members)
        if validas == 0:
            # sin firmas válidas no queda una solicitud vacía
            session.rollback()
            solicitud = None
        else:
            req.estado = derive_request_status(req.estado, req.members, req.fecha_limite, contexto.now)
            session.commit()
            session.refresh(req)
            solicitud = req

        logger.info("Lote offline %s: %d/%d firmas válidas", batch_id or request_id, validas, len(firmas_offline))
        return {
            "message": f"Solicitud sincronizada. {validas}/{len(firmas_offline)} firmas válidas.",
            "request_id": request_id if solicitud is not None else None,
            "solicitud": solicitud,
            "firmas_validas": validas,
            "firmas_invalidas": len(firmas_offline) - validas,
            "resultados_firmas": resultados,
        }

    @staticmethod
    def cancel(session: Session, request_id: str, motivo: Optional[str] = None,
               now: Optional[datetime] = None) -> SignatureRequest:
        req = SignatureRequestService._get_or_404(session, request_id)
        now = now or utcnow()

        estado = derive_request_status(req.estado, req.members, req.fecha_limite, now)
        if estado in _NOT_CANCELLABLE:
            raise ConflictError(ErrorCode.ALREADY_TERMINAL, f"La solicitud ya está {estado.value}")

        req.estado = RequestStatus.cancelada
        req.motivo_cancelacion = motivo or "Cancelada por el solicitante"
        req.fecha_cancelacion = now
        session.commit()

        logger.info("Solicitud %s cancelada", request_id)
        return req

    @staticmethod
    def get(session: Session, request_id: str,
            now: Optional[datetime] = None) -> Tuple[SignatureRequest, List[Signature]]:
        req = SignatureRequestService._get_or_404(session, request_id)
        if SignatureRequestService._sync_status(req, now or utcnow()):
            session.commit()
            logger.info("Solicitud %s pasa a %s al consultarla", request_id, req.estado.value)
        return req, SignatureLedger.list_by_request(session, request_id)

    @staticmethod
    def pending_for_worker(session: Session, any_id: str,
                           now: Optional[datetime] = None) -> List[SignatureRequest]:
        """Solicitudes abiertas donde la persona (por cualquiera de sus ids) aún no firma."""
        ids = list(IdentityResolver.resolve(session, any_id).ids)
        now = now or utcnow()
        return (
            session.query(SignatureRequest)
            .join(RequestMember, RequestMember.request_id == SignatureRequest.request_id)
            .filter(
                SignatureRequest.estado.in_([RequestStatus.pendiente, RequestStatus.en_proceso]),
                or_(RequestMember.worker_id.in_(ids), RequestMember.user_id.in_(ids)),
                RequestMember.firmado.is_(False),
                or_(SignatureRequest.fecha_limite.is_(None), SignatureRequest.fecha_limite >= now),
            )
            .order_by(SignatureRequest.created_at.desc())
            .all()
        )

    @staticmethod
    def history_for_worker(session: Session, any_id: str) -> Tuple[ResolvedIdentity, List[Dict[str, Any]]]:
        resolved, firmas = SignatureLedger.list_by_worker(session, any_id)
        historial = []
        for firma in firmas:
            solicitud = session.get(SignatureRequest, firma.request_id) if firma.request_id else None
            historial.append({"firma": firma, "solicitud": solicitud})
        return resolved, historial

    @staticmethod
    def stats(session: Session, empresa_id: Optional[str] = None,
              solicitante_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        query = session.query(SignatureRequest)
        if empresa_id:
            query = query.filter(SignatureRequest.empresa_id == empresa_id)
        if solicitante_id:
            query = query.filter(SignatureRequest.solicitante_id == solicitante_id)
        requests = query.all()
        estados = {
            r.request_id: derive_request_status(r.estado, r.members, r.fecha_limite, now) for r in requests
        }

        def contar(estado):
            return sum(1 for r in requests if estados[r.request_id] == estado)

        por_tipo = {}
        for tipo, info in REQUEST_TYPES.items():
            del_tipo = [r for r in requests if r.tipo == tipo]
            if del_tipo:
                por_tipo[tipo] = {
                    **info,
                    "total": len(del_tipo),
                    "completadas": sum(1 for r in del_tipo if estados[r.request_id] == RequestStatus.completada),
                }

        return {
            "total": len(requests),
            "pendientes": contar(RequestStatus.pendiente),
            "en_proceso": contar(RequestStatus.en_proceso),
            "completadas": contar(RequestStatus.completada),
            "canceladas": contar(RequestStatus.cancelada),
            "vencidas": contar(RequestStatus.vencida),
            "total_firmas_requeridas": sum(r.total_requeridos for r in requests),
            "total_firmas_obtenidas": sum(r.total_firmados for r in requests),
            "por_tipo": por_tipo,
        }

    @staticmethod
    def expire_overdue(session: Session, now: Optional[datetime] = None) -> int:
        """Marca como vencidas las solicitudes abiertas con fecha límite pasada."""
        now = now or utcnow()
        abiertas = (
            session.query(SignatureRequest)
            .filter(
                SignatureRequest.estado.in_([RequestStatus.pendiente, RequestStatus.en_proceso]),
                SignatureRequest.fecha_limite.isnot(None),
                SignatureRequest.fecha_limite < now,
            )
            .all()
        )
        vencidas = 0
        for req in abiertas:
            if SignatureRequestService._sync_status(req, now) and req.estado == RequestStatus.vencida:
                vencidas += 1
        session.commit()
        if vencidas:
            logger.info("%d solicitudes marcadas como vencidas", vencidas)
        return vencidas
