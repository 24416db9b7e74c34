import logging

from apscheduler.schedulers.background import BackgroundScheduler

from config import get_settings
from database import SessionLocal
from modules.signature_requests.services.signature_request_service import SignatureRequestService

logger = logging.getLogger(__name__)


def expire_requests_once() -> int:
    with SessionLocal() as session:
        return SignatureRequestService.expire_overdue(session)


def start_expiration_job() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    minutos = get_settings().expiration_job_interval_minutes

    def job():
        try:
            expire_requests_once()
        except Exception:
            logger.exception("Fallo el job de vencimiento de solicitudes")

    scheduler.add_job(job, 'interval', minutes=minutos)  # vencimiento por fecha límite
    scheduler.start()
    logger.info("Job de vencimiento de solicitudes cada %d minutos", minutos)
    return scheduler
