import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import create_tables  # noqa: F401  registra todos los modelos en Base
from database import Base, get_db
from modules.common.context import RequestContext
from modules.enrollment.services.enrollment_service import EnrollmentService
from modules.identity.models import User, UserRole, Worker

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PIN = "2580"
OTRO_PIN = "1397"

# RUTs válidos (módulo 11)
RUTS = ["12.345.678-5", "9.876.543-3", "11.111.111-1", "22.222.222-2", "7.654.321-6"]


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = TestingSessionLocal()
    yield db
    db.close()


@pytest.fixture
def contexto():
    return RequestContext(ip_address="10.0.0.7", user_agent="pytest")


@pytest.fixture
def make_worker(session):
    def _make(nombre="Juan", rut=RUTS[0], user_id=None, worker_id=None, cargo="Operador", empresa_id="default"):
        worker = Worker(
            worker_id=worker_id or str(uuid.uuid4()),
            rut=rut,
            nombre=nombre,
            apellido="Test",
            cargo=cargo,
            empresa_id=empresa_id,
            user_id=user_id,
            habilitado=False,
        )
        session.add(worker)
        session.commit()
        return worker
    return _make


@pytest.fixture
def make_user(session):
    def _make(nombre="Paula", rut=RUTS[2], worker_id=None, user_id=None, rol=UserRole.trabajador):
        user = User(
            user_id=user_id or str(uuid.uuid4()),
            rut=rut,
            nombre=nombre,
            apellido="Test",
            rol=rol,
            worker_id=worker_id,
            habilitado=False,
        )
        session.add(user)
        session.commit()
        return user
    return _make


@pytest.fixture
def linked_pair(make_worker, make_user):
    """Worker y user legacy vinculados en ambos sentidos."""
    worker_id, user_id = str(uuid.uuid4()), str(uuid.uuid4())
    worker = make_worker(worker_id=worker_id, user_id=user_id)
    user = make_user(user_id=user_id, worker_id=worker_id, rut=worker.rut, nombre=worker.nombre)
    return worker, user


@pytest.fixture
def enroll(session, contexto):
    def _enroll(subject_id, pin=PIN):
        EnrollmentService.set_pin(session, subject_id, pin)
        return EnrollmentService.complete_enrollment(session, subject_id, pin, contexto)
    return _enroll


@pytest.fixture
def solicitante(make_user):
    return make_user(nombre="Prevencionista", rut=RUTS[3], rol=UserRole.prevencionista)


@pytest.fixture
def client():
    from main import app

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # sin "with": no se ejecuta el lifespan (tablas y job de la base real)
    yield TestClient(app)
    app.dependency_overrides.clear()
