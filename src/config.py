"""Configuración de la aplicación desde variables de entorno."""
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env en la raíz del proyecto (padre de src/)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(_env_path), extra="ignore")

    app_name: str = "Sistema de Firma Digital DS44"
    app_env: str = "development"
    debug: bool = False

    database_url: str = "sqlite:///./firmas.db"

    # Pepper global que se mezcla en cada hash de PIN
    pin_salt: str = "change-me"

    # Zona horaria usada para separar fecha/horario en cada firma
    timezone: str = "America/Santiago"

    log_level: str = "INFO"

    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    expiration_job_enabled: bool = True
    expiration_job_interval_minutes: int = 15

    seed_demo_data: bool = False

    @field_validator("pin_salt", "database_url")
    @classmethod
    def strip_value(cls, v: str) -> str:
        return (v or "").strip()


@lru_cache
def get_settings() -> Settings:
    return Settings()
