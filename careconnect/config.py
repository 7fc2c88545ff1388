# careconnect/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===== App =====
    APP_NAME: str = "careconnect"
    ENV: str = "dev"
    # TZ de la clínica (solo para "hoy"/"mañana"; los slots no dependen de ella)
    TIMEZONE: str = "America/Mexico_City"

    # ===== DB =====
    # En producción define DATABASE_URL con tu Postgres. Local cae a SQLite.
    DATABASE_URL: str = "sqlite:///./careconnect.db"

    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # ===== Agenda =====
    SLOT_MINUTES: int = 30

    # ===== Recordatorios =====
    SCHEDULER_ENABLED: bool = True
    REMINDER_CRON_MINUTE: int = 0  # cada hora en el minuto indicado

    # ===== Admin =====
    ADMIN_TOKEN: Optional[str] = None

    def model_post_init(self, __context) -> None:
        """
        Algunos proveedores entregan postgres://, que SQLAlchemy 2 ya no acepta.
        """
        if self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = "postgresql://" + self.DATABASE_URL[len("postgres://"):]


settings = Settings()
