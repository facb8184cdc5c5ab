# src/config/loader.py
"""
Загрузчик конфигурации ядра диспетчеризации.
Единственный источник истины — config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "dispatch_core"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/dispatch_core.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "dispatch_core"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "dispatch"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ (ретрансляция событий во внешние сервисы)."""
    RABBITMQ_ENABLED: bool = False
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "dispatch.events"

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class GoogleMapsSettings(BaseModel):
    """Настройки Google Distance Matrix API."""
    GOOGLE_MAPS_API_KEY: str = ""
    DISTANCE_MATRIX_TIMEOUT: float = 10.0

    @field_validator("GOOGLE_MAPS_API_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает API ключ из переменных окружения."""
        if not v:
            return os.getenv("GOOGLE_MAPS_API_KEY", "")
        return v


class StorageSettings(BaseModel):
    """Выбор хранилища бронирований и кошельков."""
    STORAGE_BACKEND: str = "memory"  # memory | postgres


class GeoSettings(BaseModel):
    """Настройки гео-индекса."""
    GEO_BACKEND: str = "memory"  # memory | redis
    LOCATION_TTL_SECONDS: int = 3600
    SWEEP_INTERVAL_SECONDS: int = 60


class SearchSettings(BaseModel):
    """Настройки поиска исполнителей."""
    SEARCH_RADIUS_KM: float = 10.0
    SEARCH_RADIUS_MAX_KM: float = 10.0
    SEARCH_RADIUS_STEP_KM: float = 5.0
    MAX_DRIVERS_TO_NOTIFY: int = 5
    CANDIDATE_POOL_SIZE: int = 50
    # None — предложения не истекают автоматически
    OFFER_TIMEOUT_SECONDS: int | None = None
    EXPIRY_CHECK_INTERVAL_SECONDS: int = 5
    # Наценка за спрос: больше SURGE_DEMAND_THRESHOLD бронирований в поиске
    # в радиусе SURGE_DEMAND_RADIUS_KM от точки подачи
    SURGE_DEMAND_THRESHOLD: int = 10
    SURGE_DEMAND_RADIUS_KM: float = 5.0
    SURGE_DEMAND_PERCENT: Decimal = Decimal("20")


class VehicleTariff(BaseModel):
    """Тариф одного класса транспорта."""
    base: Decimal
    per_km: Decimal
    per_minute: Decimal
    minimum: Decimal


def _default_tariffs() -> dict[str, VehicleTariff]:
    return {
        "2-wheeler": VehicleTariff(base=30, per_km=8, per_minute=1, minimum=50),
        "3-wheeler": VehicleTariff(base=40, per_km=10, per_minute="1.5", minimum=80),
        "mini-truck": VehicleTariff(base=50, per_km=12, per_minute=2, minimum=100),
        "tempo": VehicleTariff(base=60, per_km=15, per_minute="2.5", minimum=120),
        "large-truck": VehicleTariff(base=80, per_km=20, per_minute=3, minimum=200),
    }


class FareSettings(BaseModel):
    """Настройки тарифов."""
    TARIFFS: dict[str, VehicleTariff] = Field(default_factory=_default_tariffs)
    HELPER_SURCHARGE: Decimal = Decimal("50")
    FRAGILE_SURCHARGE: Decimal = Decimal("30")
    HEAVY_SURCHARGE: Decimal = Decimal("100")
    SURGE_MULTIPLIER: Decimal = Decimal("1.0")
    PLATFORM_COMMISSION_PERCENT: Decimal = Decimal("20")
    CURRENCY: str = "INR"


class LedgerSettings(BaseModel):
    """Настройки кошельков."""
    WITHDRAWAL_MIN_AMOUNT: Decimal = Decimal("100")
    WITHDRAWAL_MAX_AMOUNT: Decimal = Decimal("50000")
    TRANSACTION_WINDOW: int = 500
    HISTORY_PAGE_SIZE: int = 20


class EventSettings(BaseModel):
    """Настройки шины событий."""
    DRAIN_TIMEOUT_SECONDS: float = 5.0


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    google_maps: GoogleMapsSettings = Field(default_factory=GoogleMapsSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    geo: GeoSettings = Field(default_factory=GeoSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    fares: FareSettings = Field(default_factory=FareSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    events: EventSettings = Field(default_factory=EventSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Конфиг плоский: каждая секция забирает известные ей ключи.
        Секреты и адреса хостов переопределяются из переменных окружения.
        """
        config_data = load_config_json()
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        env_overrides = (
            "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
            "REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD",
            "RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD",
            "GOOGLE_MAPS_API_KEY", "STORAGE_BACKEND", "GEO_BACKEND",
        )
        for key in env_overrides:
            value = os.getenv(key)
            if value:
                data[key] = value

        def section(model: type[BaseModel]) -> Any:
            return model(**{k: v for k, v in data.items() if k in model.model_fields})

        return cls(
            system=section(SystemSettings),
            logging=section(LoggingSettings),
            database=section(DatabaseSettings),
            redis=section(RedisSettings),
            rabbitmq=section(RabbitMQSettings),
            google_maps=section(GoogleMapsSettings),
            storage=section(StorageSettings),
            geo=section(GeoSettings),
            search=section(SearchSettings),
            fares=section(FareSettings),
            ledger=section(LedgerSettings),
            events=section(EventSettings),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
