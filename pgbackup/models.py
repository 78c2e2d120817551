"""
Modelos de datos del sistema
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from .config import Config
from .exceptions import BackupError, CleanupError, ConfigValidationError


@dataclass(frozen=True)
class StorageSettings:
    """Configuración del destino S3"""
    bucket: str
    region: Optional[str] = None
    endpoint: Optional[str] = None
    force_path_style: bool = False
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    verify_checksum: bool = False
    connect_timeout: float = Config.DEFAULT_S3_TIMEOUT_SECONDS
    read_timeout: float = Config.DEFAULT_S3_TIMEOUT_SECONDS

    def __post_init__(self):
        """Validación después de inicialización"""
        if not self.bucket:
            raise ConfigValidationError("El nombre del bucket es obligatorio")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ConfigValidationError("Los timeouts de S3 deben ser mayores a 0")


@dataclass(frozen=True)
class BackupSettings:
    """Configuración del dump y de la programación"""
    database_url: str
    dump_options: str = ""
    project: Optional[str] = None
    environment: Optional[str] = None
    frequency: Optional[str] = None
    cron_schedule: str = Config.DEFAULT_CRON_SCHEDULE
    run_on_startup: bool = False
    single_shot: bool = False
    dump_timeout_seconds: Optional[float] = Config.DEFAULT_DUMP_TIMEOUT_SECONDS
    temp_dir: Optional[Path] = None
    timezone: Optional[str] = None

    def __post_init__(self):
        """Validación después de inicialización"""
        if not self.database_url:
            raise ConfigValidationError("La URL de la base de datos es obligatoria")
        if not self.cron_schedule.strip():
            raise ConfigValidationError("La expresión cron no puede estar vacía")
        if self.dump_timeout_seconds is not None and self.dump_timeout_seconds <= 0:
            raise ConfigValidationError("El timeout del dump debe ser mayor a 0")


@dataclass(frozen=True)
class AppSettings:
    """Configuración completa, leída una sola vez al arrancar"""
    backup: BackupSettings
    storage: StorageSettings


@dataclass(frozen=True)
class BackupIdentity:
    """Identidad de una ejecución: de aquí salen el nombre local y la clave remota"""
    project: str
    environment: str
    frequency: str
    timestamp: str

    @staticmethod
    def normalize_project(name: str) -> str:
        """Minúsculas, espacios y barras a guiones, sin caracteres fuera de [a-z0-9-]"""
        slug = re.sub(r"[ /]", "-", name.lower())
        return re.sub(r"[^a-z0-9-]", "", slug)

    @staticmethod
    def format_timestamp(moment: datetime) -> str:
        """
        Convierte un instante a ISO-8601 (UTC, milisegundos, sufijo Z)
        apto para nombres de archivo

        Args:
            moment: Instante a formatear; si no tiene zona se asume UTC

        Returns:
            Texto como 2024-01-01T00-00-00-000Z
        """
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        moment = moment.astimezone(timezone.utc)
        iso = f"{moment:%Y-%m-%dT%H:%M:%S}.{moment.microsecond // 1000:03d}Z"
        return re.sub(r"[:.]+", "-", iso)

    @classmethod
    def resolve(
        cls,
        project: Optional[str],
        environment: Optional[str],
        frequency: Optional[str],
        now: datetime,
    ) -> "BackupIdentity":
        """
        Valida y normaliza la identidad del backup

        Args:
            project: Nombre del proyecto tal como viene de la configuración
            environment: staging, uat o prod
            frequency: daily, weekly o monthly
            now: Instante de la ejecución

        Returns:
            BackupIdentity inmutable

        Raises:
            ConfigValidationError: si falta un campo o está fuera de rango
        """
        missing = [
            field_name
            for field_name, value in (
                ("project", project),
                ("environment", environment),
                ("frequency", frequency),
            )
            if not value
        ]
        if missing:
            raise ConfigValidationError(
                f"Faltan campos de identidad del backup: {', '.join(missing)}"
            )

        if environment not in Config.SUPPORTED_ENVIRONMENTS:
            raise ConfigValidationError(
                f"Entorno inválido '{environment}'; "
                f"valores permitidos: {', '.join(Config.SUPPORTED_ENVIRONMENTS)}"
            )
        if frequency not in Config.SUPPORTED_FREQUENCIES:
            raise ConfigValidationError(
                f"Frecuencia inválida '{frequency}'; "
                f"valores permitidos: {', '.join(Config.SUPPORTED_FREQUENCIES)}"
            )

        slug = cls.normalize_project(project)
        if not slug:
            raise ConfigValidationError(
                f"El nombre de proyecto '{project}' queda vacío tras normalizarlo"
            )

        return cls(
            project=slug,
            environment=environment,
            frequency=frequency,
            timestamp=cls.format_timestamp(now),
        )

    @property
    def filename(self) -> str:
        return f"{self.project}-{self.environment}-{self.timestamp}{Config.ARCHIVE_SUFFIX}"

    @property
    def prefix(self) -> str:
        return f"{self.project}/{self.environment}/{self.frequency}"

    @property
    def key(self) -> str:
        return f"{self.prefix}/{self.filename}"


@dataclass(frozen=True)
class DumpArtifact:
    """Archivo local producido por el dump"""
    path: Path
    size_bytes: int

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


@dataclass(frozen=True)
class UploadDescriptor:
    """Destino de una subida; se usa una sola vez"""
    bucket: str
    key: str
    content_md5: Optional[str] = None


class PipelineState(str, Enum):
    """Estados del pipeline de una ejecución"""
    IDLE = "idle"
    DUMPING = "dumping"
    UPLOADING = "uploading"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunOutcome:
    """Resultado de una ejecución de backup"""
    success: bool
    identity: Optional[BackupIdentity] = None
    key: Optional[str] = None
    stage: Optional[str] = None
    error: Optional[BackupError] = None
    cleanup_error: Optional[CleanupError] = None
    duration_seconds: float = 0.0

    @classmethod
    def ok(cls, identity: BackupIdentity) -> "RunOutcome":
        return cls(success=True, identity=identity, key=identity.key)

    @classmethod
    def failed(cls, error: BackupError, identity: Optional[BackupIdentity] = None) -> "RunOutcome":
        return cls(
            success=False,
            identity=identity,
            key=identity.key if identity else None,
            stage=error.stage,
            error=error,
        )

    def __str__(self):
        if self.success:
            text = f"✓ {self.key} ({self.duration_seconds:.2f}s)"
            if self.cleanup_error:
                text += f" [limpieza pendiente: {self.cleanup_error.message}]"
            return text
        return f"✗ etapa {self.stage}: {self.error}"
