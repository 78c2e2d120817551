"""
Taxonomía de errores del pipeline de backup
"""
from enum import Enum
from typing import Optional


class BackupError(RuntimeError):
    """Error base: indica en qué etapa del pipeline ocurrió el fallo"""

    stage = "backup"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        normalized = message.strip() or "error desconocido"
        if stage is not None:
            self.stage = stage
        super().__init__(normalized)
        self.message = normalized

    def __str__(self):
        return f"[{self.stage}] {self.message}"


class ConfigValidationError(BackupError):
    """Campos de configuración ausentes o fuera de los valores permitidos"""

    stage = "config"


class DumpExecutionError(BackupError):
    """La herramienta de dump terminó con código distinto de cero"""

    stage = "dump"

    def __init__(self, message: str, *, exit_status: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.exit_status = exit_status
        self.stderr = stderr

    def __str__(self):
        details = f"[{self.stage}] {self.message} (exit status: {self.exit_status})"
        if self.stderr:
            details += f"\n{self.stderr}"
        return details


class DumpValidationError(BackupError):
    """El archivo generado está vacío o no se puede descomprimir"""

    stage = "dump"


class StorageUnreachableKind(str, Enum):
    """Sub-tipos de fallo del chequeo previo del bucket"""

    BUCKET_MISSING = "bucket-missing"
    ACCESS_DENIED = "access-denied"
    MALFORMED_RESPONSE = "malformed-endpoint-response"
    UNKNOWN = "unknown"


class StorageUnreachableError(BackupError):
    """El bucket no es accesible; la transferencia nunca se intenta"""

    stage = "upload"

    def __init__(self, message: str, *, kind: StorageUnreachableKind, code: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.code = code

    def __str__(self):
        return f"[{self.stage}] {self.message} ({self.kind.value})"


class StorageTransferError(BackupError):
    """Fallo durante la subida del archivo"""

    stage = "upload"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.request_id = request_id
        self.http_status = http_status

    def __str__(self):
        return (
            f"[{self.stage}] {self.message} "
            f"(code: {self.code}, request id: {self.request_id}, http status: {self.http_status})"
        )


class CleanupError(BackupError):
    """No se pudo eliminar el archivo local; nunca es fatal"""

    stage = "cleanup"

    def __init__(self, message: str, *, path: str):
        super().__init__(message)
        self.path = path
