"""
Repositorio que traduce variables de entorno a configuración inmutable (Dependency Inversion)
"""
import os
from pathlib import Path
from typing import Mapping, Optional
from apscheduler.util import astimezone
from ..config import Config
from ..exceptions import ConfigValidationError
from ..logger import LoggerService
from ..models import AppSettings, BackupSettings, StorageSettings

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off', ''}


class EnvConfigRepository:
    """Lee la configuración desde el entorno del proceso"""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Inicializa el repositorio de configuración

        Args:
            environ: Variables a usar (por defecto os.environ)
        """
        self.environ = os.environ if environ is None else environ
        self.logger = LoggerService.get_logger("ConfigRepository")

    def load(self) -> AppSettings:
        """
        Construye la configuración completa

        Returns:
            AppSettings

        Raises:
            ConfigValidationError: si falta un valor obligatorio o alguno no se puede interpretar
        """
        settings = AppSettings(
            backup=self.get_backup_settings(),
            storage=self.get_storage_settings(),
        )
        self.logger.debug("Configuración cargada desde el entorno")
        return settings

    def get_backup_settings(self) -> BackupSettings:
        """
        Obtiene configuración del dump y de la programación

        Returns:
            Objeto BackupSettings
        """
        timeout = self._get_float('BACKUP_DUMP_TIMEOUT_SECONDS', Config.DEFAULT_DUMP_TIMEOUT_SECONDS)
        temp_dir = self._get('BACKUP_TEMP_DIR')

        return BackupSettings(
            database_url=self._get('BACKUP_DATABASE_URL') or '',
            dump_options=self._get('BACKUP_OPTIONS') or '',
            # Las variables de Railway tienen prioridad sobre las propias
            project=self._get('RAILWAY_PROJECT_NAME') or self._get('BACKUP_PROJECT_NAME'),
            environment=self._get('RAILWAY_ENVIRONMENT_NAME') or self._get('BACKUP_ENV'),
            frequency=self._get('BACKUP_FREQUENCY'),
            cron_schedule=self._get('BACKUP_CRON_SCHEDULE') or Config.DEFAULT_CRON_SCHEDULE,
            run_on_startup=self._get_bool('RUN_ON_STARTUP'),
            single_shot=self._get_bool('SINGLE_SHOT_MODE'),
            dump_timeout_seconds=timeout if timeout > 0 else None,
            temp_dir=Path(temp_dir) if temp_dir else None,
            timezone=self._get_timezone('BACKUP_TIMEZONE'),
        )

    def get_storage_settings(self) -> StorageSettings:
        """
        Obtiene configuración del destino S3

        Returns:
            Objeto StorageSettings
        """
        return StorageSettings(
            bucket=self._get('AWS_S3_BUCKET') or '',
            region=self._get('AWS_S3_REGION'),
            endpoint=self._get('AWS_S3_ENDPOINT'),
            force_path_style=self._get_bool('AWS_S3_FORCE_PATH_STYLE'),
            access_key_id=self._get('AWS_ACCESS_KEY_ID'),
            secret_access_key=self._get('AWS_SECRET_ACCESS_KEY'),
            verify_checksum=self._get_bool('SUPPORT_OBJECT_LOCK'),
            connect_timeout=self._get_float('AWS_S3_CONNECT_TIMEOUT', Config.DEFAULT_S3_TIMEOUT_SECONDS),
            read_timeout=self._get_float('AWS_S3_READ_TIMEOUT', Config.DEFAULT_S3_TIMEOUT_SECONDS),
        )

    def _get(self, name: str) -> Optional[str]:
        """Valor sin espacios; las cadenas vacías cuentan como ausentes"""
        value = self.environ.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def _get_bool(self, name: str) -> bool:
        value = (self.environ.get(name) or '').strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise ConfigValidationError(f"Valor booleano inválido en {name}: '{value}'")

    def _get_float(self, name: str, default: float) -> float:
        value = self._get(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as e:
            raise ConfigValidationError(f"Valor numérico inválido en {name}: '{value}'") from e

    def _get_timezone(self, name: str) -> Optional[str]:
        """Zona horaria del cron; se valida con el mismo parser que usa APScheduler"""
        value = self._get(name)
        if value is None:
            return None
        try:
            astimezone(value)
        except (LookupError, ValueError) as e:
            raise ConfigValidationError(f"Zona horaria inválida en {name}: '{value}'") from e
        return value

    @staticmethod
    def create_env_example(target: Path) -> bool:
        """
        Crea un archivo .env de ejemplo si no existe

        Args:
            target: Ruta del archivo a crear

        Returns:
            True si se creó el archivo
        """
        if target.exists():
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            f.write(Config.ENV_EXAMPLE)
        return True
