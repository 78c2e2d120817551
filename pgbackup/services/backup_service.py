"""
Servicio principal que orquesta una ejecución de backup
"""
import logging
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional
from ..exceptions import BackupError, CleanupError
from ..logger import LoggerService
from ..models import AppSettings, BackupIdentity, PipelineState, RunOutcome
from ..storage.s3_uploader import S3Uploader
from ..strategies.base_strategy import DumpStrategy
from ..strategies.postgresql_strategy import PostgreSQLDumpStrategy
from .cleanup_service import CleanupService

_STAGE_BY_STATE = {
    PipelineState.IDLE: "config",
    PipelineState.DUMPING: "dump",
    PipelineState.UPLOADING: "upload",
    PipelineState.CLEANING_UP: "cleanup",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BackupService:
    """Orquesta dump -> subida -> limpieza para una sola ejecución"""

    def __init__(
        self,
        settings: AppSettings,
        dump_strategy: Optional[DumpStrategy] = None,
        uploader: Optional[S3Uploader] = None,
        cleanup_service: Optional[CleanupService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Inicializa el servicio de backup

        Args:
            settings: Configuración inmutable de la aplicación
            dump_strategy: Estrategia de dump (por defecto PostgreSQL)
            uploader: Cliente de subida (por defecto S3 con la configuración dada)
            cleanup_service: Servicio de eliminación del archivo local
            clock: Fuente de la hora actual
            logger: Logger inyectado
        """
        self.settings = settings
        self.logger = logger or LoggerService.get_logger("BackupService")
        self.dump_strategy = dump_strategy or PostgreSQLDumpStrategy(
            database_url=settings.backup.database_url,
            dump_options=settings.backup.dump_options,
            timeout_seconds=settings.backup.dump_timeout_seconds
        )
        self._uploader = uploader
        self.cleanup_service = cleanup_service or CleanupService()
        self.clock = clock or _utc_now
        self.state = PipelineState.IDLE

    @property
    def uploader(self) -> S3Uploader:
        """El cliente S3 se crea recién en la primera subida"""
        if self._uploader is None:
            self._uploader = S3Uploader(self.settings.storage)
        return self._uploader

    def run_once(self) -> RunOutcome:
        """
        Ejecuta exactamente un dump, una subida y una limpieza

        Returns:
            RunOutcome con el resultado; los errores de cada etapa no se propagan
        """
        self.logger.info("=" * 70)
        self.logger.info("INICIANDO BACKUP DE LA BASE DE DATOS")
        self.logger.info("=" * 70)

        start_time = time.time()
        self.state = PipelineState.IDLE
        identity: Optional[BackupIdentity] = None
        local_path: Optional[Path] = None
        outcome: Optional[RunOutcome] = None
        cleanup_error: Optional[CleanupError] = None

        try:
            identity = self._resolve_identity()
            local_path = self._local_path(identity)

            self._transition(PipelineState.DUMPING)
            artifact = self.dump_strategy.execute_dump(local_path)

            self._transition(PipelineState.UPLOADING)
            self.uploader.upload(identity, artifact)

            outcome = RunOutcome.ok(identity)
        except BackupError as e:
            outcome = self._fail(e, identity)
        except Exception as e:  # pylint: disable=broad-except
            error = BackupError(f"fallo inesperado: {e}", stage=_STAGE_BY_STATE.get(self.state, "backup"))
            error.__cause__ = e
            outcome = self._fail(error, identity)
        finally:
            # El archivo local nunca debe sobrevivir a la ejecución
            if local_path is not None:
                cleanup_error = self._cleanup(local_path, succeeded=outcome is not None and outcome.success)

        outcome.cleanup_error = cleanup_error
        outcome.duration_seconds = time.time() - start_time
        self.state = PipelineState.DONE if outcome.success else PipelineState.FAILED
        self._print_summary(outcome)
        return outcome

    def _resolve_identity(self) -> BackupIdentity:
        backup = self.settings.backup
        identity = BackupIdentity.resolve(
            project=backup.project,
            environment=backup.environment,
            frequency=backup.frequency,
            now=self.clock()
        )
        self.logger.info(f"Entorno: {identity.environment}")
        self.logger.info(f"Proyecto: {identity.project}")
        self.logger.info(f"Frecuencia: {identity.frequency}")
        return identity

    def _local_path(self, identity: BackupIdentity) -> Path:
        base_dir = self.settings.backup.temp_dir or Path(tempfile.gettempdir())
        return base_dir / identity.filename

    def _transition(self, state: PipelineState) -> None:
        self.logger.debug(f"Estado del pipeline: {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self, error: BackupError, identity: Optional[BackupIdentity]) -> RunOutcome:
        self.logger.error(f"Error en la etapa '{error.stage}' del backup: {error}")
        if error.__cause__ is not None:
            self.logger.debug("Causa original", exc_info=error.__cause__)
        self._transition(PipelineState.FAILED)
        return RunOutcome.failed(error, identity)

    def _cleanup(self, local_path: Path, succeeded: bool) -> Optional[CleanupError]:
        """
        Intenta eliminar el archivo local una sola vez

        Returns:
            El CleanupError si la eliminación falló, None en otro caso
        """
        if succeeded:
            self._transition(PipelineState.CLEANING_UP)
        try:
            self.cleanup_service.delete_artifact(local_path)
        except CleanupError as e:
            self.logger.warning(f"No se pudo eliminar el archivo local (no es fatal): {e.message}")
            return e
        return None

    def _print_summary(self, outcome: RunOutcome) -> None:
        """
        Imprime resumen de la ejecución

        Args:
            outcome: Resultado de la ejecución
        """
        self.logger.info("-" * 70)
        if outcome.success:
            self.logger.info(f"✓ BACKUP COMPLETADO: {outcome}")
        else:
            self.logger.error(f"✗ BACKUP FALLIDO: {outcome}")
        if outcome.cleanup_error:
            self.logger.warning(
                f"ATENCIÓN: el archivo temporal {outcome.cleanup_error.path} sigue en disco"
            )
        self.logger.info("=" * 70)
