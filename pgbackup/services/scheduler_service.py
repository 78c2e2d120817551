"""
Servicio de programación de tareas de backup
"""
import logging
import signal
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from ..exceptions import ConfigValidationError
from ..logger import LoggerService
from ..models import BackupSettings, RunOutcome
from .backup_service import BackupService

JOB_ID = "database_backup"


class SchedulerService:
    """Servicio para programar y ejecutar backups automáticos"""

    def __init__(
        self,
        backup_service: BackupService,
        settings: BackupSettings,
        scheduler=None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Inicializa el servicio de programación

        Args:
            backup_service: Servicio de backup a ejecutar
            settings: Configuración de programación (cron, zona horaria)
            scheduler: Scheduler de APScheduler (por defecto BlockingScheduler)
            logger: Logger inyectado
        """
        self.backup_service = backup_service
        self.settings = settings
        self.logger = logger or LoggerService.get_logger("SchedulerService")
        if scheduler is None:
            scheduler_kwargs = {'timezone': settings.timezone} if settings.timezone else {}
            try:
                scheduler = BlockingScheduler(**scheduler_kwargs)
            except (LookupError, ValueError) as e:
                raise ConfigValidationError(f"Zona horaria inválida: '{settings.timezone}'") from e
        self.scheduler = scheduler
        self.trigger: Optional[CronTrigger] = None

    def start(self, run_immediately: bool = False, single_shot: bool = False) -> int:
        """
        Inicia el programador de tareas

        Args:
            run_immediately: Ejecuta un backup al iniciar y luego sigue con la programación
            single_shot: Ejecuta un solo backup y termina

        Returns:
            Código de salida del proceso

        Raises:
            ConfigValidationError: si la expresión cron es inválida
        """
        if not single_shot:
            # Validar la expresión antes de ejecutar nada
            self.trigger = self._build_trigger()

        if run_immediately or single_shot:
            self.logger.info("Ejecutando backup inicial...")
            outcome = self._run_startup_backup()
            if not outcome.success:
                self.logger.error("El backup inicial falló; terminando el proceso")
                return 1
            if single_shot:
                self.logger.info("Backup de la base de datos completado, saliendo...")
                return 0

        self.scheduler.add_job(
            self._run_scheduled_job,
            trigger=self.trigger,
            id=JOB_ID,
            name="Database Backup",
            max_instances=1,
            coalesce=True,
            # Un disparo tardío (host suspendido) se ejecuta igual, una sola vez
            misfire_grace_time=None,
            replace_existing=True
        )

        self.logger.info("=" * 70)
        self.logger.info("SERVICIO DE BACKUP AUTOMÁTICO INICIADO")
        self.logger.info("=" * 70)
        self.logger.info(f"Expresión cron: {self.settings.cron_schedule}")
        self.logger.info(f"Próxima ejecución: {self.get_next_run()}")
        self.logger.info("Presiona Ctrl+C para detener el servicio")
        self.logger.info("=" * 70)

        self._register_signal_handlers()
        try:
            self.scheduler.start()
        except KeyboardInterrupt:
            self._shutdown()
        return 0

    def _build_trigger(self) -> CronTrigger:
        try:
            return CronTrigger.from_crontab(self.settings.cron_schedule, timezone=self.settings.timezone)
        except (ValueError, LookupError) as e:
            raise ConfigValidationError(
                f"Expresión cron inválida '{self.settings.cron_schedule}': {e}"
            ) from e

    def _run_startup_backup(self) -> RunOutcome:
        try:
            return self.backup_service.run_once()
        except Exception as e:  # pylint: disable=broad-except
            self.logger.error(f"Error crítico durante backup: {e}", exc_info=True)
            return RunOutcome(success=False)

    def _run_scheduled_job(self) -> None:
        """Ejecuta el backup programado; un fallo nunca detiene los siguientes disparos"""
        try:
            self.logger.info(f"Ejecutando backup programado a las {datetime.now():%Y-%m-%d %H:%M:%S}")
            outcome = self.backup_service.run_once()
            if outcome.success:
                self.logger.info("Backup programado completado exitosamente")
            else:
                self.logger.warning(
                    "Backup programado fallido; se reintentará en la próxima ejecución. "
                    "Revisa los logs para más detalles."
                )
        except Exception as e:  # pylint: disable=broad-except
            self.logger.error(f"Error crítico durante backup: {e}", exc_info=True)

    def _register_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """
        Manejador de señales para shutdown graceful

        Args:
            signum: Número de señal
            frame: Frame actual
        """
        try:
            signal_name = signal.Signals(signum).name
        except ValueError:
            signal_name = str(signum)

        self.logger.info(f"Señal recibida: {signal_name}")
        self._shutdown()

    def _shutdown(self):
        """Detiene el servicio de forma ordenada"""
        self.logger.info("Deteniendo servicio de backup...")
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.logger.info("Servicio detenido correctamente")

    def get_next_run(self) -> str:
        """
        Obtiene la fecha de la próxima ejecución

        Returns:
            String con la próxima ejecución
        """
        if self.trigger is None:
            return "No hay ejecuciones programadas"
        next_run = self.trigger.get_next_fire_time(None, datetime.now(self.trigger.timezone))
        if next_run:
            return next_run.strftime('%Y-%m-%d %H:%M:%S %Z')
        return "No hay ejecuciones programadas"
