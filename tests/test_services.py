"""
Tests unitarios para la orquestación y la programación de backups
"""
import logging
import shutil
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

# Agregar la raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from apscheduler.triggers.cron import CronTrigger

from pgbackup.exceptions import (
    BackupError,
    CleanupError,
    ConfigValidationError,
    DumpExecutionError,
    DumpValidationError,
    StorageTransferError,
    StorageUnreachableError,
    StorageUnreachableKind,
)
from pgbackup.models import (
    AppSettings,
    BackupIdentity,
    BackupSettings,
    DumpArtifact,
    PipelineState,
    RunOutcome,
    StorageSettings,
)
from pgbackup.services import scheduler_service
from pgbackup.services.backup_service import BackupService
from pgbackup.services.cleanup_service import CleanupService
from pgbackup.services.scheduler_service import SchedulerService

FIXED_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
EXPECTED_FILENAME = "acme-corp-prod-2024-01-01T00-00-00-000Z.tar.gz"
EXPECTED_KEY = f"acme-corp/prod/daily/{EXPECTED_FILENAME}"


def make_settings(temp_dir=None, **backup_overrides) -> AppSettings:
    backup = dict(
        database_url="postgresql://user:pass@db:5432/app",
        project="Acme Corp",
        environment="prod",
        frequency="daily",
        temp_dir=temp_dir,
    )
    backup.update(backup_overrides)
    return AppSettings(
        backup=BackupSettings(**backup),
        storage=StorageSettings(bucket="backups"),
    )


def writing_dump(path: Path) -> DumpArtifact:
    path.write_bytes(b"dump")
    return DumpArtifact(path=path, size_bytes=4)


class TestCleanupService(unittest.TestCase):
    """Tests para CleanupService"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.service = CleanupService()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_delete_existing_file(self):
        """Test eliminar archivo existente"""
        path = self.temp_dir / "backup.tar.gz"
        path.write_bytes(b"data")
        self.assertTrue(self.service.delete_artifact(path))
        self.assertFalse(path.exists())

    def test_delete_missing_file(self):
        """Test archivo inexistente no es un error"""
        self.assertFalse(self.service.delete_artifact(self.temp_dir / "missing.tar.gz"))

    def test_delete_failure(self):
        """Test fallo al eliminar"""
        path = self.temp_dir / "backup.tar.gz"
        with mock.patch.object(Path, 'unlink', side_effect=PermissionError("denied")):
            with self.assertRaises(CleanupError) as ctx:
                self.service.delete_artifact(path)
        self.assertEqual(ctx.exception.path, str(path))
        self.assertEqual(ctx.exception.stage, "cleanup")


class TestBackupService(unittest.TestCase):
    """Tests para BackupService"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.local_path = self.temp_dir / EXPECTED_FILENAME
        self.dump = mock.MagicMock()
        self.dump.execute_dump.side_effect = writing_dump
        self.uploader = mock.MagicMock()
        self.logger = logging.getLogger("tests.backup_service")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def service(self, settings=None, **kwargs) -> BackupService:
        return BackupService(
            settings or make_settings(self.temp_dir),
            dump_strategy=self.dump,
            uploader=self.uploader,
            clock=lambda: FIXED_NOW,
            logger=self.logger,
            **kwargs
        )

    def test_successful_run(self):
        """Test ejecución completa"""
        service = self.service()
        outcome = service.run_once()

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.key, EXPECTED_KEY)
        self.assertIsNone(outcome.error)
        self.assertIsNone(outcome.cleanup_error)
        self.dump.execute_dump.assert_called_once_with(self.local_path)
        identity, artifact = self.uploader.upload.call_args.args
        self.assertEqual(identity.key, EXPECTED_KEY)
        self.assertEqual(artifact.path, self.local_path)
        self.assertFalse(self.local_path.exists())
        self.assertEqual(service.state, PipelineState.DONE)

    def test_default_temp_dir(self):
        """Test sin directorio configurado se usa el temporal del sistema"""
        settings = make_settings(None)
        service = self.service(settings)
        service.run_once()
        expected = Path(tempfile.gettempdir()) / EXPECTED_FILENAME
        self.dump.execute_dump.assert_called_once_with(expected)
        self.assertFalse(expected.exists())

    def test_invalid_identity_invokes_nothing(self):
        """Test identidad inválida falla antes de cualquier proceso externo"""
        for overrides in ({'environment': 'production'}, {'frequency': 'hourly'}, {'project': None}):
            with self.subTest(overrides=overrides):
                self.dump.reset_mock()
                self.uploader.reset_mock()
                service = self.service(make_settings(self.temp_dir, **overrides))
                outcome = service.run_once()
                self.assertFalse(outcome.success)
                self.assertIsInstance(outcome.error, ConfigValidationError)
                self.assertEqual(outcome.stage, "config")
                self.dump.execute_dump.assert_not_called()
                self.uploader.upload.assert_not_called()
                self.assertEqual(service.state, PipelineState.FAILED)

    def test_dump_execution_error_skips_upload(self):
        """Test error del dump no llega a la subida"""
        def failing_dump(path):
            path.write_bytes(b"partial")
            raise DumpExecutionError("pg_dump falló", exit_status=1, stderr="fatal")

        self.dump.execute_dump.side_effect = failing_dump
        outcome = self.service().run_once()

        self.assertFalse(outcome.success)
        self.assertIsInstance(outcome.error, DumpExecutionError)
        self.assertEqual(outcome.stage, "dump")
        self.uploader.upload.assert_not_called()
        self.uploader.check_connection.assert_not_called()
        self.assertFalse(self.local_path.exists())

    def test_empty_dump_skips_upload(self):
        """Test archivo vacío no se sube"""
        def empty_dump(path):
            path.write_bytes(b"")
            raise DumpValidationError("vacío")

        self.dump.execute_dump.side_effect = empty_dump
        outcome = self.service().run_once()

        self.assertIsInstance(outcome.error, DumpValidationError)
        self.uploader.upload.assert_not_called()
        self.assertFalse(self.local_path.exists())

    def test_storage_unreachable(self):
        """Test fallo del chequeo previo"""
        self.uploader.upload.side_effect = StorageUnreachableError(
            "sin acceso", kind=StorageUnreachableKind.ACCESS_DENIED
        )
        outcome = self.service().run_once()

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.stage, "upload")
        self.assertEqual(outcome.error.kind, StorageUnreachableKind.ACCESS_DENIED)
        self.assertFalse(self.local_path.exists())

    def test_transfer_error_is_logged(self):
        """Test el error de transferencia se registra con su etapa"""
        self.uploader.upload.side_effect = StorageTransferError("falló", code="InternalError")
        with self.assertLogs(self.logger, level='ERROR') as logs:
            outcome = self.service().run_once()

        self.assertIsInstance(outcome.error, StorageTransferError)
        self.assertTrue(any("upload" in line for line in logs.output))
        self.assertFalse(self.local_path.exists())

    def test_unexpected_error_keeps_stage(self):
        """Test errores inesperados se asocian a la etapa en curso"""
        self.uploader.upload.side_effect = RuntimeError("boom")
        outcome = self.service().run_once()

        self.assertFalse(outcome.success)
        self.assertIsInstance(outcome.error, BackupError)
        self.assertEqual(outcome.stage, "upload")
        self.assertIsInstance(outcome.error.__cause__, RuntimeError)
        self.assertFalse(self.local_path.exists())

    def test_cleanup_failure_keeps_success(self):
        """Test fallo de limpieza no cambia el resultado"""
        cleanup = mock.MagicMock()
        cleanup.delete_artifact.side_effect = CleanupError("ocupado", path=str(self.local_path))
        with self.assertLogs(self.logger, level='WARNING'):
            outcome = self.service(cleanup_service=cleanup).run_once()

        self.assertTrue(outcome.success)
        self.assertIsInstance(outcome.cleanup_error, CleanupError)
        cleanup.delete_artifact.assert_called_once_with(self.local_path)

    def test_cleanup_attempted_once_on_failure(self):
        """Test la limpieza se intenta una sola vez también al fallar"""
        cleanup = mock.MagicMock()
        self.uploader.upload.side_effect = StorageTransferError("falló")
        outcome = self.service(cleanup_service=cleanup).run_once()

        self.assertFalse(outcome.success)
        cleanup.delete_artifact.assert_called_once_with(self.local_path)


class TestSchedulerService(unittest.TestCase):
    """Tests para SchedulerService"""

    def setUp(self):
        self.backup_service = mock.MagicMock()
        self.identity = BackupIdentity.resolve("Acme Corp", "prod", "daily", FIXED_NOW)
        self.scheduler = mock.MagicMock()
        patcher = mock.patch.object(scheduler_service.signal, 'signal')
        self.signal = patcher.start()
        self.addCleanup(patcher.stop)

    def service(self, **settings) -> SchedulerService:
        backup_settings = BackupSettings(database_url="postgresql://db/app", **settings)
        return SchedulerService(self.backup_service, backup_settings, scheduler=self.scheduler)

    def ok(self):
        return RunOutcome.ok(self.identity)

    def failed(self):
        return RunOutcome.failed(DumpExecutionError("falló", exit_status=1))

    def test_single_shot_success(self):
        """Test modo single-shot exitoso"""
        self.backup_service.run_once.return_value = self.ok()
        self.assertEqual(self.service().start(single_shot=True), 0)
        self.backup_service.run_once.assert_called_once_with()
        self.scheduler.add_job.assert_not_called()
        self.scheduler.start.assert_not_called()

    def test_single_shot_failure(self):
        """Test modo single-shot fallido"""
        self.backup_service.run_once.return_value = self.failed()
        self.assertEqual(self.service().start(single_shot=True), 1)
        self.scheduler.start.assert_not_called()

    def test_startup_run_failure_exits(self):
        """Test el backup inicial fallido termina el proceso"""
        self.backup_service.run_once.return_value = self.failed()
        self.assertEqual(self.service().start(run_immediately=True), 1)
        self.scheduler.add_job.assert_not_called()

    def test_startup_run_exception_exits(self):
        """Test una excepción en el backup inicial termina el proceso"""
        self.backup_service.run_once.side_effect = RuntimeError("boom")
        self.assertEqual(self.service().start(run_immediately=True), 1)

    def test_startup_run_then_schedule(self):
        """Test backup inicial y luego programación"""
        self.backup_service.run_once.return_value = self.ok()
        self.assertEqual(self.service().start(run_immediately=True), 0)
        self.backup_service.run_once.assert_called_once_with()
        self.scheduler.add_job.assert_called_once()
        self.scheduler.start.assert_called_once_with()

    def test_schedule_only_with_default_cron(self):
        """Test programación con la expresión por defecto"""
        service = self.service()
        self.assertEqual(service.start(), 0)
        self.backup_service.run_once.assert_not_called()

        kwargs = self.scheduler.add_job.call_args.kwargs
        self.assertIsInstance(kwargs['trigger'], CronTrigger)
        self.assertEqual(kwargs['max_instances'], 1)
        self.assertTrue(kwargs['coalesce'])
        self.assertIn('misfire_grace_time', kwargs)
        self.assertIsNone(kwargs['misfire_grace_time'])
        next_run = kwargs['trigger'].get_next_fire_time(None, datetime.now(kwargs['trigger'].timezone))
        self.assertEqual((next_run.hour, next_run.minute, next_run.second), (0, 0, 0))
        self.assertNotEqual(service.get_next_run(), "No hay ejecuciones programadas")

    def test_invalid_cron_expression(self):
        """Test expresión cron inválida"""
        with self.assertRaises(ConfigValidationError):
            self.service(cron_schedule="not a cron").start(run_immediately=True)
        self.backup_service.run_once.assert_not_called()

    def test_failed_trigger_does_not_suppress_next(self):
        """Test un disparo fallido no impide el siguiente"""
        self.backup_service.run_once.side_effect = [RuntimeError("boom"), self.failed(), self.ok()]
        self.service().start()
        job = self.scheduler.add_job.call_args.args[0]

        job()
        job()
        job()

        self.assertEqual(self.backup_service.run_once.call_count, 3)

    def test_invalid_timezone_on_default_scheduler(self):
        """Test zona horaria inválida al construir el scheduler"""
        settings = BackupSettings(database_url="postgresql://db/app", timezone="Mars/Olympus")
        with self.assertRaises(ConfigValidationError):
            SchedulerService(self.backup_service, settings)

    def test_signal_shutdown(self):
        """Test señal de terminación detiene el scheduler"""
        service = self.service()
        service._signal_handler(scheduler_service.signal.SIGTERM, None)
        self.scheduler.shutdown.assert_called_once_with(wait=False)


class TestMain(unittest.TestCase):
    """Tests para el punto de entrada"""

    def test_invalid_configuration_exits_with_error(self):
        """Test configuración incompleta devuelve código 1"""
        from pgbackup import cli as main
        with mock.patch.dict('os.environ', {}, clear=True):
            self.assertEqual(main.main(['once']), 1)

    def test_modes_are_combined_with_environment(self):
        """Test las variables de entorno activan los modos"""
        from pgbackup import cli as main
        environ = {
            'AWS_S3_BUCKET': 'backups',
            'BACKUP_DATABASE_URL': 'postgresql://db/app',
            'SINGLE_SHOT_MODE': 'true',
        }
        with mock.patch.dict('os.environ', environ, clear=True), \
                mock.patch.object(main.SchedulerService, 'start', return_value=0) as start:
            self.assertEqual(main.main([]), 0)
        start.assert_called_once_with(run_immediately=False, single_shot=True)

    def test_invalid_timezone_exits_with_error(self):
        """Test zona horaria inválida devuelve código 1 sin ejecutar el backup"""
        from pgbackup import cli as main
        environ = {
            'AWS_S3_BUCKET': 'backups',
            'BACKUP_DATABASE_URL': 'postgresql://db/app',
            'SINGLE_SHOT_MODE': 'true',
            'BACKUP_TIMEZONE': 'Mars/Olympus',
        }
        with mock.patch.dict('os.environ', environ, clear=True), \
                mock.patch.object(main.BackupService, 'run_once') as run_once:
            self.assertEqual(main.main([]), 1)
        run_once.assert_not_called()

    def test_init_creates_env_example(self):
        """Test --init crea .env.example"""
        from pgbackup import cli as main
        temp_dir = Path(tempfile.mkdtemp())
        try:
            with mock.patch.object(main.Config, 'BASE_DIR', temp_dir):
                self.assertEqual(main.main(['--init']), 0)
            self.assertTrue((temp_dir / ".env.example").exists())
        finally:
            shutil.rmtree(temp_dir)


def run_tests():
    """Ejecuta todos los tests"""
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)
    return result.wasSuccessful()


if __name__ == '__main__':
    success = run_tests()
    sys.exit(0 if success else 1)
