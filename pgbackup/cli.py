"""
Backup periódico de PostgreSQL hacia S3
Punto de entrada principal

Uso:
    python main.py                  # Modo scheduler (automático)
    python main.py once             # Ejecutar backup una vez y salir
    python main.py --now            # Backup al iniciar y luego según el cron
    python main.py --init           # Crear .env.example
"""
import sys
import argparse
import platform

from .config import Config
from .exceptions import ConfigValidationError
from .logger import LoggerService
from .repositories.config_repository import EnvConfigRepository
from .services.backup_service import BackupService
from .services.scheduler_service import SchedulerService


def parse_arguments(argv=None):
    """
    Parsea argumentos de línea de comandos

    Returns:
        Namespace con los argumentos parseados
    """
    parser = argparse.ArgumentParser(
        description='Backup periódico de PostgreSQL hacia S3',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  python main.py                    # Iniciar servicio automático
  python main.py once               # Ejecutar backup una sola vez
  python main.py --now              # Backup inmediato y luego programado
  python main.py --init             # Crear .env.example

Las variables SINGLE_SHOT_MODE y RUN_ON_STARTUP equivalen a 'once' y '--now'.
        """
    )

    parser.add_argument(
        'mode',
        nargs='?',
        choices=['once', 'scheduler'],
        default='scheduler',
        help='Modo de ejecución (default: scheduler)'
    )

    parser.add_argument(
        '--now',
        action='store_true',
        help='Ejecutar backup inmediatamente al iniciar scheduler'
    )

    parser.add_argument(
        '--init',
        action='store_true',
        help='Crear archivo .env.example'
    )

    return parser.parse_args(argv)


def initialize_config() -> bool:
    """
    Crea .env.example si no existe

    Returns:
        True si se creó el archivo
    """
    logger = LoggerService.get_logger("Init")
    target = Config.BASE_DIR / ".env.example"

    if not EnvConfigRepository.create_env_example(target):
        logger.info(f"Ya existe: {target}")
        return False

    logger.info(f"Creado: {target}")
    logger.info("Copia .env.example como .env y completa los valores")
    return True


def main(argv=None) -> int:
    """Función principal; devuelve el código de salida"""
    args = parse_arguments(argv)

    if args.init:
        initialize_config()
        return 0

    logger = LoggerService.get_logger("Main")
    logger.info(f"Python {platform.python_version()}")

    try:
        settings = EnvConfigRepository().load()
    except ConfigValidationError as e:
        logger.error(f"Configuración inválida: {e}")
        return 1

    single_shot = args.mode == 'once' or settings.backup.single_shot
    run_immediately = args.now or settings.backup.run_on_startup

    try:
        backup_service = BackupService(settings)
        scheduler = SchedulerService(backup_service, settings.backup)
        return scheduler.start(run_immediately=run_immediately, single_shot=single_shot)
    except ConfigValidationError as e:
        logger.error(f"Configuración inválida: {e}")
        return 1


def run():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nPrograma interrumpido por el usuario")
        sys.exit(0)
