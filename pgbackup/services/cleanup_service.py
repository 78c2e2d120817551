"""
Servicio para eliminar el archivo local de cada ejecución (Single Responsibility)
"""
import logging
from pathlib import Path
from typing import Optional
from ..exceptions import CleanupError
from ..logger import LoggerService


class CleanupService:
    """Elimina el dump local al terminar una ejecución"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or LoggerService.get_logger("CleanupService")

    def delete_artifact(self, path: Path) -> bool:
        """
        Elimina el archivo local del backup

        Args:
            path: Archivo a eliminar

        Returns:
            True si se eliminó, False si no existía

        Raises:
            CleanupError: si el archivo existe pero no se pudo eliminar
        """
        self.logger.info("Eliminando archivo local...")
        try:
            path.unlink()
        except FileNotFoundError:
            self.logger.debug(f"No hay archivo local que eliminar: {path.name}")
            return False
        except OSError as e:
            raise CleanupError(
                f"No se pudo eliminar {path}: {e}",
                path=str(path)
            ) from e

        self.logger.info(f"Archivo local eliminado: {path.name}")
        return True
