"""
Estrategia base para dumps (Strategy Pattern)
"""
import gzip
import logging
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional
from ..exceptions import DumpExecutionError, DumpValidationError
from ..logger import LoggerService
from ..models import DumpArtifact


class DumpStrategy(ABC):
    """Interfaz abstracta para estrategias de dump (Open/Closed Principle)"""

    # Herramientas que deben estar en el PATH
    required_tools: Iterable[str] = ('bash', 'gzip')

    def __init__(self, timeout_seconds: Optional[float] = None, logger: Optional[logging.Logger] = None):
        """
        Inicializa la estrategia

        Args:
            timeout_seconds: Tiempo máximo del proceso externo (None = sin límite)
            logger: Logger a usar; por defecto uno con el nombre de la clase
        """
        self.timeout_seconds = timeout_seconds
        self.logger = logger or LoggerService.get_logger(self.__class__.__name__)

    @abstractmethod
    def build_command(self, output_file: Path) -> str:
        """
        Construye el pipeline de shell que escribe el archivo comprimido

        Args:
            output_file: Archivo de salida del dump

        Returns:
            Línea de comando para bash
        """
        pass

    def execute_dump(self, output_file: Path) -> DumpArtifact:
        """
        Template method: ejecuta el pipeline, valida el archivo y mide el tiempo

        Args:
            output_file: Archivo de salida del dump

        Returns:
            DumpArtifact con la ruta y el tamaño del archivo

        Raises:
            DumpExecutionError: si el proceso externo falla
            DumpValidationError: si el archivo resultante está vacío o es ilegible
        """
        self.logger.info("Generando dump de la base de datos...")
        start_time = time.time()

        tool_error = self._validate_tools(self.required_tools)
        if tool_error:
            raise DumpExecutionError(tool_error)

        stderr = self._run_pipeline(output_file)
        self._validate_archive(output_file)

        # No todo lo que llega por stderr es un error crítico
        if stderr:
            self.logger.warning(f"Salida de diagnóstico del dump:\n{stderr}")

        size_bytes = output_file.stat().st_size
        artifact = DumpArtifact(path=output_file, size_bytes=size_bytes)
        self.logger.info("El archivo de backup es válido")
        self.logger.info(
            f"Dump generado: {output_file.name} "
            f"({artifact.size_mb:.2f} MB, {time.time() - start_time:.2f}s)"
        )

        if stderr:
            self.logger.warning(
                f"Posibles advertencias detectadas; verifica que el backup "
                f"\"{output_file.name}\" contenga todos los datos necesarios"
            )

        return artifact

    def _run_pipeline(self, output_file: Path) -> str:
        """
        Ejecuta el pipeline completo como un único proceso con pipefail

        Returns:
            Texto de stderr (puede estar vacío)
        """
        command = self.build_command(output_file)
        try:
            result = subprocess.run(
                ['bash', '-o', 'pipefail', '-c', command],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                encoding='utf-8',
                errors='replace',
                timeout=self.timeout_seconds
            )
        except subprocess.TimeoutExpired as e:
            raise DumpExecutionError(
                f"Timeout: el dump tardó más de {self.timeout_seconds:g}s",
                exit_status=None,
                stderr=self._decode(e.stderr)
            ) from e
        except OSError as e:
            raise DumpExecutionError(f"No se pudo ejecutar el dump: {e}") from e

        stderr = (result.stderr or '').rstrip()
        if result.returncode != 0:
            raise DumpExecutionError(
                "El proceso de dump terminó con error",
                exit_status=result.returncode,
                stderr=stderr
            )
        return stderr

    def _validate_archive(self, output_file: Path) -> None:
        """Comprueba que el archivo descomprime al menos un byte"""
        try:
            with gzip.open(output_file, 'rb') as archive:
                first_byte = archive.read(1)
        except (OSError, EOFError) as e:
            raise DumpValidationError(
                f"El archivo de backup no se puede leer: {e}"
            ) from e

        if len(first_byte) != 1:
            raise DumpValidationError(
                "El archivo de backup es inválido o está vacío; revisa los errores anteriores"
            )

    def _validate_tools(self, tools: Iterable[str]) -> Optional[str]:
        """
        Valida que las herramientas necesarias estén disponibles

        Args:
            tools: Lista de herramientas requeridas

        Returns:
            None si todo está OK, mensaje de error en caso contrario
        """
        for tool in tools:
            if not shutil.which(tool):
                return f"La herramienta {tool} no está instalada"
        return None

    @staticmethod
    def _decode(output) -> str:
        if output is None:
            return ''
        if isinstance(output, bytes):
            output = output.decode('utf-8', errors='replace')
        return output.rstrip()
