"""
Estrategia de dump para PostgreSQL
"""
import logging
import shlex
from pathlib import Path
from typing import Optional
from .base_strategy import DumpStrategy


class PostgreSQLDumpStrategy(DumpStrategy):
    """Dump con pg_dump en formato tar, comprimido con gzip"""

    required_tools = ('bash', 'pg_dump', 'gzip')

    def __init__(
        self,
        database_url: str,
        dump_options: str = "",
        timeout_seconds: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            database_url: Cadena de conexión de PostgreSQL
            dump_options: Opciones extra de pg_dump, se pasan tal cual
            timeout_seconds: Tiempo máximo del dump
            logger: Logger inyectado
        """
        super().__init__(timeout_seconds=timeout_seconds, logger=logger)
        self.database_url = database_url
        self.dump_options = dump_options

    def build_command(self, output_file: Path) -> str:
        cmd = [
            'pg_dump',
            shlex.quote(f'--dbname={self.database_url}'),
            '--format=tar',
        ]
        if self.dump_options:
            cmd.append(self.dump_options)

        return f"{' '.join(cmd)} | gzip > {shlex.quote(str(output_file))}"
