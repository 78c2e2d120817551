"""
Estrategias de dump de la base de datos
"""
from .base_strategy import DumpStrategy
from .postgresql_strategy import PostgreSQLDumpStrategy

__all__ = [
    'DumpStrategy',
    'PostgreSQLDumpStrategy'
]
