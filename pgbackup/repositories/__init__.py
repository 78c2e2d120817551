"""
Repositorios de configuración
"""
from .config_repository import EnvConfigRepository

__all__ = ['EnvConfigRepository']
