"""
Permite ejecutar: python -m pgbackup
"""
from .cli import run

run()
