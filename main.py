#!/usr/bin/env python3
"""
Backup periódico de PostgreSQL hacia S3
Punto de entrada para ejecutar desde el repositorio

Uso:
    python main.py --help
"""
from pgbackup.cli import run


if __name__ == "__main__":
    run()
