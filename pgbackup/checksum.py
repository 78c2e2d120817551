"""
Cálculo de checksums de archivos para subidas con verificación de integridad
"""
import base64
import hashlib
from pathlib import Path
from typing import Union

from .config import Config


def compute_md5(path: Union[str, Path], chunk_size: int = Config.CHECKSUM_CHUNK_SIZE) -> str:
    """
    Calcula el MD5 de un archivo leyéndolo por bloques

    Args:
        path: Archivo a procesar
        chunk_size: Tamaño de cada bloque leído

    Returns:
        Digest hexadecimal en minúsculas

    Raises:
        OSError: si el archivo no se puede leer
    """
    digest = hashlib.md5()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def md5_to_base64(hex_digest: str) -> str:
    """Formato del encabezado Content-MD5: digest binario en base64"""
    return base64.b64encode(bytes.fromhex(hex_digest)).decode("ascii")
