"""
Destinos de almacenamiento remoto
"""
from .s3_uploader import S3Uploader

__all__ = ['S3Uploader']
