"""
Subida de backups a S3 (o servicios compatibles) usando boto3
"""
import logging
from typing import Optional, Tuple

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from botocore.parsers import ResponseParserError

from ..checksum import compute_md5, md5_to_base64
from ..exceptions import StorageTransferError, StorageUnreachableError, StorageUnreachableKind
from ..logger import LoggerService
from ..models import BackupIdentity, DumpArtifact, StorageSettings, UploadDescriptor

_BUCKET_MISSING_CODES = {'404', 'NoSuchBucket', 'NotFound'}
_ACCESS_DENIED_CODES = {'403', 'AccessDenied', 'Forbidden'}
_MALFORMED_CODES = {'MalformedXML'}


class S3Uploader:
    """Sube el archivo de dump al bucket, con chequeo previo de conectividad"""

    def __init__(self, settings: StorageSettings, client=None, logger: Optional[logging.Logger] = None):
        """
        Inicializa el cliente de S3

        Args:
            settings: Configuración del destino
            client: Cliente boto3 ya construido (tests)
            logger: Logger inyectado
        """
        self.settings = settings
        self.logger = logger or LoggerService.get_logger("S3Uploader")
        self.client = client or self._create_client()

    def _create_client(self):
        boto_config = BotoConfig(
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.read_timeout,
            s3={'addressing_style': 'path' if self.settings.force_path_style else 'auto'},
        )

        if self.settings.endpoint:
            self.logger.info(f"Usando endpoint personalizado: {self.settings.endpoint}")

        return boto3.client(
            's3',
            region_name=self.settings.region,
            endpoint_url=self.settings.endpoint,
            aws_access_key_id=self.settings.access_key_id,
            aws_secret_access_key=self.settings.secret_access_key,
            config=boto_config,
        )

    def check_connection(self) -> None:
        """
        Verifica que el bucket existe y es accesible (HeadBucket)

        Raises:
            StorageUnreachableError: con el sub-tipo del fallo
        """
        bucket = self.settings.bucket
        self.logger.info("Probando conexión con S3...")
        try:
            self.client.head_bucket(Bucket=bucket)
        except ClientError as e:
            code, message, _, _ = _error_details(e)
            kind = self._classify(code)
            self._log_unreachable(kind, code, message)
            raise StorageUnreachableError(
                f"Falló la prueba de conexión con el bucket '{bucket}': {message}",
                kind=kind,
                code=code
            ) from e
        except ResponseParserError as e:
            kind = StorageUnreachableKind.MALFORMED_RESPONSE
            self._log_unreachable(kind, None, str(e))
            raise StorageUnreachableError(
                f"El endpoint no devolvió una respuesta S3 válida: {e}",
                kind=kind
            ) from e
        except BotoCoreError as e:
            kind = StorageUnreachableKind.UNKNOWN
            self._log_unreachable(kind, None, str(e))
            raise StorageUnreachableError(
                f"No se pudo contactar el bucket '{bucket}': {e}",
                kind=kind
            ) from e

        self.logger.info("Conexión con S3 correcta: el bucket existe y es accesible")

    @staticmethod
    def _classify(code: Optional[str]) -> StorageUnreachableKind:
        if code in _BUCKET_MISSING_CODES:
            return StorageUnreachableKind.BUCKET_MISSING
        if code in _ACCESS_DENIED_CODES:
            return StorageUnreachableKind.ACCESS_DENIED
        if code in _MALFORMED_CODES:
            return StorageUnreachableKind.MALFORMED_RESPONSE
        return StorageUnreachableKind.UNKNOWN

    def _log_unreachable(self, kind: StorageUnreachableKind, code: Optional[str], message: str) -> None:
        self.logger.error("Falló la prueba de conexión con S3:")
        self.logger.error(f"Código de error: {code}")
        self.logger.error(f"Mensaje: {message}")

        if kind is StorageUnreachableKind.BUCKET_MISSING:
            self.logger.error("El bucket no existe o no es accesible")
        elif kind is StorageUnreachableKind.ACCESS_DENIED:
            self.logger.error("Acceso denegado: revisa las credenciales y permisos de AWS")
        elif kind is StorageUnreachableKind.MALFORMED_RESPONSE:
            self.logger.error(
                "La respuesta no es S3 válida; suele pasar con endpoints "
                "personalizados que devuelven páginas de error HTML"
            )

    def build_descriptor(self, identity: BackupIdentity, artifact: DumpArtifact) -> UploadDescriptor:
        """
        Arma el destino de la subida; calcula el MD5 solo si está habilitado

        Args:
            identity: Identidad del backup (define la clave)
            artifact: Archivo local a subir

        Returns:
            UploadDescriptor
        """
        content_md5 = None
        if self.settings.verify_checksum:
            self.logger.info("Calculando MD5 del archivo...")
            content_md5 = md5_to_base64(compute_md5(artifact.path))
            self.logger.info("MD5 calculado")

        return UploadDescriptor(
            bucket=self.settings.bucket,
            key=identity.key,
            content_md5=content_md5
        )

    def upload(self, identity: BackupIdentity, artifact: DumpArtifact) -> UploadDescriptor:
        """
        Verifica el bucket y sube el archivo bajo proyecto/entorno/frecuencia/nombre

        Args:
            identity: Identidad del backup
            artifact: Archivo local a subir

        Returns:
            El UploadDescriptor utilizado

        Raises:
            StorageUnreachableError: si falla el chequeo previo (no se envía nada)
            StorageTransferError: si falla la transferencia
        """
        self.logger.info("Subiendo backup a S3...")
        descriptor = self.build_descriptor(identity, artifact)

        self.check_connection()

        try:
            self._transfer(descriptor, artifact)
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            code, message, request_id, http_status = _error_details(e)
            self._log_transfer_error(code, message, request_id, http_status)
            raise StorageTransferError(
                f"Falló la subida a s3://{descriptor.bucket}/{descriptor.key}: {message}",
                code=code,
                request_id=request_id,
                http_status=http_status
            ) from e

        self.logger.info(f"Backup subido a s3://{descriptor.bucket}/{descriptor.key}")
        return descriptor

    def _transfer(self, descriptor: UploadDescriptor, artifact: DumpArtifact) -> None:
        with open(artifact.path, 'rb') as body:
            if descriptor.content_md5:
                # Petición única para que S3 valide el MD5 del objeto completo
                self.client.put_object(
                    Bucket=descriptor.bucket,
                    Key=descriptor.key,
                    Body=body,
                    ContentMD5=descriptor.content_md5
                )
            else:
                self.client.upload_fileobj(body, descriptor.bucket, descriptor.key)

    def _log_transfer_error(self, code, message, request_id, http_status) -> None:
        self.logger.error("Detalle del error de subida a S3:")
        self.logger.error(f"Código de error: {code}")
        self.logger.error(f"Mensaje: {message}")
        self.logger.error(f"Request ID: {request_id}")
        self.logger.error(f"HTTP status: {http_status}")

        if self.settings.endpoint:
            self.logger.error("Endpoint personalizado detectado; este error suele ocurrir cuando:")
            self.logger.error("1. La URL del endpoint es incorrecta")
            self.logger.error("2. El endpoint devuelve páginas HTML en lugar de respuestas S3")
            self.logger.error("3. El bucket no existe en este endpoint")
            self.logger.error("4. La autenticación falla en el endpoint personalizado")


def _error_details(error: Exception) -> Tuple[Optional[str], str, Optional[str], Optional[int]]:
    """Código, mensaje, request id y status HTTP de un error de boto"""
    if not isinstance(error, ClientError) and isinstance(error.__cause__, ClientError):
        error = error.__cause__

    response = getattr(error, 'response', None) or {}
    details = response.get('Error', {})
    metadata = response.get('ResponseMetadata', {})
    return (
        details.get('Code'),
        details.get('Message') or str(error),
        metadata.get('RequestId'),
        metadata.get('HTTPStatusCode'),
    )
