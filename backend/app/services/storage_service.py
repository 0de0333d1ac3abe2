"""
Service de stockage objet S3 pour les supports de cours.

Les fichiers sont rangés sous courses/<course_id>/materials/<uuid><ext>,
chiffrés côté serveur (AES256). Le client n'accède jamais directement au
bucket : il reçoit des URLs présignées à durée limitée.
"""

import logging
import os
import uuid
from functools import lru_cache
from typing import Iterable, List, Optional

import boto3
from botocore.config import Config

from app.config import settings

logger = logging.getLogger(__name__)

# Limite S3 du nombre de clés par appel DeleteObjects
DELETE_BATCH_SIZE = 1000


class StorageService:
    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls) -> "StorageService":
        """Crée un client boto3 S3 à partir de la configuration."""
        client = boto3.client(
            "s3",
            endpoint_url=settings.AWS_S3_ENDPOINT_URL,
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
            config=Config(signature_version="s3v4"),
        )
        logger.info("Client S3 initialisé (bucket %s, région %s)", settings.AWS_S3_BUCKET_NAME, settings.AWS_REGION)
        return cls(client, settings.AWS_S3_BUCKET_NAME)

    @staticmethod
    def build_material_key(course_id, original_name: str) -> str:
        """Clé unique sous le préfixe du cours, en conservant l'extension d'origine."""
        extension = os.path.splitext(original_name)[1]
        return f"courses/{course_id}/materials/{uuid.uuid4()}{extension}"

    def upload_material(self, course_id, original_name: str, content: bytes, content_type: str) -> str:
        """Envoie le fichier dans le bucket et retourne sa clé S3."""
        key = self.build_material_key(course_id, original_name)
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=content,
            ContentType=content_type,
            ServerSideEncryption="AES256",
        )
        logger.info("Fichier %s envoyé sur S3 (%s, %d octets)", original_name, key, len(content))
        return key

    def delete_object(self, key: str, bucket: Optional[str] = None) -> None:
        self.client.delete_object(Bucket=bucket or self.bucket, Key=key)
        logger.info("Objet S3 supprimé : %s", key)

    def delete_objects(self, keys: Iterable[str]) -> int:
        """
        Supprime plusieurs objets en un appel DeleteObjects par lot de 1000 clés.
        Retourne le nombre de clés demandées.
        """
        keys: List[str] = list(keys)
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            response = self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
            for error in response.get("Errors", []):
                logger.warning("Suppression S3 échouée pour %s : %s", error.get("Key"), error.get("Message"))
        return len(keys)

    def generate_download_url(self, key: str, bucket: Optional[str] = None, expires_seconds: Optional[int] = None) -> str:
        """URL présignée GET (1 heure par défaut)."""
        return self.client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": bucket or self.bucket, "Key": key},
            ExpiresIn=expires_seconds or settings.SIGNED_URL_EXPIRE_SECONDS,
        )


@lru_cache
def get_storage() -> StorageService:
    """Dépendance FastAPI, une seule instance par processus."""
    return StorageService.from_settings()
