"""
Schémas Pydantic pour les supports de cours.
La clé et le bucket S3 ne sont jamais exposés au client.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


@dataclass
class MaterialUpload:
    """Fichier reçu en multipart, lu en mémoire avant envoi vers S3."""
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class MaterialResponse(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    file_name: str
    file_type: str
    file_size: int
    upload_order: int
    created_at: datetime
    download_url: Optional[str] = None

    model_config = {"from_attributes": True}


class MaterialUploadResponse(BaseModel):
    message: str
    materials: List[MaterialResponse]


class MaterialListResponse(BaseModel):
    materials: List[MaterialResponse]
