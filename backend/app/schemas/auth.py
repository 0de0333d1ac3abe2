"""
Schémas Pydantic pour l'authentification.
Les corps JSON échangés avec le frontend sont en camelCase (firstName, accessToken...).
"""

import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["instructor", "student"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    role: Role

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Le mot de passe ne peut pas être vide.")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le champ ne peut pas être vide.")
        return v.strip()


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(CamelModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: str


class LoginResponse(CamelModel):
    message: str
    access_token: str
    user: UserResponse


class RefreshResponse(BaseModel):
    token: str
    user: UserResponse


class CurrentUser(BaseModel):
    """Identité extraite du jeton d'accès, attachée à la requête."""
    id: uuid.UUID
    role: str

    @property
    def is_instructor(self) -> bool:
        return self.role == "instructor"

    @property
    def is_student(self) -> bool:
        return self.role == "student"
