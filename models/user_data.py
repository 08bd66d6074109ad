# models/user_data.py
from pydantic import BaseModel, Field
from typing import Optional

USER_ROLES = ("admin", "backoffice", "vendedor")


class UserData(BaseModel):
    email: Optional[str] = Field(None, description="E-mail guardado no perfil")
    name: Optional[str] = Field(None, description="Nome do utilizador")
    role: Optional[str] = Field(None, description="Perfil: admin, backoffice ou vendedor")
    must_change_password: Optional[bool] = Field(None, description="Obriga a alterar a password no primeiro login")
    commission_percentage: Optional[float] = Field(None, description="Percentagem de comissão do vendedor")
    commission_threshold: Optional[float] = Field(None, description="Limite a partir do qual a comissão se aplica")


class CreateUserRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    userData: UserData = Field(default_factory=UserData)


class UserProfile(BaseModel):
    """Row written to the ``users`` table. Commission fields are only sent when set."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str = "vendedor"
    active: bool = True
    must_change_password: bool = True
    commission_percentage: Optional[float] = None
    commission_threshold: Optional[float] = None

    def to_record(self) -> dict:
        record = self.model_dump(exclude={"commission_percentage", "commission_threshold"})
        if self.commission_percentage is not None:
            record["commission_percentage"] = self.commission_percentage
        if self.commission_threshold is not None:
            record["commission_threshold"] = self.commission_threshold
        return record
