from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    SYNDIC = "syndic"
    GARDIEN = "gardien"
    TECHNICIEN = "technicien"
    RESIDENT = "resident"
    COMPTABLE = "comptable"


# Profile as read from the users collection
class UserProfile(BaseModel):
    id: Optional[str] = None  # Firebase UID
    first_name: str = Field(default="")
    last_name: str = Field(default="")
    email: Optional[str] = None
    role: str = Field(default=UserRole.RESIDENT.value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

