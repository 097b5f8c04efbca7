from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class OrganizationCreate(BaseModel):
    # Validated by the service so a missing name is a 400, not a 422
    name: Any = None


class OrganizationUpdate(BaseModel):
    name: Any = None
    regenerate_key: bool = False


class OrganizationResponse(BaseModel):
    id: str
    name: str
    api_key: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrganizationWithCount(OrganizationResponse):
    model_count: int = 0

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())
