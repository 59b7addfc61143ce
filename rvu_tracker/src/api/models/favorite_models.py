from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional

from .rvu_models import ReferenceCode

class FavoriteCreate(BaseModel):
    hcpcs: str = Field(min_length=1, max_length=10)


class FavoriteResponse(BaseModel):
    id: int
    user_id: str
    hcpcs: str
    sort_order: int
    created_at: Optional[datetime] = None
    rvu_code: Optional[ReferenceCode] = None

    model_config = ConfigDict(from_attributes=True)


class FavoriteOrderItem(BaseModel):
    hcpcs: str
    sort_order: Optional[int] = None


class FavoriteReorderRequest(BaseModel):
    favorites: List[FavoriteOrderItem]
