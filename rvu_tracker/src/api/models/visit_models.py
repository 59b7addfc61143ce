from pydantic import BaseModel, ConfigDict, Field, model_validator
import datetime as dt
from decimal import Decimal
from typing import List, Optional

class ProcedureIn(BaseModel):
    hcpcs: str = Field(min_length=1, max_length=10)
    description: str = ""
    status_code: str = Field("A", max_length=5)
    work_rvu: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    quantity: int = Field(1, ge=1)


class ProcedureResponse(ProcedureIn):
    id: int
    visit_id: int

    model_config = ConfigDict(from_attributes=True)


class VisitBase(BaseModel):
    date: dt.date
    time: Optional[dt.time] = None
    notes: Optional[str] = None
    is_no_show: bool = False
    procedures: List[ProcedureIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_procedures_match_no_show(self):
        # A no-show has no procedures; every other visit needs at least one.
        if self.is_no_show and self.procedures:
            raise ValueError("A no-show visit cannot have procedures")
        if not self.is_no_show and not self.procedures:
            raise ValueError("At least one procedure is required")
        return self


class VisitCreate(VisitBase):
    pass


class VisitUpdate(VisitBase):
    pass


class VisitResponse(BaseModel):
    id: int
    user_id: str
    date: dt.date
    time: Optional[dt.time] = None
    notes: Optional[str] = None
    is_no_show: bool
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    procedures: List[ProcedureResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    message: str
