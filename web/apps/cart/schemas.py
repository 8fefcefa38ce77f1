from uuid import UUID

from pydantic import BaseModel, Field


class AddItemDTO(BaseModel):
    product_id: UUID
    quantity: int = Field(default=1, gt=0, le=99)


class UpdateItemDTO(BaseModel):
    quantity: int = Field(ge=0, le=99)
