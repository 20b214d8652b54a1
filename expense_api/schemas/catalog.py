import uuid
from typing import Annotated, Optional
from pydantic import AfterValidator, BaseModel, Field


def _strip_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name must not be blank")
    return v


Name = Annotated[str, Field(min_length=1, max_length=100), AfterValidator(_strip_name)]


class CategoryCreate(BaseModel):
    name: Name


class CategoryResponse(BaseModel):
    id: str
    name: str

    model_config = {"from_attributes": True}


class SubcategoryCreate(BaseModel):
    category_id: uuid.UUID
    name: Name


class SubcategoryResponse(BaseModel):
    id: str
    name: str
    category_id: str

    model_config = {"from_attributes": True}


class NameUpdate(BaseModel):
    name: Name


class PaymentMethodCreate(BaseModel):
    name: Name


class PaymentMethodUpdate(BaseModel):
    name: Optional[Name] = None
    is_active: Optional[bool] = None


class PaymentMethodResponse(BaseModel):
    id: str
    name: str
    is_active: bool = True

    model_config = {"from_attributes": True}


class ProfileResponse(BaseModel):
    id: str
    display_name: Optional[str] = None
