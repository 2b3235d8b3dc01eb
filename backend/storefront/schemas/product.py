from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from storefront.schemas.search import ProductResult


class ProductSpecificationSchema(BaseModel):
    attribute_id: Optional[int] = None
    attribute_name: str
    display_name: str
    data_type: str
    unit: Optional[str] = None
    value_string: Optional[str] = None
    value_numeric: Optional[Decimal] = None
    value_boolean: Optional[bool] = None


class ProductDetail(ProductResult):
    specifications: List[ProductSpecificationSchema] = []


class ProductCreate(BaseModel):
    category_id: int
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    sku: str = Field(min_length=1, max_length=100)
    price: Decimal = Field(ge=0)
    discount_price: Optional[Decimal] = Field(default=None, ge=0)
    stock_quantity: int = Field(default=0, ge=0)
    brand: Optional[str] = Field(default=None, max_length=100)
    model: Optional[str] = Field(default=None, max_length=100)
    images: List[str] = []
    # attribute name -> raw value; replaces every stored specification row
    specifications: Dict[str, Any] = {}

    @model_validator(mode="after")
    def _discount_not_above_price(self):
        if self.discount_price is not None and self.discount_price > self.price:
            raise ValueError("discount_price must be less than or equal to price")
        return self


class ProductUpdate(ProductCreate):
    pass
