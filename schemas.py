"""
Database Schemas for the checkout pricing service

Each Pydantic model corresponds to a MongoDB collection. The collection name is the lowercase of the class name
(ShippingZone -> "shipping_zone"). Documents are read with `Model.model_validate(doc)`; Mongo `_id` values and
ObjectId references are exposed as plain strings.
"""
from abc import abstractmethod
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from bson import ObjectId
from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator


def _id_str(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict) and "_id" in value:
        # populated reference
        return str(value["_id"])
    return value


IdStr = Annotated[str, BeforeValidator(_id_str)]


class Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[IdStr] = Field(None, alias="_id")


# Catalog

class Variant(Document):
    storage: Optional[str] = None
    ram: Optional[str] = None
    color: Optional[str] = None
    bundle: Optional[str] = None
    warranty: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(0, ge=0)
    sku: Optional[str] = None
    image: Optional[str] = None


class ProductImage(BaseModel):
    original: Optional[str] = None
    thumbnail: Optional[str] = None


class Product(Document):
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name", "productName"))
    slug: Optional[str] = None
    price: float = Field(..., ge=0)
    sale_price: Optional[float] = Field(None, ge=0, validation_alias=AliasChoices("sale_price", "salePrice"))
    on_sale: bool = False
    sale_start: Optional[datetime] = None
    sale_end: Optional[datetime] = None
    category: Optional[IdStr] = None
    sub_category: Optional[IdStr] = None
    variants: List[Variant] = Field(default_factory=list)
    product_type: Literal["simple", "variable"] = "simple"
    quantity: int = Field(0, ge=0)
    in_stock: bool = True
    main_image: Optional[str] = None
    image: Optional[ProductImage] = None
    tax: Optional[float] = Field(None, ge=0)
    shipping_fee: float = Field(0, ge=0)
    weight: float = Field(0, ge=0)
    shipping_class: Literal["standard", "fragile", "oversized"] = "standard"
    is_active: bool = True

    @field_validator("image", mode="before")
    @classmethod
    def _unpopulated_image(cls, value):
        # an unpopulated media reference is just an ObjectId
        return value if isinstance(value, (dict, ProductImage)) else None


# Promotions

class Deal(Document):
    title: Optional[str] = None
    discount_type: Literal["percentage", "fixed", "flat"]
    discount_value: float = Field(..., ge=0)
    start_date: datetime
    end_date: datetime
    priority: int = 1
    is_global: bool = False
    products: List[IdStr] = Field(default_factory=list)
    categories: List[IdStr] = Field(default_factory=list)
    sub_categories: List[IdStr] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_window(self):
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class Coupon(Document):
    code: str
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed", "free_shipping"] = "percentage"
    discount_value: float = Field(0, ge=0)
    min_cart_value: float = Field(0, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=0)
    per_user_limit: Optional[int] = Field(None, ge=0)
    used_count: int = Field(0, ge=0)
    user_usage: Dict[str, int] = Field(default_factory=dict)
    start_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    is_active: bool = True


# Shipping

class WeightRate(BaseModel):
    min_weight: float = Field(..., ge=0)
    max_weight: float = Field(..., ge=0)
    rate: float = Field(..., ge=0)


class ShippingZone(Document):
    name: Optional[str] = None
    pincode_prefix: Optional[str] = None
    base_rate: float = Field(..., ge=0)
    express_multiplier: float = Field(1.5, ge=0)
    region_multiplier: float = Field(1.0, ge=0)
    free_shipping_threshold: float = Field(..., ge=0)
    weight_rates: List[WeightRate] = Field(default_factory=list)
    is_active: bool = True


class SiteSetting(Document):
    key: str
    value: Any = None


# Cart / Buy now

class LineItem(BaseModel):
    """Persisted line: a product reference, a quantity and the canonical variant id. Never a price."""
    model_config = ConfigDict(extra="ignore")

    product: IdStr
    quantity: int = Field(1, ge=1)
    variant_id: Optional[str] = None


class CheckoutDocument(Document):
    user: IdStr
    coupon: Optional[IdStr] = None
    shipping_method: Literal["standard", "express"] = "standard"
    payment_method: Literal["card", "cod"] = "card"
    pincode: Optional[str] = None

    # cached snapshot of the last computation
    total: float = 0
    tax_total: float = 0
    discount: float = 0
    shipping_fee: float = 0
    cod_fee: float = 0
    final_total: float = 0

    @abstractmethod
    def line_items(self) -> List[LineItem]:
        ...


class Cart(CheckoutDocument):
    items: List[LineItem] = Field(default_factory=list)

    def line_items(self) -> List[LineItem]:
        return list(self.items)


class BuyNow(CheckoutDocument):
    item: Optional[LineItem] = None

    def line_items(self) -> List[LineItem]:
        return [self.item] if self.item is not None else []


# Response projections (never persisted)

class PricedLine(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    quantity: int
    unit_price: float
    line_total: float
    original_price: float
    deal_price: Optional[float] = None
    applied_deal_id: Optional[str] = None
    tax: Optional[float] = None
    shipping_fee: float = 0
    image: Optional[str] = None
    variant_id: Optional[str] = None
    variant: Optional[Variant] = None


class TotalsBreakdown(BaseModel):
    subtotal: float = 0
    tax_total: float = 0
    discount: float = 0
    shipping_fee: float = 0
    cod_fee: float = 0
    final_total: float = 0
    coupon_id: Optional[str] = None
    coupon_code: Optional[str] = None
    coupon_error: Optional[str] = None
    free_shipping: bool = False
    total_weight: float = 0
    lines: List[PricedLine] = Field(default_factory=list)
