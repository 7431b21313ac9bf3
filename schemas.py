"""
SprintCart Database Schemas

Each Pydantic model below represents one MongoDB collection. The collection name is the lowercase
class name. Example: class Order -> collection "order".

These schemas are used for validation before inserting/updating documents. Request payloads
accepted by the API live at the bottom of the module.
"""
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field

PaymentMethod = Literal["COD", "Online"]
DeliveryOption = Literal["standard", "express"]


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1, description="Address lines and landmark, comma separated")
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = "India"
    phone: str = Field(..., min_length=1)


class User(BaseModel):
    name: str
    email: EmailStr
    password_hash: str
    role: str = Field("customer", description="customer | staff | admin")
    is_active: bool = True


class Product(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    count_in_stock: int = Field(0, ge=0)


class OrderItem(BaseModel):
    """Line item copied by value into an order; later catalog edits do not touch it."""
    product_id: str
    name: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    image: Optional[str] = None


class PaymentResult(BaseModel):
    id: str
    status: str
    update_time: str
    email_address: Optional[str] = None


class Order(BaseModel):
    user_id: str
    email: Optional[EmailStr] = None
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    promo_code: Optional[str] = None
    delivery_option: DeliveryOption = "standard"
    protection: bool = False
    delivery_notes: Optional[str] = None
    items_price: float = Field(..., ge=0)
    shipping_price: float = Field(0.0, ge=0)
    protection_price: float = Field(0.0, ge=0)
    discount_price: float = Field(0.0, ge=0)
    total_price: float = Field(..., gt=0)
    currency: str = "INR"
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    payment_result: Optional[PaymentResult] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None


# Request payloads


class RegisterDTO(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginDTO(BaseModel):
    email: EmailStr
    password: str


class ProductDTO(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    count_in_stock: int = Field(0, ge=0)


class ProductUpdateDTO(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    count_in_stock: Optional[int] = Field(None, ge=0)


class LineItemDTO(BaseModel):
    product_id: str = Field(..., min_length=1)
    name: str
    quantity: int = Field(1, ge=1, le=99)
    # Any value accepted; pricing counts unusable prices as 0.
    unit_price: Optional[Union[float, str]] = None
    image: Optional[str] = None


class CreateOrderDTO(BaseModel):
    """Cart snapshot submitted at checkout.

    Client-computed totals are dropped here; the server prices every order itself.
    """
    model_config = ConfigDict(extra="ignore")

    items: List[LineItemDTO] = []
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    promo_code: Optional[str] = None
    delivery_option: DeliveryOption = "standard"
    protection: bool = False
    delivery_notes: Optional[str] = Field(None, max_length=500)


class OrderRefDTO(BaseModel):
    order_id: str


class PaymentSessionDTO(BaseModel):
    order_id: str
    customer_name: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
