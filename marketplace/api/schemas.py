from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from marketplace.db.models import OrderStatus, Role

# Users / auth
class RegisterPayload(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    password: str = Field(min_length=8)

class ArtisanApplication(RegisterPayload):
    phone: Optional[str] = None
    business_name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class TokenRead(BaseModel):
    access_token: str
    token_type: str = 'bearer'

class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    email: EmailStr
    name: str
    role: Role
    business_name: Optional[str] = None
    created_at: datetime

class RoleUpdate(BaseModel):
    role: str

# Catalog
class ProductBase(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = ''
    category: Optional[str] = ''
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)

class ProductCreate(ProductBase):
    stock: int = Field(default=0, ge=0)
    owner_id: Optional[int] = None

class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)

class Restock(BaseModel):
    quantity: int

class ProductRead(ProductBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    stock: int
    owner_id: int
    created_at: datetime

# Orders
class CartLineIn(BaseModel):
    product_id: int = Field(strict=True)
    quantity: int = Field(strict=True)

class PlaceOrder(BaseModel):
    items: List[CartLineIn]

class StatusUpdate(BaseModel):
    status: str

class ProductSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    price: Decimal

class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    product: ProductSnapshot

class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    status: OrderStatus
    total_price: Decimal
    created_at: datetime
    items: List[OrderItemRead] = []

class Message(BaseModel):
    message: str
