from pydantic import BaseModel
from typing import List, Optional, Any


class CartItemIn(BaseModel):
    product_id: str
    category_id: Optional[str] = None
    price: Any = 0
    quantity: Any = 1


class CouponValidateRequest(BaseModel):
    code: Any = None
    order_value: Any = None
    cart_items: Optional[List[CartItemIn]] = None


class CouponValidateResponse(BaseModel):
    valid: bool
    coupon_id: str
    code: str
    discount_type: str
    discount_value: float
    discount_amount: float
    eligible_value: float


class CartQuoteItem(BaseModel):
    product_id: str
    quantity: int = 1


class CartQuoteRequest(BaseModel):
    items: List[CartQuoteItem]
    coupon_code: Optional[str] = None


class OrderItemIn(BaseModel):
    product_id: str
    quantity: Any = 1


class OrderCreateRequest(BaseModel):
    customer_email: str
    items: List[OrderItemIn]
    payment_method: Optional[str] = "pix"
    coupon_code: Optional[str] = None


class OrderIdRequest(BaseModel):
    order_id: str


class GuestLookupRequest(BaseModel):
    email: str


class OrderPixRequest(BaseModel):
    payer_name: Optional[str] = None
    payer_document: Optional[str] = None
    description: Optional[str] = None


class PixChargeResponse(BaseModel):
    order_id: Optional[str] = None
    transaction_id: str
    amount: float
    fee: float
    status: str
    qr_code_base64: Optional[str] = None
    qr_code_url: Optional[str] = None
    copy_paste: Optional[str] = None
