"""
models.py — Data Models for Checkout Orchestration

This module defines the data structures collected by the checkout wizard, exchanged
with the payment processor and persisted for the confirmation page.
It uses Pydantic models to ensure type safety and validation of incoming data.
Field names follow the camelCase JSON used on the wire and in the order store.

Models:
    - ShippingAddress: Where the order goes and who receives it.
    - PaymentSelection: The single active payment method.
    - MobilePaymentDetails / CardPaymentDetails: Method-specific payment fields.
    - SellerContact: Contact block of one seller.
    - LineItem / CartItem: One product in the order or in the cart.
    - CheckoutPayload: Request sent to the payment processor.
    - CheckoutResponse: Normalized processor response.
    - ShippingSummary / OrderSnapshot: Durable record used by the confirmation page.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CheckoutState(str, Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    REVIEW = "review"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILURE = "failure"


class PaymentType(str, Enum):
    MOBILE = "mobile"
    CARD = "card"


class ShippingAddress(BaseModel):
    """
    Shipping fields collected in step 1.

    `city` must belong to the city list of `country`. The session clears `city`
    whenever `country` changes.
    """
    firstName: str = ""
    lastName: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    country: str = ""
    city: str = ""
    deliveryInstructions: str = ""


class PaymentSelection(BaseModel):
    methodId: str
    type: PaymentType


class MobilePaymentDetails(BaseModel):
    kind: Literal["mobile"] = "mobile"
    mobileNumber: str = ""


class CardPaymentDetails(BaseModel):
    kind: Literal["card"] = "card"
    cardholderName: str = ""
    cardNumber: str = ""
    expiry: str = ""
    cvv: str = ""


PaymentDetails = Union[MobilePaymentDetails, CardPaymentDetails]


class SellerContact(BaseModel):
    """
    Identity and contact data of a seller.

    Attributes:
        name (str): Display name, also used to match line items to sellers.
        email (Optional[str]): Contact e-mail if the seller published one.
        phone (Optional[str]): Contact phone if the seller published one.
        address (Optional[str]): Pickup address if the seller published one.
    """
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class LineItem(BaseModel):
    """
    Represents a single product line in an order.

    Attributes:
        productId (str): Listing identifier.
        title (str): Listing title at purchase time.
        price (int): Unit price in whole base-currency units.
        quantity (int): Number of units. Must be greater than zero.
        image (str): Image reference for the confirmation page.
        seller (SellerContact): The listing's seller.
    """
    productId: str
    title: str
    price: int = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    image: str = ""
    seller: SellerContact = Field(default_factory=SellerContact)

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


class CartItem(LineItem):
    selected: bool = False

    def to_line_item(self) -> LineItem:
        return LineItem(**self.model_dump(exclude={"selected"}))


class CheckoutPayload(BaseModel):
    """
    The request sent to the payment processor.

    All values are normalized: phone in international format, delivery and payment
    methods as processor codes, amount in whole base-currency units.
    """
    model_config = ConfigDict(frozen=True)

    firstName: str
    lastName: str
    emailAddress: str
    phoneNumber: str
    address: str
    city: str
    state: str = ""
    country: str
    zipCode: str = ""
    deliveryInstructions: str = ""
    deliveryMethod: str
    paymentMethod: str
    agreeToTerms: bool
    totalAmount: int
    currency: str


class CheckoutResponse(BaseModel):
    success: bool = False
    orderId: Optional[str] = None
    transactionId: Optional[str] = None
    paymentUrl: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class ShippingSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    city: str
    country: str
    phone: str = ""
    email: str = ""


class OrderSnapshot(BaseModel):
    """
    Denormalized order record written once after a successful submission.

    Either `sellerDetails` (single seller) or `sellers` (several sellers) is set.
    Snapshots are immutable; the confirmation page only reads them.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    status: str = "confirmed"
    date: datetime
    estimatedDelivery: str = ""
    total: int
    currency: str
    paymentMethod: str
    shippingAddress: ShippingSummary
    shippingMethod: str
    expectedContactTime: str = "within 24 hours"
    transactionId: Optional[str] = None
    items: List[LineItem]
    sellerDetails: Optional[SellerContact] = None
    sellers: List[SellerContact] = Field(default_factory=list)
    savedAt: Optional[datetime] = None
