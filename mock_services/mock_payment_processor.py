"""
mock_payment_processor.py — Mock Implementation of the Payment Processor (REST API)

This module provides a simulated payment processor for testing the checkout flow.
It exposes a simple FastAPI application that mimics the processor's two success
shapes and its failure shape.

Simulation Scenarios (selected by the request):
    • emailAddress starts with "decline"  → {"success": false, "error": "Insufficient funds"}
    • emailAddress starts with "reject"   → HTTP 402 with an error detail
    • emailAddress starts with "timeout"  → Simulated slow response
    • paymentMethod "card"                → Hosted redirect (paymentUrl, wrapped in "data")
    • any other request                   → Direct confirmation (orderId, no paymentUrl)

Endpoints:
    POST /api/v1/checkout/zenoPayCheckOut — Handles incoming checkout requests.

Port:
    Default: 8002 (HTTP)
"""

import asyncio
import logging
import uuid

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock Payment Processor")
log = logging.getLogger(__name__)

HOSTED_PAYMENT_BASE_URL = "https://pay.mock-processor.test/checkout"


class CheckoutRequest(BaseModel):
    """
    Represents a checkout request as the processor receives it.

    Attributes:
        totalAmount (int): Amount in whole TZS.
        currency (str): Always the base currency.
        paymentMethod (str): 'mobile' or 'card'.
        deliveryMethod (str): 'delivery' or 'pickup'.
    """
    firstName: str
    lastName: str
    emailAddress: str
    phoneNumber: str
    address: str
    city: str
    country: str
    deliveryInstructions: str = ""
    deliveryMethod: str
    paymentMethod: str
    agreeToTerms: bool
    totalAmount: int
    currency: str


@app.post("/api/v1/checkout/zenoPayCheckOut")
async def create_checkout(
        request: CheckoutRequest,
        idempotency_key: str = Header("", alias="Idempotency-Key")
):
    """
    Processes a checkout request.

    Args:
        request (CheckoutRequest): The checkout payload.
        idempotency_key (str): Client-provided key for this submission attempt.

    Returns:
        dict: Either a direct confirmation, a hosted-redirect envelope or a
            `success: false` body.

    Raises:
        HTTPException(402): For "reject" scenarios.
    """
    log.info(f"[PP] Checkout request from {request.emailAddress} (Idempotency: {idempotency_key})")
    order_id = f"ORD-{uuid.uuid4().hex[:10].upper()}"
    transaction_id = f"tr_{uuid.uuid4().hex}"

    if request.emailAddress.startswith("decline"):
        log.warning(f"[PP] Checkout for {request.emailAddress} declined.")
        return {"success": False, "error": "Insufficient funds", "message": "Payment declined"}

    if request.emailAddress.startswith("reject"):
        raise HTTPException(
            status_code=402,
            detail={"errorCode": "payment_rejected", "message": "Card rejected by issuer."}
        )

    if request.emailAddress.startswith("timeout"):
        log.info(f"[PP] Simulating slow response for {request.emailAddress}...")
        await asyncio.sleep(30)

    if request.paymentMethod == "card":
        return {"data": {
            "success": True,
            "orderId": order_id,
            "transactionId": transaction_id,
            "paymentUrl": f"{HOSTED_PAYMENT_BASE_URL}/{transaction_id}",
            "message": "Redirecting to payment page",
        }}

    log.info(f"[PP] Checkout {order_id} confirmed directly.")
    return {
        "success": True,
        "orderId": order_id,
        "transactionId": transaction_id,
        "message": "Payment request sent to your phone",
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8002)
