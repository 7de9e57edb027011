"""Builders for the ride, payment, promo and chat notification payloads."""

from typing import Optional

from .models import NotificationData, NotificationType, to_millis, utcnow


def _stamp() -> dict:
    return {"timestamp": to_millis(utcnow())}


def _money(amount: float, currency: Optional[str]) -> str:
    return f"{currency or '$'}{amount:g}"


def ride_request(ride_id: str, pickup: str, destination: str, estimated_price: Optional[float] = None) -> NotificationData:
    return NotificationData(
        type=NotificationType.RIDE_REQUEST,
        ride_id=ride_id,
        title="New Ride Request",
        message=f"You have a new ride request from {pickup} to {destination}",
        extra=dict(_stamp(), pickup=pickup, destination=destination, estimatedPrice=estimated_price),
    )


def ride_accepted(ride_id: str, driver_id: str, driver_name: str, eta: str, vehicle_info: Optional[str] = None) -> NotificationData:
    return NotificationData(
        type=NotificationType.RIDE_ACCEPTED,
        ride_id=ride_id,
        driver_id=driver_id,
        title="Ride Accepted!",
        message=f"Your ride has been accepted by {driver_name}. ETA: {eta}",
        channel_id="ride_progress",
        extra=dict(_stamp(), driverName=driver_name, eta=eta, vehicleInfo=vehicle_info),
    )


def driver_arrived(ride_id: str, driver_id: str, driver_name: str, pickup_location: Optional[str] = None) -> NotificationData:
    where = f" ({pickup_location})" if pickup_location else ""
    return NotificationData(
        type=NotificationType.RIDE_ARRIVED,
        ride_id=ride_id,
        driver_id=driver_id,
        title="Pilot Arrived!",
        message=f"{driver_name} has arrived at your pickup location{where}. Please come outside.",
        channel_id="ride_progress",
        extra=dict(_stamp(), driverName=driver_name, pickupLocation=pickup_location),
    )


def ride_started(ride_id: str, driver_id: str) -> NotificationData:
    return NotificationData(
        type=NotificationType.RIDE_STARTED,
        ride_id=ride_id,
        driver_id=driver_id,
        title="Ride Started",
        message="Your ride is now in progress. Enjoy your trip!",
        channel_id="ride_progress",
        extra=_stamp(),
    )


def ride_completed(ride_id: str, driver_id: str, amount: float, currency: Optional[str] = None) -> NotificationData:
    return NotificationData(
        type=NotificationType.RIDE_COMPLETED,
        ride_id=ride_id,
        driver_id=driver_id,
        amount=amount,
        title="Ride Completed",
        message=f"Your ride has been completed. Amount: {_money(amount, currency)}",
        extra=dict(_stamp(), currency=currency or "USD"),
    )


def payment(
    success: bool,
    amount: float,
    currency: Optional[str] = None,
    transaction_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> NotificationData:
    if success:
        kind = NotificationType.PAYMENT
        title = "Payment Successful"
        message = f"Your payment of {_money(amount, currency)} has been processed successfully"
    else:
        kind = NotificationType.PAYMENT_FAILED
        title = "Payment Failed"
        message = f"Your payment could not be processed. {reason or 'Please try again.'}"
    return NotificationData(
        type=kind,
        amount=amount,
        title=title,
        message=message,
        extra=dict(_stamp(), currency=currency or "USD", transactionId=transaction_id, reason=reason),
    )


def promo(promo_code: str, discount: str, valid_until: str, description: Optional[str] = None) -> NotificationData:
    return NotificationData(
        type=NotificationType.PROMO,
        promo_code=promo_code,
        title="Special Offer!",
        message=f"Use code {promo_code} for {discount} off your next ride",
        extra=dict(_stamp(), discount=discount, validUntil=valid_until, description=description),
    )


CHAT_PREVIEWS = {
    "image": "📷 Sent you a photo",
    "location": "📍 Sent you a location",
}


def chat(ride_id: str, sender_id: str, sender_name: str, message: str, message_type: str = "text") -> NotificationData:
    return NotificationData(
        type=NotificationType.CHAT,
        ride_id=ride_id,
        sender_id=sender_id,
        sender_name=sender_name,
        title=f"New message from {sender_name}",
        message=CHAT_PREVIEWS.get(message_type, message),
        channel_id="chat",
        extra=dict(_stamp(), messageType=message_type),
    )
