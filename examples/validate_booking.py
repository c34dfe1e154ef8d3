"""Basic booking validation example.

Demonstrates how to validate a generated booking confirmation and
read the errors, corrections and calibrated confidence.
"""

import asyncio
from datetime import date, timedelta

from staycheck import ValidationContext, ValidationService


async def main():
    check_in = date.today() + timedelta(days=14)
    check_out = check_in + timedelta(days=3)

    # A generated booking with a wrong total and a wrong night count
    booking = {
        "bookingId": "bk-2041",
        "dates": {"checkIn": check_in.isoformat(), "checkOut": check_out.isoformat()},
        "checkIn": check_in.isoformat(),
        "checkOut": check_out.isoformat(),
        "nights": 4,
        "guestCount": 2,
        "maxGuests": 4,
        "totalPrice": 480,
        "pricing": {
            "basePrice": 360,
            "cleaningFee": 45,
            "serviceFee": 40,
            "taxes": 12,
            "total": 480,
        },
        "currency": "EUR",
    }

    context = ValidationContext(
        request_id="example-1",
        session_id="example",
        response_type="booking_response",
        user_role="guest",
    )

    async with ValidationService() as service:
        result = await service.validate(booking, context)

    print("Validation Result")
    print("=================")
    print(f"Valid: {result.is_valid}")
    print(f"Confidence: {result.confidence:.2f}")
    print(f"Layers: {', '.join(result.metadata.layers)}")
    print()

    print("Errors:")
    for issue in result.errors:
        print(f"  {issue}")
    print()

    print("Corrections:")
    for correction in result.corrections:
        status = "applied" if correction.auto_applied else "suggested"
        print(f"  [{status}] {correction.field}: {correction.original_value!r} -> {correction.corrected_value!r}")
    print()

    print(f"Corrected total: {booking['pricing']['total']}")


if __name__ == "__main__":
    asyncio.run(main())
