"""Confidence feedback example.

Demonstrates batch validation, subscribing to validation events and
feeding human outcomes back into the confidence calibrator.
"""

import asyncio

from staycheck import QueueSink, StaycheckSettings, ValidationService

LISTINGS = [
    {
        "id": "prop-1",
        "name": "Ribeira Riverside Flat",
        "address": {"street": "Cais da Ribeira 8", "city": "Porto", "postalCode": "4050-510", "country": "Portugal"},
        "price": 95,
        "propertyType": "apartment",
        "maxGuests": 3,
        "bedrooms": 1,
    },
    {
        "id": "prop-2",
        "name": "Sea View Villa",
        "address": {"street": "Rua do Mar 3", "city": "Faro", "postalCode": "8000-100", "country": "Portugal"},
        "price": -10,
        "propertyType": "villa",
        "maxGuests": 8,
        "bedrooms": 4,
        "amenities": ["pool", "noPool"],
    },
]


async def main():
    # Retrain after a handful of labelled readings instead of the default 1000
    settings = StaycheckSettings(retrain_min_samples=2, training_max_epochs=50)

    async with ValidationService(config=settings) as service:
        sink = QueueSink()
        await service.subscribe(sink)

        requests = [
            {
                "response": listing,
                "context": {"requestId": listing["id"], "sessionId": "demo", "responseType": "property_info"},
            }
            for listing in LISTINGS
        ]
        report = await service.validate_batch(requests)
        await service.notifier.drain()

        print("Batch Summary")
        print("=============")
        print(f"Total: {report.summary.total}")
        print(f"Successful: {report.summary.successful}")
        print(f"Failed: {report.summary.failed}")
        print()

        while not sink.queue.empty():
            message = sink.queue.get_nowait()
            print(f"Event: {message['event']}")
        print()

        # A reviewer confirms the first listing and rejects the second
        readings = service.calibrator.readings("demo")
        for reading, outcome in zip(readings, ["correct", "incorrect"]):
            service.record_feedback("demo", reading.timestamp, outcome)

        # The next validation retrains the calibration network
        await service.validate_batch(requests[:1])

        metrics = service.get_metrics()
        calibration = metrics["calibration"]
        print("Calibration")
        print("===========")
        print(f"Readings: {calibration['total_readings']} ({calibration['labelled_readings']} labelled)")
        print(f"Retrained: {calibration['retrain_count']} time(s)")
        print(f"Auto-correct threshold: {calibration['auto_correct_threshold']:.3f}")


if __name__ == "__main__":
    asyncio.run(main())
