"""Tests for the ValidationService."""

import pytest

from staycheck.core.config import StaycheckSettings
from staycheck.core.exceptions import InvalidRequestError
from staycheck.core.types import LAYER_NAMES, ValidationContext, ValidationOptions
from staycheck.pipeline.batch import BatchRequest
from staycheck.pipeline.events import QueueSink
from staycheck.pipeline.service import ValidationService


def _context(request_id="r1", session_id="s1", response_type="property_info"):
    return ValidationContext(request_id=request_id, session_id=session_id, response_type=response_type)


class TestValidate:
    """Tests for single validation calls."""

    @pytest.mark.asyncio
    async def test_input_errors(self, service, context):
        with pytest.raises(InvalidRequestError):
            await service.validate(["not", "a", "dict"], context)
        with pytest.raises(InvalidRequestError):
            await service.validate({}, {"sessionId": "s1"})
        with pytest.raises(InvalidRequestError):
            await service.validate({}, context, {"skipLayers": []})

        assert service.metrics.total_validations == 0

    @pytest.mark.asyncio
    async def test_audit_trail(self, service, context, clean_property):
        """Test one audit entry per layer and per post-processing stage."""
        result = await service.validate(clean_property, context)

        layers = [entry.layer for entry in result.audit_trail]
        assert sorted(layers[:5]) == sorted(LAYER_NAMES)
        assert layers[5:] == ["aggregate", "correct", "calibrate", "finalize"]
        assert result.metadata.layers == list(LAYER_NAMES)
        assert result.metadata.rules_applied > 0
        assert "geographic_database" in result.metadata.sources_checked

    @pytest.mark.asyncio
    async def test_skip_layers(self, service, context, clean_property):
        options = ValidationOptions(skip_layers={"factual", "semantic"})
        result = await service.validate(clean_property, context, options)

        assert result.metadata.layers == ["syntax", "business", "consistency"]
        assert result.metadata.sources_checked == []
        assert len(result.audit_trail) == 7

    @pytest.mark.asyncio
    async def test_correction_disabled(self, service, context, clean_property):
        clean_property["price"] = 100
        clean_property["pricing"] = {"basePrice": 100, "cleaningFee": 20, "serviceFee": 10, "taxes": 5, "total": 150}
        options = ValidationOptions(enable_auto_correction=False)

        result = await service.validate(clean_property, context, options)
        correction = next(c for c in result.corrections if c.field == "pricing.total")
        assert not correction.auto_applied
        assert correction.corrected_value == 135
        assert clean_property["pricing"]["total"] == 150

    @pytest.mark.asyncio
    async def test_one_correction_per_field(self, service, booking_context, clean_booking):
        clean_booking["guestCount"] = 6
        result = await service.validate(clean_booking, booking_context)

        fields = [c.field for c in result.corrections]
        assert len(fields) == len(set(fields))
        assert "guestCount" in fields

    @pytest.mark.asyncio
    async def test_low_confidence_warning(self, service, context, clean_property):
        options = ValidationOptions(confidence_threshold=1.0)
        result = await service.validate(clean_property, context, options)

        warning = next(w for w in result.warnings if w.field == "confidence")
        assert warning.impact == "high"
        assert result.is_valid
        assert not result.accepted

    @pytest.mark.asyncio
    async def test_pipeline_failure(self, service, context, clean_property, monkeypatch):
        """Test an internal failure yields an invalid zero-confidence result."""
        def explode(*args):
            raise RuntimeError("fact database offline")

        monkeypatch.setattr(service.fact_checker, "validate_facts", explode)
        sink = QueueSink()
        await service.subscribe(sink)
        sink.queue.get_nowait()

        result = await service.validate(clean_property, context)
        await service.notifier.drain()

        assert not result.is_valid
        assert result.confidence == 0.0
        assert result.errors[0].kind == "system"
        assert "fact database offline" in result.errors[0].message
        assert service.metrics.pipeline_failures == 1
        assert service.metrics.total_validations == 1
        assert sink.queue.get_nowait()["event"] == "validation_error"

    @pytest.mark.asyncio
    async def test_notifications(self, service, context, clean_property):
        sink = QueueSink()
        await service.subscribe(sink)
        assert sink.queue.get_nowait()["event"] == "connected"

        await service.validate(clean_property, context)
        await service.validate(clean_property, context, ValidationOptions(enable_realtime_updates=False))
        await service.notifier.drain()

        message = sink.queue.get_nowait()
        assert message["event"] == "validation_update"
        assert message["data"]["request_id"] == "req-1"
        assert sink.queue.empty()

        assert service.unsubscribe(sink)
        assert service.get_metrics()["subscribers"] == 0

    @pytest.mark.asyncio
    async def test_services_are_isolated(self, settings, offline_checker, context, clean_property):
        first = ValidationService(config=settings, fact_checker=offline_checker)
        second = ValidationService(config=settings, fact_checker=offline_checker)
        await first.validate(clean_property, context)

        assert first.get_validation_history("sess-1").total == 1
        assert second.get_validation_history("sess-1").total == 0
        assert second.metrics.total_validations == 0


class TestHistoryAndMetrics:
    """Tests for history paging, metrics and feedback."""

    @pytest.mark.asyncio
    async def test_history_paging(self, service, clean_property):
        for i in range(3):
            await service.validate(dict(clean_property), _context(request_id=f"r{i}"))

        page = service.get_validation_history("s1", limit=2, offset=1)
        assert page.total == 3
        assert len(page.history) == 2
        assert not page.has_more
        assert service.get_validation_history("s1", limit=1).has_more
        assert service.get_validation_history("unknown").total == 0

    @pytest.mark.parametrize("limit, offset", [(0, 0), (10, -1)])
    def test_history_bad_paging(self, settings, limit, offset):
        service = ValidationService(config=settings)
        with pytest.raises(InvalidRequestError):
            service.get_validation_history("s1", limit=limit, offset=offset)

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, offline_checker, clean_property):
        service = ValidationService(config=StaycheckSettings(history_limit_per_session=2), fact_checker=offline_checker)
        for i in range(4):
            await service.validate(dict(clean_property), _context(request_id=f"r{i}"))
        assert service.get_validation_history("s1").total == 2

    @pytest.mark.asyncio
    async def test_metrics(self, service, context, clean_property):
        await service.validate(clean_property, context)
        await service.validate({"price": -10}, context)

        metrics = service.get_metrics()
        assert metrics["total_validations"] == 2
        assert metrics["successful_validations"] == 1
        assert metrics["success_rate"] == 0.5
        assert metrics["average_processing_time_ms"] > 0
        assert metrics["calibration"]["total_readings"] == 2

    @pytest.mark.asyncio
    async def test_feedback(self, service, context, clean_property):
        result = await service.validate(clean_property, context)
        reading = service.calibrator.readings(context.session_id)[0]

        assert service.record_feedback(context.session_id, reading.timestamp, "correct", 90)
        assert reading.predicted_confidence == result.confidence
        assert service.get_metrics()["calibration"]["labelled_readings"] == 1


class TestBatch:
    """Tests for batch validation."""

    @pytest.mark.asyncio
    async def test_size_limits(self, offline_checker, clean_property):
        service = ValidationService(config=StaycheckSettings(max_batch_size=2), fact_checker=offline_checker)
        item = BatchRequest(response=clean_property, context=_context())

        with pytest.raises(InvalidRequestError):
            await service.validate_batch([])
        with pytest.raises(InvalidRequestError):
            await service.validate_batch([item, item, item])
        with pytest.raises(InvalidRequestError):
            await service.validate_batch([item], global_options="fast")

    @pytest.mark.asyncio
    async def test_results_in_order(self, offline_checker, clean_property):
        """Test each item fills its own slot and failures never abort the batch."""
        service = ValidationService(config=StaycheckSettings(batch_concurrency=2), fact_checker=offline_checker)
        requests = [
            BatchRequest(response=dict(clean_property), context=_context(request_id="b0")),
            {"response": {"price": -10}, "context": {"requestId": "b1", "sessionId": "s1", "responseType": "property_info"}},
            {"response": dict(clean_property), "context": {"responseType": "property_info"}},
            {"response": None, "context": {"requestId": "b3", "sessionId": "s1", "responseType": "property_info"}},
            BatchRequest(response=dict(clean_property), context=_context(request_id="b4")),
        ]

        report = await service.validate_batch(requests)

        assert [r.index for r in report.results] == [0, 1, 2, 3, 4]
        assert [r.success for r in report.results] == [True, True, False, False, True]
        assert report.results[1].result.is_valid is False
        assert report.results[2].error
        assert report.summary.total == 5
        assert report.summary.successful + report.summary.failed == report.summary.total
        assert report.to_dict()["summary"]["failed"] == 2

    @pytest.mark.asyncio
    async def test_global_and_item_options(self, service, clean_property):
        priced = dict(clean_property, price=100)
        priced["pricing"] = {"basePrice": 100, "cleaningFee": 20, "serviceFee": 10, "taxes": 5, "total": 150}
        requests = [
            {"response": priced, "context": {"requestId": "g0", "sessionId": "s1", "responseType": "property_info"}},
            {
                "response": dict(clean_property),
                "context": {"requestId": "g1", "sessionId": "s1", "responseType": "property_info"},
                "options": {"skipLayers": ["factual"]},
            },
        ]

        report = await service.validate_batch(requests, {"enableAutoCorrection": False})

        first, second = (r.result for r in report.results)
        assert not any(c.auto_applied for c in first.corrections)
        assert "factual" not in second.metadata.layers
