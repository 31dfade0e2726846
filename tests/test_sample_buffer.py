"""Tests for SampleBuffer batching and the batch/record data protocol."""

from __future__ import annotations

import threading
from typing import List

import pytest

from safestep.data_manager.buffer import SampleBuffer
from safestep.data_manager.protocol import (
    BuildingInfo,
    HazardRecord,
    Location,
    MotionSample,
    SampleBatch,
    SampleKind,
    ZERO_LOCATION,
)


def _sample(i: int) -> MotionSample:
    return MotionSample(
        kind=SampleKind.GYROSCOPE,
        x=float(i),
        y=0.0,
        z=0.0,
        location=Location(1.0, 2.0, 3.0),
        timestamp=float(i),
        slot=1,
    )


class TestSampleBuffer:
    def test_cap_three_scenario(self) -> None:
        flushed: List[SampleBatch] = []
        buffer = SampleBuffer(on_flush=flushed.append, batch_size=3)
        samples = [_sample(i) for i in range(4)]

        for s in samples:
            buffer.add_sample(s)

        assert len(flushed) == 1
        assert list(flushed[0].samples) == samples[:3]
        assert buffer.snapshot() == [samples[3]]
        assert buffer.size == 1

    def test_full_buffer_is_not_flushed_until_next_append(self) -> None:
        flushed: List[SampleBatch] = []
        buffer = SampleBuffer(on_flush=flushed.append, batch_size=2)

        assert buffer.add_sample(_sample(0)) is None
        assert buffer.add_sample(_sample(1)) is None
        assert flushed == []
        batch = buffer.add_sample(_sample(2))
        assert batch is flushed[0]
        assert len(batch) == 2

    def test_batch_ids_unique_and_in_flush_order(self) -> None:
        flushed: List[SampleBatch] = []
        buffer = SampleBuffer(on_flush=flushed.append, batch_size=2)

        for i in range(9):
            buffer.add_sample(_sample(i))
        buffer.flush_remainder()

        ids = [b.batch_id for b in flushed]
        assert len(ids) == 5
        assert len(set(ids)) == 5
        assert [s.x for b in flushed for s in b.samples] == [float(i) for i in range(9)]
        assert buffer.flush_count == 5

    def test_flush_remainder_on_empty_buffer_still_produces_batch(self) -> None:
        flushed: List[SampleBatch] = []
        buffer = SampleBuffer(on_flush=flushed.append, batch_size=3)

        batch = buffer.flush_remainder()

        assert flushed == [batch]
        assert len(batch) == 0
        assert batch.batch_id

    def test_reset_discards_without_flushing(self) -> None:
        flushed: List[SampleBatch] = []
        buffer = SampleBuffer(on_flush=flushed.append, batch_size=3)
        buffer.add_sample(_sample(0))

        buffer.reset()

        assert flushed == []
        assert buffer.size == 0
        assert buffer.last_sample is None

    def test_last_sample_survives_flush(self) -> None:
        buffer = SampleBuffer(on_flush=lambda b: None, batch_size=1)
        buffer.add_sample(_sample(0))
        buffer.add_sample(_sample(1))
        buffer.flush_remainder()

        assert buffer.size == 0
        assert buffer.last_sample == _sample(1)

    def test_never_exceeds_cap_under_concurrent_appends(self) -> None:
        flushed: List[SampleBatch] = []
        buffer = SampleBuffer(on_flush=flushed.append, batch_size=7)

        def producer(offset: int) -> None:
            for i in range(100):
                buffer.add_sample(_sample(offset + i))

        threads = [threading.Thread(target=producer, args=(n * 1000,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        buffer.flush_remainder()

        assert all(len(b) <= 7 for b in flushed)
        assert sum(len(b) for b in flushed) == 400

    def test_rejects_non_positive_cap(self) -> None:
        with pytest.raises(ValueError):
            SampleBuffer(on_flush=lambda b: None, batch_size=0)


class TestProtocol:
    def test_sample_document_shape(self) -> None:
        data = _sample(5).to_dict()
        assert data == {
            "kind": "gyroscope",
            "x": 5.0,
            "y": 0.0,
            "z": 0.0,
            "latitude": 1.0,
            "longitude": 2.0,
            "altitude": 3.0,
            "timestamp": 5.0,
            "slot": 1,
        }

    def test_placeholder_sample_is_zero_none_kind(self) -> None:
        sample = MotionSample.placeholder(Location(4.0, 5.0, 6.0), 10.0)
        assert sample.kind == SampleKind.NONE
        assert (sample.x, sample.y, sample.z) == (0.0, 0.0, 0.0)
        assert sample.location.as_tuple() == (4.0, 5.0, 6.0)

    def test_hazard_record_rejects_mismatched_lengths(self) -> None:
        with pytest.raises(ValueError):
            HazardRecord.build(
                hazards=["ice", "stairs"],
                intensities=[1],
                image_id="",
                batch_ids=["b1"],
                start_location=ZERO_LOCATION,
                last_location=ZERO_LOCATION,
                start_time=0.0,
            )

    def test_hazard_record_document_has_empty_building_fields(self) -> None:
        record = HazardRecord.build(
            hazards=["ice"],
            intensities=[2],
            image_id="img-1",
            batch_ids=["b1", "b2"],
            start_location=Location(1.0, 1.0, 1.0),
            last_location=Location(2.0, 2.0, 2.0),
            start_time=100.0,
        )
        data = record.to_dict()

        assert data["batch_ids"] == ["b1", "b2"]
        assert data["building_id"] == ""
        assert data["building_floor"] == ""
        assert data["last_location"] == {"latitude": 2.0, "longitude": 2.0, "altitude": 2.0}
        assert record.validate() == []

    def test_hazard_record_from_dict_restores_building(self) -> None:
        record = HazardRecord.build(
            hazards=["ice"],
            intensities=[2],
            image_id="",
            batch_ids=["b1"],
            start_location=ZERO_LOCATION,
            last_location=ZERO_LOCATION,
            start_time=0.0,
            building=BuildingInfo(building_id="bbb", floor="2", remarks="wet", hazard_location="hall"),
        )
        restored = HazardRecord.from_dict(record.to_dict())
        assert restored == record

    def test_validate_flags_duplicate_batch_ids(self) -> None:
        record = HazardRecord.build(
            hazards=[],
            intensities=[],
            image_id="",
            batch_ids=["b1", "b1"],
            start_location=ZERO_LOCATION,
            last_location=ZERO_LOCATION,
            start_time=0.0,
        )
        assert "batch_ids must be unique" in record.validate()
