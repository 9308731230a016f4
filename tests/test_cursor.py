from __future__ import annotations

from datetime import UTC, datetime, timedelta

from slotfeed.cursor import RangeCursor
from slotfeed.models import Slot


def _slot(name: str, day: str) -> Slot:
    return Slot(identifier=name, timestamp=datetime.fromisoformat(day).replace(tzinfo=UTC))


def test_eligibility_around_watermark() -> None:
    cursor = RangeCursor.at(datetime(2016, 12, 1, tzinfo=UTC), "/files/a.txt")

    assert not cursor.is_eligible(_slot("/files/old.txt", "2016-11-30"))
    assert not cursor.is_eligible(_slot("/files/a.txt", "2016-12-01"))
    assert cursor.is_eligible(_slot("/files/b.txt", "2016-12-01"))
    assert cursor.is_eligible(_slot("/files/a.txt", "2016-12-02"))


def test_filter_keeps_listing_order_and_drops_older_slots() -> None:
    cursor = RangeCursor.at(datetime(2016, 12, 1, tzinfo=UTC))
    slots = [
        _slot("/files/c.txt", "2016-12-03"),
        _slot("/files/old.txt", "2016-10-11"),
        _slot("/files/b.txt", "2016-12-01"),
        _slot("/files/a.txt", "2016-12-01"),
    ]

    eligible = cursor.filter(slots)

    assert [slot.identifier for slot in eligible] == [
        "/files/c.txt",
        "/files/b.txt",
        "/files/a.txt",
    ]


def test_exclusion_list_only_applies_at_the_watermark() -> None:
    slots = [
        _slot("/files/sampleFile_20161011.txt", "2016-10-11"),
        _slot("/files/example_20161201_2.txt", "2016-12-01"),
        _slot("/files/example_20161201_1.txt", "2016-12-01"),
    ]
    cursor = RangeCursor.at(datetime(2016, 12, 1, tzinfo=UTC), "/files/example_20161201_1.txt")

    eligible = cursor.filter(slots)

    assert [slot.identifier for slot in eligible] == ["/files/example_20161201_2.txt"]


def test_advance_moves_to_latest_timestamp() -> None:
    cursor = RangeCursor.at(datetime(2016, 1, 1, tzinfo=UTC))
    processed = [
        _slot("/files/example_20161201.txt", "2016-12-01"),
        _slot("/files/example_20161202.txt", "2016-12-02"),
    ]

    advanced = cursor.advance(processed)

    assert advanced.watermark == datetime(2016, 12, 2, tzinfo=UTC)
    assert advanced.excluded == frozenset({"/files/example_20161202.txt"})
    assert not any(advanced.is_eligible(slot) for slot in processed)


def test_advance_records_every_slot_sharing_the_new_watermark() -> None:
    cursor = RangeCursor.beginning()
    processed = [
        _slot("/files/example_20161201_1.txt", "2016-12-01"),
        _slot("/files/example_20161201_2.txt", "2016-12-01"),
    ]

    advanced = cursor.advance(processed)

    assert advanced.excluded == frozenset(
        {"/files/example_20161201_1.txt", "/files/example_20161201_2.txt"}
    )
    assert advanced.is_eligible(_slot("/files/example_20161201_3.txt", "2016-12-01"))


def test_advance_at_same_watermark_keeps_earlier_exclusions() -> None:
    cursor = RangeCursor.at(datetime(2016, 12, 1, tzinfo=UTC), "/files/a.txt")

    advanced = cursor.advance([_slot("/files/b.txt", "2016-12-01")])

    assert advanced.watermark == cursor.watermark
    assert advanced.excluded == frozenset({"/files/a.txt", "/files/b.txt"})


def test_advance_with_empty_batch_is_identity() -> None:
    cursor = RangeCursor.at(datetime(2016, 12, 1, tzinfo=UTC), "/files/a.txt")

    assert cursor.advance([]) is cursor


def test_watermark_never_decreases_across_cycles() -> None:
    base = datetime(2016, 12, 1, tzinfo=UTC)
    listing = [
        Slot(identifier=f"/files/{day}_{part}.txt", timestamp=base + timedelta(days=day))
        for day in (3, 0, 2, 1, 4, 5)
        for part in (1, 2)
    ]
    cursor = RangeCursor.beginning()
    seen: set[str] = set()

    for batch_start in range(0, len(listing), 3):
        visible = listing[: batch_start + 3]
        eligible = cursor.filter(visible)
        assert not seen.intersection(slot.identifier for slot in eligible)
        previous = cursor.watermark
        cursor = cursor.advance(eligible)
        seen.update(slot.identifier for slot in eligible)
        assert cursor.watermark >= previous


def test_serialized_form_restores_the_exclusion_set() -> None:
    watermark = datetime(2016, 12, 1, 8, 30, tzinfo=UTC)
    cursor = RangeCursor.at(watermark, "/files/b.txt", "/files/a.txt")

    payload = cursor.to_dict()

    assert payload == {
        "watermark": "2016-12-01T08:30:00+00:00",
        "excluded": ["/files/a.txt", "/files/b.txt"],
    }
    assert RangeCursor.from_dict(payload) == cursor


def test_naive_timestamps_are_treated_as_utc() -> None:
    cursor = RangeCursor(watermark=datetime(2016, 12, 1))
    slot = Slot(identifier="x", timestamp=datetime(2016, 12, 1))

    assert cursor.watermark.tzinfo is UTC
    assert cursor.is_eligible(slot)
    assert not cursor.advance([slot]).is_eligible(slot)
