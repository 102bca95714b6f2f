"""
Time-bucketed keys for scheduled jobs.

A job lives in the partition named after the bucket its due time falls into,
and is ordered inside that partition by a sort key that starts with the due
time at fixed width. Range scans over `(partition_key, sort_key <= bound)` then
return exactly the jobs that are due, without touching later buckets.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DEFAULT_WIDTH_SECONDS = 300
DEFAULT_PREFIX = "j"
DEFAULT_SEPARATOR = "#"


def to_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def encode_time(value: datetime) -> str:
    """Fixed-width ISO-8601 rendering whose string order is time order."""
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def bucket_start(value: datetime, width_seconds: int = DEFAULT_WIDTH_SECONDS) -> datetime:
    width = timedelta(seconds=width_seconds)
    return EPOCH + ((to_utc(value) - EPOCH) // width) * width


def bucket(
    due_time: datetime,
    width_seconds: int = DEFAULT_WIDTH_SECONDS,
    prefix: str = DEFAULT_PREFIX,
    separator: str = DEFAULT_SEPARATOR,
) -> str:
    """
    Maps a due time to its partition key.

    The time is floored to a multiple of `width_seconds` since the epoch, so
    2026-02-09T11:33:00Z with a 5 minute width lands in "j#2026-02-09T11:30".
    """
    start = bucket_start(due_time, width_seconds)
    return f"{prefix}{separator}{start.strftime('%Y-%m-%dT%H:%M')}"


def partitions_between(
    start: datetime,
    end: datetime,
    width_seconds: int = DEFAULT_WIDTH_SECONDS,
    prefix: str = DEFAULT_PREFIX,
    separator: str = DEFAULT_SEPARATOR,
) -> list[str]:
    """
    Every partition key covering [start, end], oldest first.
    Both the bucket holding `start` and the partial bucket holding `end` are included.
    """
    width = timedelta(seconds=width_seconds)
    current = bucket_start(start, width_seconds)
    last = bucket_start(end, width_seconds)

    keys = []
    while current <= last:
        keys.append(bucket(current, width_seconds, prefix, separator))
        current += width
    return keys


def make_sort_key(
    due_time: datetime,
    unique_id: Optional[str] = None,
    separator: str = DEFAULT_SEPARATOR,
) -> str:
    return f"{encode_time(due_time)}{separator}{unique_id or uuid4().hex}"


def due_upper_bound(now: datetime, separator: str = DEFAULT_SEPARATOR) -> str:
    """
    Exclusive upper bound for sort keys of jobs due at or before `now`.

    A key due exactly at `now` continues with the separator after the timestamp,
    so bumping the separator by one code point keeps every such key below the bound
    while any later timestamp compares above it.
    """
    return f"{encode_time(now)}{chr(ord(separator) + 1)}"
