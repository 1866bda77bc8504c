"""CRUD operations package."""

from lives.app.db.crud.quota_record import (
    bulk_reset_stale,
    decrement_if_positive,
    find_current_record,
    find_record_for_date,
    insert_record,
    list_records_for_user,
    reset_current_record,
)

__all__ = [
    "bulk_reset_stale",
    "decrement_if_positive",
    "find_current_record",
    "find_record_for_date",
    "insert_record",
    "list_records_for_user",
    "reset_current_record",
]
