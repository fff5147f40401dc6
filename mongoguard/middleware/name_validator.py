# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Database, collection and field name checks."""

from dataclasses import dataclass
from typing import Optional

SYSTEM_COLLECTION_PREFIX = "system."


@dataclass(frozen=True)
class NameValidation:
    """Outcome of a name check."""

    valid: bool
    error: Optional[str] = None


def _basic_checks(name: Optional[str], label: str) -> Optional[str]:
    """Shared empty / NUL checks. Returns an error message or None."""
    if not name:
        return f"{label} name must not be empty"
    if "\0" in name:
        return f"{label} name must not contain null bytes"
    return None


def validate_collection_name(name: Optional[str]) -> NameValidation:
    """Reject empty names, NUL bytes and system.* collections."""
    error = _basic_checks(name, "Collection")
    if error:
        return NameValidation(False, error)
    if name.startswith(SYSTEM_COLLECTION_PREFIX):
        return NameValidation(False, f"Access to system collection '{name}' is not allowed")
    return NameValidation(True)


def validate_field_name(name: Optional[str]) -> NameValidation:
    """Reject empty names, NUL bytes and names starting with $."""
    error = _basic_checks(name, "Field")
    if error:
        return NameValidation(False, error)
    if name.startswith("$"):
        return NameValidation(False, f"Field name must not start with $: '{name}'")
    return NameValidation(True)


def validate_database_name(name: Optional[str], allowed_db_name: str) -> NameValidation:
    """Only the configured database may be accessed."""
    error = _basic_checks(name, "Database")
    if error:
        return NameValidation(False, error)
    if name != allowed_db_name:
        return NameValidation(
            False,
            f"Database '{name}' is not the allowed database. "
            f"Only '{allowed_db_name}' can be accessed",
        )
    return NameValidation(True)
