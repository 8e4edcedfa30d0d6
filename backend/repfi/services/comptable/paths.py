# backend/repfi/services/comptable/paths.py
"""
Object key layout for comptable files.

    {Company}_{companyId}/{Client}_{clientId}/declaration/{year}/periode-{start}-{end}/
        {FILE_TYPE}/{YYYYMMDD}_{FILE_TYPE}_{Client}.{ext}
        backup/{YYYYMMDD_HHMMSS}/{file name}
"""

import re
from datetime import date, datetime

from repfi.models import FileType

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^\w\-]", re.ASCII)


def format_yyyymmdd(value: date) -> str:
    return value.strftime("%Y%m%d")


def sanitize_name(name: str) -> str:
    """Replace whitespace runs with "_" and drop anything outside [A-Za-z0-9_-]."""
    return _UNSAFE.sub("", _WHITESPACE.sub("_", name))


def period_folder(start: date, end: date) -> str:
    return f"periode-{format_yyyymmdd(start)}-{format_yyyymmdd(end)}"


def period_prefix(
        company_name: str,
        company_id: str,
        client_name: str,
        client_id: str,
        start: datetime,
        end: datetime,
) -> str:
    """Key prefix (ending with "/") holding every file of a period."""
    return (
        f"{sanitize_name(company_name)}_{company_id}/"
        f"{sanitize_name(client_name)}_{client_id}/"
        f"declaration/{start.year}/{period_folder(start, end)}/"
    )


def comptable_file_name(file_type: FileType, client_name: str, period_end: date, uploaded_name: str) -> str:
    """
    Stored file name: period end date, file type and sanitized client name.

    The extension is taken from the uploaded file name. The client name goes
    through sanitize_name so that it never adds key segments.
    """
    extension = uploaded_name.rsplit(".", 1)[-1]
    return f"{format_yyyymmdd(period_end)}_{file_type.value}_{sanitize_name(client_name)}.{extension}"


def backup_prefix(prefix: str, now: datetime) -> str:
    return f"{prefix}backup/{now.strftime('%Y%m%d_%H%M%S')}/"
