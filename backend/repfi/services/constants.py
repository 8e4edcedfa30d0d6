# backend/repfi/services/constants.py
"""
Centralized constants for the comptable services.

Usage:
    from repfi.services.constants import REQUIRED_FILE_TYPES, FILE_TYPE_LABELS
"""

from repfi.models import FileType, ProcessingStatus


# =============================================================================
# COMPTABLE FILE FORMAT (v3.0: unified general ledger)
# =============================================================================

FILE_FORMAT_VERSION: str = "3.0"
FILE_FORMAT_DESCRIPTION: str = "4-file format with unified general ledger"

# Every upload must contain exactly one file of each of these types
REQUIRED_FILE_TYPES: tuple[FileType, ...] = (
    FileType.GRAND_LIVRE,
    FileType.PLAN_COMPTES,
    FileType.PLAN_TIERS,
    FileType.CODE_JOURNAL,
)

FILE_TYPE_LABELS: dict[FileType, str] = {
    FileType.GRAND_LIVRE: "Grand Livre Comptable",
    FileType.PLAN_COMPTES: "Plan Comptable",
    FileType.PLAN_TIERS: "Plan Tiers",
    FileType.CODE_JOURNAL: "Codes Journaux",
    FileType.GRAND_LIVRE_COMPTES: "Grand Livre des Comptes (legacy)",
    FileType.GRAND_LIVRE_TIERS: "Grand Livre des Tiers (legacy)",
}

EXCEL_CONTENT_TYPES: frozenset[str] = frozenset({
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})


# =============================================================================
# OBJECT STORAGE LAYOUT
# =============================================================================

# Sub-folders of a period prefix that are never copied into a backup
BACKUP_EXCLUDED_FOLDERS: tuple[str, ...] = ("backup/", "success/", "EXCEL/")

# Only the first page of existing objects is considered for backup
BACKUP_LIST_MAX_KEYS: int = 10

UPLOAD_SUCCESS_STATUS: str = "SUCCES"
HISTORY_ACTION_UPLOAD: str = "UPLOAD_COMPTABLE"
HISTORY_ACTION_UPDATE: str = "UPDATE_COMPTABLE"
HISTORY_ACTION_ETL_TRIGGERED: str = "ETL_TRIGGERED"

# Objects under these sub-folders survive a replacement of the period files
REPLACE_KEPT_FOLDERS: tuple[str, ...] = ("backup/",)


# =============================================================================
# PERIOD LIFECYCLE
# =============================================================================

# The ETL owns a period while it is in one of these states
LOCKED_STATUSES: frozenset[ProcessingStatus] = frozenset({
    ProcessingStatus.PROCESSING,
    ProcessingStatus.VALIDATING,
})

# Periods not yet finished by the ETL (PENDING included)
IN_PROGRESS_STATUSES: tuple[ProcessingStatus, ...] = (
    ProcessingStatus.PENDING,
    ProcessingStatus.PROCESSING,
    ProcessingStatus.VALIDATING,
)


# =============================================================================
# ETL EXPORT DOWNLOAD
# =============================================================================

EXPORT_URL_SCHEME: str = "s3://"
EXPORT_MIME_TYPE: str = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DOWNLOAD_URL_EXPIRES_SECONDS: int = 3600


# =============================================================================
# RATE LIMITING
# =============================================================================
# Format: "count/period" (slowapi syntax)

RATE_LIMIT_DEFAULT: str = "100/minute"
RATE_LIMIT_WRITE: str = "30/minute"
RATE_LIMIT_UPLOAD: str = "10/minute"
RATE_LIMIT_HEALTH: str = "300/minute"
