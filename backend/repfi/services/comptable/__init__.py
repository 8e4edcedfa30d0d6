"""
Comptable (accounting) file services.

Usage:
    from repfi.services.comptable import ComptableUploadService, IncomingFile
    from repfi.services.comptable import ComptablePeriodService, ComptableEtlService
"""

from repfi.services.comptable.periods import (
    BatchStatus,
    ComptablePeriodService,
    ExportDownload,
    compute_progress,
)
from repfi.services.comptable.upload import (
    ComptableUploadService,
    IncomingFile,
    UploadResult,
    parse_period_date,
)
from repfi.services.comptable.etl import (
    AirflowClient,
    ComptableEtlService,
    EtlTriggerResult,
    build_airflow_client,
)

__all__ = [
    "BatchStatus",
    "ComptablePeriodService",
    "ExportDownload",
    "compute_progress",
    "ComptableUploadService",
    "IncomingFile",
    "UploadResult",
    "parse_period_date",
    "AirflowClient",
    "ComptableEtlService",
    "EtlTriggerResult",
    "build_airflow_client",
]
