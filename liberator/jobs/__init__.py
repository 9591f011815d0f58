"""Liberation job control and storage."""

from .controller import RESULT_HANDLE_TEMPLATE, STATUS_HANDLE_TEMPLATE, JobController
from .requests import LiberationRequest, parse_request, validate_project_name
from .storage import InMemoryJobStore, JobRecorder, JobStore, NullJobRecorder
from .supabase_store import SupabaseJobRecorder, SupabaseJobStore, SupabaseRestClient

__all__ = [
    "JobController",
    "RESULT_HANDLE_TEMPLATE",
    "STATUS_HANDLE_TEMPLATE",
    "LiberationRequest",
    "parse_request",
    "validate_project_name",
    "JobStore",
    "InMemoryJobStore",
    "JobRecorder",
    "NullJobRecorder",
    "SupabaseRestClient",
    "SupabaseJobStore",
    "SupabaseJobRecorder",
]
