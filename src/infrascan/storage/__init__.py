import os
from typing import Optional

from .base import JobStore
from .file_store import FileJobStore
from .dynamo_store import DynamoJobStore


def build_job_store(table_name: Optional[str] = None, root: Optional[str] = None) -> JobStore:
    """DynamoDB when a jobs table is configured, local JSON files otherwise."""
    table_name = table_name or os.environ.get("JOBS_TABLE")
    if table_name:
        return DynamoJobStore(table_name=table_name)
    return FileJobStore(root=root)


__all__ = ["JobStore", "FileJobStore", "DynamoJobStore", "build_job_store"]
