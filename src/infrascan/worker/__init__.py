from .artifact import credentials_artifact
from .executor import (
    AnalysisExecutor,
    AnalysisResult,
    stderr_failure_policy,
    exit_code_failure_policy,
)

__all__ = [
    "credentials_artifact", "AnalysisExecutor", "AnalysisResult",
    "stderr_failure_policy", "exit_code_failure_policy",
]
