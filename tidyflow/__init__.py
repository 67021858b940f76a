"""tidyflow: workflow orchestration for configuration cleanup."""

from .config import TidyflowConfig, load_config
from .errors import (
    InvalidWorkflowStateError,
    TidyflowError,
    UnsupportedEventError,
    UnsupportedOperationError,
    WorkflowNotFoundError,
)
from .host import (
    CodeUpdateProvider,
    ConfigCleanupHost,
    ConfigCleanupProvider,
    GenericWorkflowHost,
    ProjectService,
)
from .persistence import get_project_repository, get_repository
from .workflow import create_workflow

__version__ = "0.1.0"
__all__ = [
    "TidyflowConfig",
    "load_config",
    "TidyflowError",
    "InvalidWorkflowStateError",
    "UnsupportedEventError",
    "UnsupportedOperationError",
    "WorkflowNotFoundError",
    "CodeUpdateProvider",
    "ConfigCleanupHost",
    "ConfigCleanupProvider",
    "GenericWorkflowHost",
    "ProjectService",
    "get_project_repository",
    "get_repository",
    "create_workflow",
]
