"""
Deployment operations for MyCloud stacks.
"""

from .bucket_destroyer import BucketDestroyer
from .coordinator import DeploymentCoordinator
from .deploy_items import LocalConfFiles, get_deploy_items, normalize_deploy_opts
from .pipeline import Pipeline, PipelineResult, Task, TaskContext

__all__ = [
    "BucketDestroyer",
    "DeploymentCoordinator",
    "LocalConfFiles",
    "Pipeline",
    "PipelineResult",
    "Task",
    "TaskContext",
    "get_deploy_items",
    "normalize_deploy_opts",
]
