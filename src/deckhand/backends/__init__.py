"""Backend drivers, one per supported project type.

Usage:
    >>> backend = get_backend(ProjectType.CONTAINER)
    >>> backend.project_type
    <ProjectType.CONTAINER: 'container'>
"""

from deckhand.backends.base import Backend
from deckhand.backends.container import ContainerBackend, DanglingImage
from deckhand.backends.scripts import ScriptsBackend
from deckhand.backends.service import ServiceBackend
from deckhand.core.process import CommandRunner, run_command
from deckhand.projects.models import ProjectType

__all__ = [
    "BACKENDS",
    "Backend",
    "ContainerBackend",
    "DanglingImage",
    "ScriptsBackend",
    "ServiceBackend",
    "get_backend",
]

BACKENDS: dict[ProjectType, type[Backend]] = {
    ProjectType.CONTAINER: ContainerBackend,
    ProjectType.SERVICE: ServiceBackend,
    ProjectType.SCRIPTS: ScriptsBackend,
}


def get_backend(project_type: ProjectType, runner: CommandRunner = run_command) -> Backend | None:
    """Instantiate the backend for a project type.

    Returns:
        The backend, or None for ProjectType.UNSUPPORTED.

    """
    backend_class = BACKENDS.get(project_type)
    if backend_class is None:
        return None
    return backend_class(runner)
