# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Agent name and image resolution.

Commands run with ``--agent`` take agent tokens (``dev``) instead of
container names; they are expanded to ``berth.<project>.<agent>``.
Full container names and references (anything containing a ``.`` or a
``:``) are left untouched.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from berth.config import ProjectConfig, UserSettings
from berth.engine.client import EngineClient
from berth.engine.names import (
    container_name,
    project_filter,
    validate_resource_name,
)
from berth.errors import EngineError, InvalidAgentError, NoImageError


logger = logging.getLogger(__name__)

#: Image reference that asks for automatic resolution.
AUTO_IMAGE = "@"


class ImageSource(Enum):
    EXPLICIT = "explicit"
    PROJECT = "project"
    SETTINGS = "settings"
    CONFIG = "config"


@dataclass(frozen=True)
class ResolvedImage:
    reference: str
    source: ImageSource


def resolve_container_name(project_key: str, agent: str) -> str:
    """Expand an agent token into a container name.

    Args:
        project_key: Project key; empty outside a project.
        agent: Agent token or full container name.

    Returns:
        ``berth.<project>.<agent>`` for agent tokens, *agent* unchanged
        for references containing ``.`` or ``:``.

    Raises:
        InvalidAgentError: If *agent* is not a valid name component.
    """
    if "." in agent or ":" in agent:
        return agent
    reason = validate_resource_name(agent)
    if reason:
        raise InvalidAgentError(f"invalid agent name: {reason}")
    return container_name(project_key, agent)


def resolve_container_names(project_key: str, agents: list[str]) -> list[str]:
    """Vectorized ``resolve_container_name``."""
    return [resolve_container_name(project_key, a) for a in agents]


def find_project_image(engine: EngineClient, project_key: str) -> str:
    """Return the project's labelled ``:latest`` image, or ``""``."""
    if not project_key:
        return ""
    for image in engine.list_images(labels=project_filter(project_key)):
        for tag in image.get("RepoTags") or []:
            if tag.endswith(":latest"):
                return tag
    return ""


def resolve_image_with_source(
    image_spec: str,
    engine: EngineClient,
    project: ProjectConfig | None,
    settings: UserSettings | None,
) -> ResolvedImage:
    """Resolve *image_spec*, reporting where the reference came from.

    Anything other than ``@`` is returned as given.  For ``@`` the
    lookup order is the project's labelled image, the user settings
    default image, then the project config's ``build.image``.

    Raises:
        NoImageError: If ``@`` cannot be resolved.
    """
    if image_spec != AUTO_IMAGE:
        return ResolvedImage(image_spec, ImageSource.EXPLICIT)

    if project is not None and project.project:
        try:
            found = find_project_image(engine, project.project)
        except EngineError as e:
            logger.debug(
                "Project image lookup for %s failed: %s", project.project, e
            )
        else:
            if found:
                return ResolvedImage(found, ImageSource.PROJECT)

    if settings is not None and settings.default_image:
        return ResolvedImage(settings.default_image, ImageSource.SETTINGS)
    if project is not None and project.image:
        return ResolvedImage(project.image, ImageSource.CONFIG)
    raise NoImageError(
        "no image found for '@': build a project image or set "
        "default_image in settings"
    )


def resolve_image(
    image_spec: str,
    engine: EngineClient,
    project: ProjectConfig | None,
    settings: UserSettings | None,
) -> str:
    """Resolve *image_spec* to an image reference.

    Raises:
        NoImageError: If ``@`` cannot be resolved.
    """
    resolved = resolve_image_with_source(image_spec, engine, project, settings)
    logger.debug(
        "Resolved image %s -> %s (%s)",
        image_spec,
        resolved.reference,
        resolved.source.value,
    )
    return resolved.reference
