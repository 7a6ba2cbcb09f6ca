# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Resource naming and labelling conventions.

Every managed container is named ``berth.<project>.<agent>`` (or
``berth.<agent>`` outside a project) and carries ``dev.berth.*`` labels
that let the tool find its own containers, images and volumes.
"""

import random
import re
from datetime import UTC, datetime


#: Prefix for every berth resource name.
NAME_PREFIX = "berth"

#: Label namespace.
LABEL_PREFIX = "dev.berth"
LABEL_MANAGED = f"{LABEL_PREFIX}.managed"
LABEL_PROJECT = f"{LABEL_PREFIX}.project"
LABEL_AGENT = f"{LABEL_PREFIX}.agent"
LABEL_VERSION = f"{LABEL_PREFIX}.version"
LABEL_IMAGE = f"{LABEL_PREFIX}.image"
LABEL_CREATED = f"{LABEL_PREFIX}.created"
LABEL_WORKDIR = f"{LABEL_PREFIX}.workdir"

MANAGED_LABEL_VALUE = "true"

_MAX_NAME_LENGTH = 128
_VALID_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")

# Docker-style random name components.
_ADJECTIVES = (
    "admiring", "adoring", "affectionate", "agitated", "amazing",
    "angry", "awesome", "beautiful", "blissful", "bold",
    "boring", "brave", "busy", "charming", "clever",
    "compassionate", "competent", "confident", "cool", "cranky",
    "dazzling", "determined", "distracted", "dreamy", "eager",
    "ecstatic", "elastic", "elated", "elegant", "eloquent",
    "epic", "exciting", "fervent", "festive", "flamboyant",
    "focused", "friendly", "frosty", "funny", "gallant",
    "gifted", "goofy", "gracious", "great", "happy",
    "hardcore", "heuristic", "hopeful", "hungry", "infallible",
    "inspiring", "intelligent", "interesting", "jolly", "jovial",
    "keen", "kind", "laughing", "loving", "lucid",
    "magical", "modest", "musing", "mystifying", "nervous",
    "nice", "nifty", "nostalgic", "objective", "optimistic",
    "peaceful", "pedantic", "pensive", "practical", "priceless",
    "quirky", "quizzical", "recursing", "relaxed", "reverent",
    "romantic", "serene", "sharp", "silly", "sleepy",
    "stoic", "strange", "suspicious", "sweet", "tender",
    "thirsty", "trusting", "unruffled", "upbeat", "vibrant",
    "vigilant", "vigorous", "wizardly", "wonderful", "xenodochial",
    "youthful", "zealous", "zen",
)  # fmt: skip

_NOUNS = (
    "albattani", "allen", "almeida", "archimedes", "aryabhata",
    "austin", "babbage", "banach", "bardeen", "bartik",
    "bassi", "bell", "bhabha", "bhaskara", "blackwell",
    "bohr", "booth", "borg", "bose", "bouman",
    "brahmagupta", "brattain", "burnell", "cannon", "carson",
    "cartwright", "cerf", "chandrasekhar", "chaplygin", "chatelet",
    "chebyshev", "clarke", "cohen", "cori", "cray",
    "curie", "darwin", "davinci", "diffie", "dijkstra",
    "dirac", "easley", "edison", "einstein", "elion",
    "engelbart", "euclid", "euler", "faraday", "feistel",
    "fermat", "fermi", "feynman", "franklin", "gagarin",
    "galileo", "galois", "gauss", "germain", "goldberg",
    "goldwasser", "goodall", "grothendieck", "hamilton", "hawking",
    "heisenberg", "hellman", "hertz", "hodgkin", "hopper",
    "hypatia", "jackson", "jemison", "jennings", "johnson",
    "kalam", "kepler", "khayyam", "kilby", "knuth",
    "lamarr", "lamport", "leakey", "leavitt", "liskov",
    "lovelace", "lumiere", "margulis", "maxwell", "mccarthy",
    "mcclintock", "meitner", "mendel", "mendeleev", "merkle",
    "mirzakhani", "montalcini", "moore", "morse", "napier",
    "nash", "neumann", "newton", "nightingale", "nobel",
    "noether", "noyce", "panini", "pascal", "payne",
    "pike", "poincare", "ptolemy", "raman", "ramanujan",
    "ride", "ritchie", "roentgen", "rubin", "saha",
    "sammet", "shamir", "shannon", "shaw", "shockley",
    "sinoussi", "snyder", "stonebraker", "sutherland", "swanson",
    "tesla", "tharp", "thompson", "torvalds", "turing",
    "villani", "volhard", "wiles", "williams", "wilson",
    "wing", "wozniak", "wright", "wu", "yalow",
    "yonath", "zhukovsky",
)  # fmt: skip


def validate_resource_name(name: str) -> str | None:
    """Check a name against the engine's container name rules.

    Names must match ``[a-zA-Z0-9][a-zA-Z0-9_.-]*`` and be at most 128
    characters.

    Args:
        name: Candidate name.

    Returns:
        None when valid, otherwise a human-readable reason.
    """
    if not name:
        return "name cannot be empty"
    if len(name) > _MAX_NAME_LENGTH:
        return (
            f"name is too long ({len(name)} characters, "
            f"maximum {_MAX_NAME_LENGTH})"
        )
    if not _VALID_NAME.match(name):
        if name.startswith("-"):
            return f"invalid name {name!r}: cannot start with a hyphen"
        return (
            f"invalid name {name!r}: only [a-zA-Z0-9][a-zA-Z0-9_.-] "
            f"are allowed"
        )
    return None


def container_name(project: str, agent: str) -> str:
    """Build the container name for an agent.

    Callers validate *project* and *agent* first; see
    ``berth.resolve.resolve_container_name``.
    """
    if project:
        return f"{NAME_PREFIX}.{project}.{agent}"
    return f"{NAME_PREFIX}.{agent}"


def parse_container_name(name: str) -> tuple[str, str] | None:
    """Split a managed container name into ``(project, agent)``.

    The engine reports names with a leading ``/``, which is ignored.

    Returns:
        ``(project, agent)``, with an empty project for project-less
        names, or None when *name* is not a managed name.
    """
    parts = name.removeprefix("/").split(".")
    if len(parts) == 3 and parts[0] == NAME_PREFIX:
        return parts[1], parts[2]
    if len(parts) == 2 and parts[0] == NAME_PREFIX:
        return "", parts[1]
    return None


def image_tag(project: str) -> str:
    """Return the default image tag built for a project."""
    return f"{NAME_PREFIX}-{project}:latest"


def generate_random_name() -> str:
    """Generate a Docker-style ``adjective-noun`` agent name."""
    return f"{random.choice(_ADJECTIVES)}-{random.choice(_NOUNS)}"


def container_labels(
    project: str,
    agent: str,
    *,
    version: str = "",
    image: str = "",
    workdir: str = "",
) -> dict[str, str]:
    """Build the labels attached to a managed container.

    The project label is omitted for project-less containers.
    """
    labels = {
        LABEL_MANAGED: MANAGED_LABEL_VALUE,
        LABEL_AGENT: agent,
        LABEL_CREATED: datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
    }
    if project:
        labels[LABEL_PROJECT] = project
    if version:
        labels[LABEL_VERSION] = version
    if image:
        labels[LABEL_IMAGE] = image
    if workdir:
        labels[LABEL_WORKDIR] = workdir
    return labels


def project_filter(project: str) -> list[str]:
    """Return engine label filters selecting a project's resources."""
    filters = [f"{LABEL_MANAGED}={MANAGED_LABEL_VALUE}"]
    if project:
        filters.append(f"{LABEL_PROJECT}={project}")
    return filters
