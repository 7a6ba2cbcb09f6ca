# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Read-only container commands: ``inspect``, ``ps``, ``logs``, ``top``."""

import argparse
import json
import logging
from typing import Any

from berth.cli.commands._common import Subparsers, add_agent_flag
from berth.cli.env import CommandEnv
from berth.cli.template import FormatTemplate
from berth.engine.framing import demux
from berth.engine.names import (
    LABEL_AGENT,
    LABEL_PROJECT,
    parse_container_name,
    project_filter,
)
from berth.errors import BerthError, ContainerNotFoundError, PartialError
from berth.table import format_table


logger = logging.getLogger(__name__)

_PS_HEADER = ["CONTAINER ID", "NAME", "PROJECT", "AGENT", "IMAGE", "STATUS"]


def register(subparsers: Subparsers) -> None:
    inspect = subparsers.add_parser(
        "inspect", help="Display detailed information on containers"
    )
    add_agent_flag(inspect)
    inspect.add_argument(
        "-f",
        "--format",
        metavar="TEMPLATE",
        help="Format output using a Go-style template",
    )
    inspect.add_argument("containers", nargs="+", metavar="CONTAINER")
    inspect.set_defaults(handler=cmd_inspect)

    for name in ("ps", "list"):
        ps = subparsers.add_parser(name, help="List containers")
        ps.add_argument(
            "-a",
            "--all",
            action="store_true",
            help="Show all containers (default shows just running)",
        )
        ps.add_argument(
            "-q", "--quiet", action="store_true", help="Only display IDs"
        )
        ps.add_argument(
            "--no-trunc", action="store_true", help="Do not truncate output"
        )
        ps.add_argument(
            "--all-projects",
            action="store_true",
            help="Show containers of every project",
        )
        ps.set_defaults(handler=cmd_ps)

    logs = subparsers.add_parser("logs", help="Fetch the logs of a container")
    add_agent_flag(logs)
    logs.add_argument(
        "-f", "--follow", action="store_true", help="Follow log output"
    )
    logs.add_argument(
        "-t", "--timestamps", action="store_true", help="Show timestamps"
    )
    logs.add_argument(
        "-n",
        "--tail",
        default="all",
        help="Number of lines to show from the end of the logs",
    )
    logs.add_argument("--since", help="Show logs since timestamp or duration")
    logs.add_argument(
        "--until", help="Show logs before a timestamp or duration"
    )
    logs.add_argument(
        "--details",
        action="store_true",
        help="Show extra details provided to logs",
    )
    logs.add_argument("container", metavar="CONTAINER")
    logs.set_defaults(handler=cmd_logs)

    top = subparsers.add_parser(
        "top", help="Display the running processes of a container"
    )
    add_agent_flag(top)
    top.add_argument("container", metavar="CONTAINER")
    top.add_argument("ps_args", nargs=argparse.REMAINDER)
    top.set_defaults(handler=cmd_top)


# ── inspect ─────────────────────────────────────────────────────────


def cmd_inspect(args: argparse.Namespace, env: CommandEnv) -> int:
    """Print inspect responses as JSON or through a format template.

    Raises:
        PartialError: If any container could not be inspected.
    """
    template = FormatTemplate(args.format) if args.format else None
    results: list[dict[str, Any]] = []
    errors: list[BaseException] = []
    for ref in env.container_refs(args.containers, args.agent):
        try:
            data = env.engine.inspect_container(ref)
        except ContainerNotFoundError as e:
            env.io.error(f"Error: No such container: {ref}")
            errors.append(e)
            continue
        if template is not None:
            env.io.print(template.render(data))
        else:
            results.append(data)

    if template is None:
        env.io.print(json.dumps(results, indent=4))
    if errors:
        raise PartialError(errors, len(args.containers))
    return 0


# ── ps ──────────────────────────────────────────────────────────────


def _name(container: dict[str, Any]) -> str:
    names = container.get("Names") or []
    return names[0].removeprefix("/") if names else ""


def _project_and_agent(container: dict[str, Any]) -> tuple[str, str]:
    """Read project and agent from labels, falling back to the name."""
    labels = container.get("Labels") or {}
    project = labels.get(LABEL_PROJECT, "")
    agent = labels.get(LABEL_AGENT, "")
    if not agent:
        parsed = parse_container_name(_name(container))
        if parsed is not None:
            project = project or parsed[0]
            agent = parsed[1]
    return project, agent


def cmd_ps(args: argparse.Namespace, env: CommandEnv) -> int:
    """List containers of the current project (or of all projects)."""
    if args.all_projects:
        labels = project_filter("")
    else:
        labels = project_filter(env.config.project_key)
    containers = env.engine.list_containers(all=args.all, labels=labels)

    if args.quiet:
        for container in containers:
            cid = container["Id"]
            env.io.print(cid if args.no_trunc else cid[:12])
        return 0

    if not containers:
        env.io.error("No containers found")
        return 0

    rows = [list(_PS_HEADER)]
    for container in containers:
        cid = container["Id"]
        project, agent = _project_and_agent(container)
        rows.append(
            [
                cid if args.no_trunc else cid[:12],
                _name(container),
                project,
                agent,
                container.get("Image", ""),
                container.get("Status", ""),
            ]
        )
    env.io.stdout.write(format_table(rows))
    return 0


# ── logs ────────────────────────────────────────────────────────────


def cmd_logs(args: argparse.Namespace, env: CommandEnv) -> int:
    """Copy a container's logs to stdout and stderr."""
    ref = env.container_ref(args.container, args.agent)
    container = env.engine.get_container(ref)
    stream = env.engine.logs(
        container.id,
        framed=not container.tty,
        follow=args.follow,
        timestamps=args.timestamps,
        tail=args.tail,
        since=args.since,
        until=args.until,
        details=args.details,
    )
    release = env.ctx.on_cancel(stream.close)
    stdout = env.io.stdout_binary
    try:
        if stream.framed:
            demux(stream.read, stdout, env.io.stderr_binary)
        else:
            for chunk in stream.iter_chunks():
                stdout.write(chunk)
                stdout.flush()
    except BerthError:
        if not env.ctx.done():
            raise
        logger.debug("Log stream for %s closed on cancel", ref)
    finally:
        release()
        stream.close()
    return 0


# ── top ─────────────────────────────────────────────────────────────


def cmd_top(args: argparse.Namespace, env: CommandEnv) -> int:
    """Print the container's process table."""
    ref = env.container_ref(args.container, args.agent)
    container = env.engine.get_container(ref)
    ps_args = " ".join(args.ps_args) or None
    result = env.engine.top(container.id, ps_args=ps_args)
    rows = [list(result.get("Titles") or [])]
    for proc in result.get("Processes") or []:
        rows.append([str(c) for c in proc])
    env.io.stdout.write(format_table(rows))
    return 0

