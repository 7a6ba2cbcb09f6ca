# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""``run``, ``create``, ``start`` and ``attach``."""

import argparse
import logging
from pathlib import Path

from berth import __version__
from berth.cli.commands._common import (
    Subparsers,
    add_agent_flag,
    parse_labels,
)
from berth.cli.env import CommandEnv
from berth.engine.client import ContainerSpec, CreateResult, short_id
from berth.engine.names import container_labels, generate_random_name
from berth.errors import (
    BerthError,
    ContainerNotRunningError,
    InvalidArgumentError,
    SilentError,
)
from berth.resolve import resolve_container_name, resolve_image
from berth.session import DEFAULT_DETACH_KEYS, AttachOptions, ContainerSession


logger = logging.getLogger(__name__)


# ── Flags ───────────────────────────────────────────────────────────


def _add_create_flags(parser: argparse.ArgumentParser) -> None:
    naming = parser.add_mutually_exclusive_group()
    naming.add_argument(
        "--agent",
        metavar="NAME",
        help="Agent name; the container is named berth.<project>.<agent>",
    )
    naming.add_argument("--name", help="Full container name")
    parser.add_argument(
        "-e",
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set environment variables",
    )
    parser.add_argument(
        "-v",
        "--volume",
        action="append",
        default=[],
        metavar="HOST:CONTAINER[:MODE]",
        help="Bind mount a volume",
    )
    parser.add_argument(
        "-p",
        "--publish",
        action="append",
        default=[],
        metavar="[HOST:]CONTAINER[/PROTO]",
        help="Publish a container port to the host",
    )
    parser.add_argument(
        "-w",
        "--workdir",
        dest="container_workdir",
        help="Working directory inside the container",
    )
    parser.add_argument("-u", "--user", help="Username or UID[:GID]")
    parser.add_argument("--entrypoint", help="Override the image entrypoint")
    parser.add_argument(
        "-t", "--tty", action="store_true", help="Allocate a pseudo-TTY"
    )
    parser.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Keep stdin open",
    )
    parser.add_argument("--network", help="Connect to a network")
    parser.add_argument(
        "-l",
        "--label",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set container labels",
    )
    parser.add_argument(
        "--rm",
        action="store_true",
        help="Remove the container when it exits",
    )
    parser.add_argument(
        "--restart",
        metavar="POLICY",
        help="Restart policy (no, always, on-failure, unless-stopped)",
    )
    parser.add_argument("--memory", "-m", help="Memory limit (e.g. 512m)")
    parser.add_argument(
        "--memory-swap", help="Memory plus swap limit; requires --memory"
    )
    parser.add_argument(
        "--privileged",
        action="store_true",
        help="Give extended privileges",
    )
    parser.add_argument(
        "image",
        help="Image reference, or '@' for the project image",
    )
    parser.add_argument(
        "command", nargs=argparse.REMAINDER, help="Command and arguments"
    )


def _add_session_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--detach-keys",
        default=DEFAULT_DETACH_KEYS,
        metavar="KEYS",
        help="Key sequence for detaching (default: %(default)s)",
    )
    parser.add_argument(
        "--sig-proxy",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Forward received signals to the process (non-TTY only)",
    )


def register(subparsers: Subparsers) -> None:
    run = subparsers.add_parser(
        "run", help="Create and run a new container"
    )
    _add_create_flags(run)
    run.add_argument(
        "-d",
        "--detach",
        action="store_true",
        help="Run in the background and print the container ID",
    )
    _add_session_flags(run)
    run.set_defaults(handler=cmd_run)

    create = subparsers.add_parser("create", help="Create a new container")
    _add_create_flags(create)
    create.set_defaults(handler=cmd_create)

    start = subparsers.add_parser(
        "start", help="Start one or more stopped containers"
    )
    add_agent_flag(start)
    start.add_argument(
        "-a",
        "--attach",
        action="store_true",
        help="Attach stdout/stderr and forward signals",
    )
    start.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Attach container stdin",
    )
    start.add_argument(
        "--detach-keys",
        default=DEFAULT_DETACH_KEYS,
        metavar="KEYS",
        help="Key sequence for detaching (default: %(default)s)",
    )
    start.add_argument("containers", nargs="+", metavar="CONTAINER")
    start.set_defaults(handler=cmd_start)

    attach = subparsers.add_parser(
        "attach", help="Attach to a running container"
    )
    add_agent_flag(attach)
    attach.add_argument(
        "--no-stdin", action="store_true", help="Do not attach stdin"
    )
    _add_session_flags(attach)
    attach.add_argument("container", metavar="CONTAINER")
    attach.set_defaults(handler=cmd_attach)


# ── Create ──────────────────────────────────────────────────────────


def _validate_create(args: argparse.Namespace) -> None:
    if args.rm and args.restart and args.restart != "no":
        raise InvalidArgumentError(
            "conflicting options: --restart and --rm"
        )
    if args.memory_swap and not args.memory:
        raise InvalidArgumentError(
            "--memory-swap requires --memory to be set"
        )


def build_container_spec(
    args: argparse.Namespace, env: CommandEnv, *, attach: bool
) -> ContainerSpec:
    """Turn parsed create flags into a container spec.

    Raises:
        InvalidArgumentError: On conflicting flags.
        InvalidAgentError: If the agent name is invalid.
        NoImageError: If ``@`` cannot be resolved.
    """
    _validate_create(args)
    config = env.config
    project = config.project_key

    if args.name:
        name = args.name
        agent = args.name
    else:
        agent = args.agent or generate_random_name()
        name = resolve_container_name(project, agent)

    image = resolve_image(
        args.image, env.engine, config.project, config.settings
    )
    workdir = config.root or env.workdir or Path.cwd()
    labels = parse_labels(args.label)
    labels.update(
        container_labels(
            project,
            agent,
            version=__version__,
            image=image,
            workdir=str(workdir),
        )
    )
    project_env = [f"{k}={v}" for k, v in config.project.env.items()]

    return ContainerSpec(
        image=image,
        name=name,
        command=list(args.command),
        entrypoint=args.entrypoint,
        env=project_env + list(args.env),
        binds=list(args.volume),
        ports=list(args.publish),
        labels=labels,
        workdir=args.container_workdir,
        user=args.user,
        tty=args.tty,
        stdin_open=args.interactive,
        attach=attach,
        network=args.network,
        auto_remove=args.rm,
        restart_policy=args.restart,
        memory=args.memory,
        memory_swap=args.memory_swap,
        privileged=args.privileged,
    )


def _create(
    args: argparse.Namespace, env: CommandEnv, *, attach: bool
) -> CreateResult:
    spec = build_container_spec(args, env, attach=attach)
    logger.debug("Creating %s from %s", spec.name, spec.image)
    result = env.engine.create_container(spec)
    for warning in result.warnings:
        env.io.warning(warning)
    return result


def cmd_create(args: argparse.Namespace, env: CommandEnv) -> int:
    """Create a container and print its full ID."""
    result = _create(args, env, attach=True)
    env.io.print(result.id)
    return 0


def cmd_run(args: argparse.Namespace, env: CommandEnv) -> int:
    """Create and start a container, attaching unless ``--detach``.

    Returns:
        0 on success or detach.

    Raises:
        ExitError: If the container exits non-zero.
    """
    result = _create(args, env, attach=not args.detach)
    if args.detach:
        env.engine.start(result.id)
        env.io.print(short_id(result.id))
        return 0

    options = AttachOptions(
        stdin_open=args.interactive,
        tty=args.tty,
        auto_remove=args.rm,
        start=True,
        detach_keys=args.detach_keys,
        sig_proxy=args.sig_proxy and not args.tty,
    )
    session = ContainerSession(
        env.engine,
        result.id,
        options,
        env.session_streams(),
        env.terminal,
        env.ctx,
    )
    session.run().raise_for_status()
    return 0


# ── Start / attach ──────────────────────────────────────────────────


def cmd_start(args: argparse.Namespace, env: CommandEnv) -> int:
    """Start containers, or start one and attach to it."""
    refs = env.container_refs(args.containers, args.agent)
    if args.attach or args.interactive:
        if len(refs) > 1:
            raise InvalidArgumentError(
                "you cannot start and attach multiple containers at once"
            )
        container = env.engine.get_container(refs[0])
        options = AttachOptions(
            stdin_open=args.interactive and container.stdin_open,
            tty=container.tty,
            start=not container.running,
            detach_keys=args.detach_keys,
            sig_proxy=not container.tty,
        )
        session = ContainerSession(
            env.engine,
            container.id,
            options,
            env.session_streams(),
            env.terminal,
            env.ctx,
        )
        session.run().raise_for_status()
        return 0

    failed = False
    for arg, ref in zip(args.containers, refs, strict=True):
        try:
            container = env.engine.get_container(ref)
            env.engine.start(container.id)
        except BerthError as e:
            env.io.failure(f"Failed to start {arg}: {e}")
            failed = True
            continue
        env.io.print(arg)
    if failed:
        raise SilentError()
    return 0


def cmd_attach(args: argparse.Namespace, env: CommandEnv) -> int:
    """Attach host stdio to a running container."""
    ref = env.container_ref(args.container, args.agent)
    container = env.engine.get_container(ref)
    if not container.running:
        raise ContainerNotRunningError(args.container)
    options = AttachOptions(
        stdin_open=container.stdin_open and not args.no_stdin,
        tty=container.tty,
        start=False,
        detach_keys=args.detach_keys,
        sig_proxy=args.sig_proxy and not container.tty,
    )
    session = ContainerSession(
        env.engine,
        container.id,
        options,
        env.session_streams(),
        env.terminal,
        env.ctx,
    )
    session.run().raise_for_status()
    return 0
