# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""File transfer between the host and containers."""

from berth.cp.archive import (
    ChunkReader,
    archive_root_name,
    extract_tar,
    tar_stream,
    write_tar,
)
from berth.cp.paths import (
    STDIO_PATH,
    CopyArg,
    CopyPlan,
    Direction,
    parse_container_path,
    plan_copy,
)
from berth.cp.transfer import (
    CopyOptions,
    copy_from_container,
    copy_to_container,
    run_copy,
)


__all__ = [
    # Paths
    "STDIO_PATH",
    "CopyArg",
    "CopyPlan",
    "Direction",
    "parse_container_path",
    "plan_copy",
    # Archives
    "ChunkReader",
    "archive_root_name",
    "extract_tar",
    "tar_stream",
    "write_tar",
    # Transfer
    "CopyOptions",
    "copy_from_container",
    "copy_to_container",
    "run_copy",
]
