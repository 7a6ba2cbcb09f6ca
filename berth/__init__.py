# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Berth: a project-aware, Docker-compatible container CLI.

Subpackages:

- ``berth.engine``: container engine client, hijacked streams, framing
- ``berth.session``: interactive run/start/attach/exec sessions
- ``berth.stats``: container statistics aggregation and rendering
- ``berth.cp``: tar-stream copying between host and container
- ``berth.cli``: command-line surface
"""

__version__ = "0.1.0"
