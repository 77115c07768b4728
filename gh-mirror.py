#!/usr/bin/env python3
"""
gh-mirror - Keep a GitLab copy of a GitHub repository in sync.

Every push event on GitHub is checked against the feature-branch policy and,
when it qualifies, the default branch, the pushed branch and all tags are
force-pushed to GitLab. It is a one-way mirror: GitLab-only history is
overwritten.

Licensed under the MIT License. See LICENSE file for details.
"""

from __future__ import annotations

import sys
from typing import NoReturn

from argument_parser import COMMAND_RUN, parse_arguments
from sync_orchestrator import MirrorOrchestrator, SetupOrchestrator

# Exit codes
EXIT_SUCCESS = 0
EXIT_EXECUTION_ERROR = 1


def main() -> NoReturn:
    if __name__ != "__main__":
        sys.exit(EXIT_EXECUTION_ERROR)

    command, cfg = parse_arguments()
    if command == COMMAND_RUN:
        orchestrator = MirrorOrchestrator(cfg)
    else:
        orchestrator = SetupOrchestrator(cfg)
    sys.exit(orchestrator.run())


if __name__ == "__main__":
    main()
