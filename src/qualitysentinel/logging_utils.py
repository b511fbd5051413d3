from __future__ import annotations

import logging
import sys


def configure_logging(*, verbose: bool, quiet: bool) -> None:
    """
    Configure process-wide logging for CLI usage.

    - Default: INFO
    - --verbose: DEBUG
    - --quiet: WARNING

    Logs go to stderr so JSON/Markdown written to stdout stays parseable.
    """

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    fmt = "QualitySentinel: %(message)s"
    if verbose:
        fmt = "QualitySentinel [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(level=level, format=fmt, stream=sys.stderr, force=True)
