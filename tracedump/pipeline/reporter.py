"""
Error Reporter

Turns a pipeline Outcome into a stderr diagnostic, an optional JSON error
artifact and the process exit status.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import click

from tracedump.core.outcome import Outcome
from tracedump.core.utils import safe_json_dump

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class ErrorReporter:
    """
    Reports the result of a pipeline.

    The error artifact is {"errors": [...]} and is written whenever a path
    was given, with an empty list on success.
    """

    def __init__(self, errors_json: Optional[Union[str, Path]] = None):
        self.errors_json = Path(errors_json) if errors_json is not None else None

    def report(self, outcome: Outcome) -> int:
        if not outcome.ok:
            click.echo(f"Errors happened while processing the trace: {outcome.summary}", err=True)

        if self.errors_json is not None:
            safe_json_dump({"errors": outcome.errors}, self.errors_json)
            logger.info(f"Wrote {len(outcome.errors)} error(s) to {self.errors_json}")

        return EXIT_SUCCESS if outcome.ok else EXIT_FAILURE
