"""Click Custom Types for the meetcal CLI

Validates source ids at CLI parsing time so typos fail before any
network call is made.
"""

import click

from vendors.sources import KNOWN_SOURCES


class SourceType(click.ParamType):
    """Validates a source id against the known source registry

    Valid examples:
    - milwaukee
    - milwaukeecounty
    """

    name = "source"

    def convert(self, value, param, ctx):
        if not value:
            self.fail("source cannot be empty", param, ctx)

        source_id = value.strip().lower()
        if source_id not in KNOWN_SOURCES:
            self.fail(
                f"{value!r} is not a known source. "
                f"Choose from: {', '.join(sorted(KNOWN_SOURCES))}",
                param,
                ctx,
            )

        return source_id


SOURCE = SourceType()
