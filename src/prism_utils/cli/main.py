import logging
from functools import partial
from sys import stderr

from click import group, option


err = partial(print, file=stderr)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@group
@option('-v', '--verbose', count=True, help="Log more; repeat for debug output")
def prism(verbose):
    level = logging.WARNING if not verbose else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=stderr)
