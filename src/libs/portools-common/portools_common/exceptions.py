# src/libs/portools-common/portools_common/exceptions.py

class ChangeFeedError(Exception):
    """
    Raised when the change feed can no longer deliver events (fatal broker
    error, feed closed underneath a reader, unrecoverable open failure).

    This is terminal for the summary stream: the orchestrator stops and the
    process exits so a supervisor can restart it from the last checkpoint.
    """
    pass
