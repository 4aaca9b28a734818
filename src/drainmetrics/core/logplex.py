"""Helpers for logplex drain request bodies."""

LOGPLEX_CONTENT_TYPE = "application/logplex-1"


def is_logplex(content_type: str | None) -> bool:
    """Return True if the content type header marks a logplex body."""
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() == LOGPLEX_CONTENT_TYPE


def split_lines(body: str) -> list[str]:
    """Split a drain body into its syslog messages.

    Logplex batches several messages per request, one per line.
    Blank lines are dropped.

    Args:
        body: Decoded request body.

    Returns:
        Non-empty lines in arrival order.
    """
    return [line for line in body.splitlines() if line.strip()]
