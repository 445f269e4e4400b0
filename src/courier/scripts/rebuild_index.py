"""
Maintenance job that recomputes the conversation index from the message log.

Run it after restoring ``direct_message`` from a backup or after importing
messages written outside the relay:

    python -m courier.scripts.rebuild_index
"""

from courier.core.logging import configure_logging
from courier.db import session_scope
from courier.services.conversation_index import ConversationIndex


def main() -> int:
    """Rebuild the index and report how many entries were written."""
    configure_logging()
    with session_scope() as db:
        written = ConversationIndex().rebuild(db)
    print(f"Rebuilt conversation index: {written} entries")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
