"""Entry point for the receiver package.

Usage::

    python -m mail_receiver folders              # list folders
    python -m mail_receiver count [FOLDER]       # message counters
    python -m mail_receiver envelopes [FOLDER]   # subjects without bodies
"""

from __future__ import annotations

import sys

import structlog

from .config import ImapConfig, Pop3Config, ReceiverConfig
from .errors import MailError
from .factory import create_session
from .logging import setup_logging

COMMANDS = ("folders", "count", "envelopes")


def _load_config() -> ReceiverConfig:
    config = ReceiverConfig()
    if config.protocol == "pop3":
        return config.model_copy(update={"pop3": config.pop3 or Pop3Config()})
    return config.model_copy(update={"imap": config.imap or ImapConfig()})


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(f"Usage: python -m mail_receiver <{'|'.join(COMMANDS)}> [FOLDER]", file=sys.stderr)
        sys.exit(1)

    command = sys.argv[1]
    folder = sys.argv[2] if len(sys.argv) > 2 else None

    config = _load_config()
    setup_logging(json=config.log_json, level=config.log_level)
    logger = structlog.get_logger()

    try:
        with create_session(config) as session:
            if folder is not None:
                session.use_folder(folder)

            if command == "folders":
                for name in session.list_folders():
                    print(name)
            elif command == "count":
                print(f"messages: {session.message_count()}")
                print(f"new:      {session.new_message_count()}")
                print(f"unread:   {session.unread_message_count()}")
                print(f"deleted:  {session.deleted_message_count()}")
            else:
                for msg in session.receive().envelope_only().get():
                    print(f"{msg.number:>6}  {msg.envelope.date:<32}  {msg.subject}")
    except MailError as exc:
        logger.error("command_failed", command=command, error=str(exc))
        sys.exit(2)


if __name__ == "__main__":
    main()
