"""Module entry point: ``python -m outbox_service.main``."""

from outbox_service.cli.main import main

if __name__ == "__main__":
    main()
