"""Allow ``python -m ccyolo``."""

from ccyolo.cli import main

if __name__ == "__main__":
    main()
