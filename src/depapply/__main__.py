"""Allow ``python -m depapply``."""

from .cli import main

main()
