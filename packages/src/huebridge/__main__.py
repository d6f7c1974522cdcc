"""``python -m huebridge``."""

from huebridge._cli import main

main()
