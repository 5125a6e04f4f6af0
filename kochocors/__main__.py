"""``python -m kochocors`` entry point."""

from kochocors.run import main

main()
