"""Allow ``python -m compliance_posture`` to run the CLI."""

from .cli import main

main()
