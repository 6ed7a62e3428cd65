"""Allow running the command line tool with `python -m promotion_steps`."""

from promotion_steps.tool.promotion_steps import main

main()
