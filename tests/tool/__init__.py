"""Test helpers for promotion-steps tools."""

import pathlib

import pytest

from promotion_steps.tool.promotion_steps import main

TESTDATA = pathlib.Path(__file__).parent.parent / "testdata"
GUESTBOOK = TESTDATA / "guestbook"


def run_main(args: list[str], capsys: pytest.CaptureFixture[str]) -> str:
    """Run the command line tool and return what it printed."""
    main(args)
    return capsys.readouterr().out
