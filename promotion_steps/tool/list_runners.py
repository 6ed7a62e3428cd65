"""Promotion-steps list action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from promotion_steps.registry import default_registry

from .format import PrintFormatter


class ListAction:
    """List the available promotion steps."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "list",
                help="List the available promotion steps",
                description="Print the promotion steps that can be run",
            ),
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        registry = default_registry()
        results = []
        for name in registry.names():
            registration = registry.get(name)
            assert registration is not None
            metadata = registration.metadata
            timeout = metadata.default_timeout
            results.append(
                {
                    "name": name,
                    "timeout": f"{int(timeout.total_seconds())}s" if timeout else "-",
                    "capabilities": ",".join(sorted(metadata.required_capabilities))
                    or "-",
                }
            )
        PrintFormatter().print(results)
