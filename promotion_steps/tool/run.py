"""Promotion-steps run action."""

import logging
from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import pathlib
from typing import Any, cast

import aiofiles
import yaml

from promotion_steps.exceptions import InputException, StepException
from promotion_steps.manifest import (
    APPLICATION_KIND,
    read_applications,
    write_applications,
)
from promotion_steps.promotion import StepContext, StepStatus
from promotion_steps.registry import StepRunnerCapabilities, default_registry
from promotion_steps.store import InMemoryStore

from .format import FORMATTERS


_LOGGER = logging.getLogger(__name__)

_FAILED_STATUSES = (StepStatus.FAILED, StepStatus.ERRORED)


async def read_step_config(path: pathlib.Path) -> dict[str, Any]:
    """Read the configuration of a step from a YAML file."""
    try:
        async with aiofiles.open(str(path)) as config_file:
            content = await config_file.read()
    except OSError as err:
        raise InputException(f"Unable to read step config {path}: {err}") from err
    try:
        config = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse step config {path}: {err}") from err
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise InputException(f"Step config {path} must be a mapping")
    return config


async def load_store(path: pathlib.Path) -> InMemoryStore:
    """Return a store holding the Applications in a YAML file."""
    try:
        docs = await read_applications(path)
    except OSError as err:
        raise InputException(f"Unable to read Applications {path}: {err}") from err
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse Applications {path}: {err}") from err
    store = InMemoryStore()
    for doc in docs:
        store.add_object(doc)
    _LOGGER.debug("Loaded %d Application(s) from %s", len(docs), path)
    return store


class RunAction:
    """Run a promotion step."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "run",
                help="Run a promotion step",
                description=(
                    "Run a single promotion step against Applications read from "
                    "a local file and print the step result."
                ),
            ),
        )
        args.add_argument("step", help="The kind of step to run e.g. argocd-update")
        args.add_argument(
            "--apps",
            type=pathlib.Path,
            required=True,
            help="YAML file containing the Application manifests to act on",
        )
        args.add_argument(
            "--config",
            type=pathlib.Path,
            required=True,
            help="YAML file containing the configuration of the step",
        )
        args.add_argument(
            "--project", required=True, help="Project the Promotion belongs to"
        )
        args.add_argument(
            "--stage", required=True, help="Stage the Promotion is targeting"
        )
        args.add_argument(
            "--promotion", required=True, help="Name of the Promotion"
        )
        args.add_argument(
            "--actor",
            default=None,
            help="User who triggered the Promotion, if not automated",
        )
        args.add_argument(
            "--output-apps",
            type=pathlib.Path,
            default=None,
            help="Write the Applications, as updated by the step, to this file",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=sorted(FORMATTERS),
            default="yaml",
            help="Output format of the step result",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        step: str,
        apps: pathlib.Path,
        config: pathlib.Path,
        project: str,
        stage: str,
        promotion: str,
        actor: str | None,
        output_apps: pathlib.Path | None,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        store = await load_store(apps)
        step_ctx = StepContext(
            project=project,
            stage=stage,
            promotion=promotion,
            promotion_actor=actor,
            config=await read_step_config(config),
        )
        runner = default_registry().new_runner(
            step, StepRunnerCapabilities(store=store)
        )
        result = await runner.run(step_ctx)
        FORMATTERS[output]().print(result.to_dict())

        if output_apps is not None:
            await write_applications(output_apps, store.list_objects(APPLICATION_KIND))

        if result.status in _FAILED_STATUSES:
            raise StepException(
                f"step {step} finished with status {result.status}: {result.message}"
            )
