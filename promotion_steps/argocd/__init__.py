"""Step runner that updates and syncs Argo CD Applications."""

from .config import ArgoCDUpdateConfig, parse_update_config
from .updater import STEP_KIND, ArgoCDUpdater, UpdaterConfig, UpdaterFunctions

__all__ = [
    "STEP_KIND",
    "ArgoCDUpdateConfig",
    "ArgoCDUpdater",
    "UpdaterConfig",
    "UpdaterFunctions",
    "parse_update_config",
]
