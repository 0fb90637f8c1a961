"""Language modules: registry, compatibility chain and execution."""

from .execute import Action, ModuleInfo, exec_info, run_action
from .module import Module
from .registry import AvailableLanguage, ModuleRegistry

__all__ = [
    "Action",
    "AvailableLanguage",
    "Module",
    "ModuleInfo",
    "ModuleRegistry",
    "exec_info",
    "run_action",
]
