from .stage_10_install_dependencies import InstallDependenciesStage
from .stage_20_build_kernel import BuildKernelStage
from .stage_30_install_libevl import InstallLibevlStage
from .stage_40_install_xenomai import InstallXenomaiStage
from .stage_50_configure_environment import ConfigureEnvironmentStage
from .stage_60_tune_system import TuneSystemStage

__all__ = [
    "InstallDependenciesStage",
    "BuildKernelStage",
    "InstallLibevlStage",
    "InstallXenomaiStage",
    "ConfigureEnvironmentStage",
    "TuneSystemStage",
]
