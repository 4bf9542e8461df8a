"""
Game launch

Classpath and argument assembly, process spawning and crash monitoring.
"""

from craftlaunch.launch.arguments import build_classpath, game_arguments, jvm_arguments
from craftlaunch.launch.assets import AssetResolver
from craftlaunch.launch.launcher import LaunchOrchestrator
from craftlaunch.launch.monitor import CrashClassifier, OutputLine, OutputPump
from craftlaunch.launch.session import LaunchSession, SessionRegistry
from craftlaunch.launch.state import LaunchState, LaunchStateMachine

__all__ = [
    "build_classpath",
    "game_arguments",
    "jvm_arguments",
    "AssetResolver",
    "LaunchOrchestrator",
    "CrashClassifier",
    "OutputLine",
    "OutputPump",
    "LaunchSession",
    "SessionRegistry",
    "LaunchState",
    "LaunchStateMachine",
]
