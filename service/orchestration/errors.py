"""
Error taxonomy for the orchestration engine.

ConfigurationError is raised synchronously to whoever calls the configuration
API. Everything else is delivered through the run callback: ActionError and
PluginTimeoutError are recorded (first one wins) while sibling plugins keep
running, RunDeadlineError supersedes them and finalizes the run immediately.
"""

from typing import Optional


class LeaderError(Exception):
    """Base class for every error raised or reported by the orchestrator."""


class ConfigurationError(LeaderError):
    """Malformed registration or configuration call."""


class ActionError(LeaderError):
    """A plugin raised, or its predicate or conflict resolution failed."""

    def __init__(self, plugin: str, message: Optional[str] = None):
        self.plugin = plugin
        super().__init__(message or f"plugin '{plugin}' failed")


class PluginTimeoutError(ActionError):
    """Per-plugin timeout elapsed before the action completed."""

    def __init__(self, plugin: str, timeout: float):
        self.timeout = timeout
        super().__init__(plugin, f"plugin '{plugin}' timed out after {timeout:g}s")


class RunDeadlineError(LeaderError):
    """Global run budget elapsed before the run reached its fixpoint."""

    def __init__(self, max_time: Optional[float], message: Optional[str] = None):
        self.max_time = max_time
        super().__init__(message or f"Timeout triggered early completion after {max_time:g}s")


class RunCancelledError(RunDeadlineError):
    """Run finalized early through RunHandle.cancel()."""

    def __init__(self):
        super().__init__(None, "run cancelled before completion")
