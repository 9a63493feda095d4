"""
forge-coordinator: multi-agent build coordination over a line-oriented text protocol.

Agents claim named components, report progress, hand in artifacts, and receive audit
verdicts. The coordinator owns the dependency graph and component lifecycle and
recovers stalled work through claim expiry, progress timeouts, and bounded retry.

Import boundary: this module must stay free of side effects (no config loading, no
logging initialization). Heavy submodules are imported lazily by the CLI.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
