"""avdmon - Azure Monitor reconciliation for Azure Virtual Desktop

Philosophy:
- Idempotent by default (create-only unless asked to update)
- Brick architecture (self-contained modules)
- Delegate to az CLI (no credentials in code)
- Fail fast on pre-flight problems, isolate per-resource failures

avdmon ensures scheduled query alerts, diagnostic settings and data collection
rules exist for an Azure Virtual Desktop environment.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
