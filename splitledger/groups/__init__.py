"""Group lifecycle package."""

from splitledger.groups.lifecycle import GroupLifecycleManager

__all__ = ["GroupLifecycleManager"]
