"""Backend adapters for gymsync."""

from gymsync.remote.client import SupabaseRemoteStore

__all__ = ["SupabaseRemoteStore"]
