"""Wire contracts shared by backend adapters and the reconciler."""
