from .hierarchy_store import HierarchyStore, OrphanPolicy
