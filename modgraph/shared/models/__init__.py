from .proxy import IndexEntry, ModuleInfo, Origin

__all__ = ["IndexEntry", "ModuleInfo", "Origin"]
