"""Dependency graph crawler: frontier engine, graph writer and workflows."""

from modgraph.crawler.dedup import AdmissionSet
from modgraph.crawler.engine import FrontierEngine
from modgraph.crawler.graph_writer import ModuleGraphWriter
from modgraph.crawler.models import CrawlStats, ModuleIdentity, ModuleNode, describe_module

__all__ = [
    "AdmissionSet",
    "CrawlStats",
    "FrontierEngine",
    "ModuleGraphWriter",
    "ModuleIdentity",
    "ModuleNode",
    "describe_module",
]
