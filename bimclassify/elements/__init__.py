"""Upstream element source."""

from bimclassify.elements.repository import SqlElementRepository
from bimclassify.elements.source import ElementSource, PatternGroup

__all__ = ["ElementSource", "PatternGroup", "SqlElementRepository"]
