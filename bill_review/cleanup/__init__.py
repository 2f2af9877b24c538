"""
Cleanup Shield Module.

This module provides functionality for:
    - Shield data types and bounding box math
    - Precedence resolution across shield sources
    - Critical-zone protection
    - Tenant-scoped vendor/template rules

Author: ML Engineering Team
"""

from .types import (
    ApplyMode,
    CleanupShield,
    CriticalZone,
    NormalizedBBox,
    PageTarget,
    RiskLevel,
    ShieldSource,
    ShieldType,
    ZoneTarget,
    denormalize_bbox,
    iou,
    normalize_bbox,
    overlap_ratio,
)
from .precedence import merge_shields
from .rules import InMemoryShieldRuleSource, ShieldRuleSource
from .engine import CleanupShieldEngine

__all__ = [
    'ApplyMode',
    'CleanupShield',
    'CriticalZone',
    'NormalizedBBox',
    'PageTarget',
    'RiskLevel',
    'ShieldSource',
    'ShieldType',
    'ZoneTarget',
    'denormalize_bbox',
    'iou',
    'normalize_bbox',
    'overlap_ratio',
    'merge_shields',
    'InMemoryShieldRuleSource',
    'ShieldRuleSource',
    'CleanupShieldEngine',
]
