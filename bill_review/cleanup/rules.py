"""
Vendor and Template Shield Rules.

Saved shields are scoped by (tenant, store, entity) so that rules
saved by one tenant are never visible to another, even for the same
vendor or template id.

Author: ML Engineering Team
"""

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List

from bill_review.utils.logger import get_logger
from .types import CleanupShield, ShieldSource

# Initialize module logger
logger = get_logger(__name__)


@dataclass(frozen=True)
class TenantScopedKey:
    """Composite key isolating rules per tenant and store."""
    tenant_id: str
    store_id: str
    entity_id: str


class ShieldRuleSource(ABC):
    """
    Supplies saved vendor and template shields.

    Implementations return empty lists for unknown keys and for any
    cross-tenant lookup.
    """

    @abstractmethod
    def get_vendor_rules(self, tenant_id: str, store_id: str, vendor_id: str) -> List[CleanupShield]:
        pass

    @abstractmethod
    def get_template_rules(self, tenant_id: str, store_id: str, template_id: str) -> List[CleanupShield]:
        pass


class InMemoryShieldRuleSource(ShieldRuleSource):
    """
    Rule source backed by dictionaries.

    Saved shields are stamped with the matching provenance (VendorRule
    or TemplateRule) so that precedence works without the caller having
    to remember it.

    Example:
        >>> rules = InMemoryShieldRuleSource()
        >>> rules.save_vendor_rules("tenant-1", "store-1", "acme", [shield])
        >>> len(rules.get_vendor_rules("tenant-2", "store-1", "acme"))
        0
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._vendor_rules: Dict[TenantScopedKey, List[CleanupShield]] = {}
        self._template_rules: Dict[TenantScopedKey, List[CleanupShield]] = {}

    def save_vendor_rules(
        self,
        tenant_id: str,
        store_id: str,
        vendor_id: str,
        rules: List[CleanupShield]
    ) -> None:
        """Replace the saved shields for a vendor."""
        stamped = []
        for rule in rules:
            rule = copy.deepcopy(rule)
            rule.provenance.source = ShieldSource.VENDOR_RULE
            rule.provenance.vendor_id = vendor_id
            stamped.append(rule)

        with self._lock:
            self._vendor_rules[TenantScopedKey(tenant_id, store_id, vendor_id)] = stamped

        logger.info(f"Saved {len(stamped)} vendor rules for {vendor_id} ({tenant_id}/{store_id})")

    def save_template_rules(
        self,
        tenant_id: str,
        store_id: str,
        template_id: str,
        rules: List[CleanupShield]
    ) -> None:
        """Replace the saved shields for a template."""
        stamped = []
        for rule in rules:
            rule = copy.deepcopy(rule)
            rule.provenance.source = ShieldSource.TEMPLATE_RULE
            rule.provenance.template_id = template_id
            stamped.append(rule)

        with self._lock:
            self._template_rules[TenantScopedKey(tenant_id, store_id, template_id)] = stamped

        logger.info(f"Saved {len(stamped)} template rules for {template_id} ({tenant_id}/{store_id})")

    def get_vendor_rules(self, tenant_id: str, store_id: str, vendor_id: str) -> List[CleanupShield]:
        with self._lock:
            rules = self._vendor_rules.get(TenantScopedKey(tenant_id, store_id, vendor_id), [])
            return copy.deepcopy(rules)

    def get_template_rules(self, tenant_id: str, store_id: str, template_id: str) -> List[CleanupShield]:
        with self._lock:
            rules = self._template_rules.get(TenantScopedKey(tenant_id, store_id, template_id), [])
            return copy.deepcopy(rules)


__all__ = ['TenantScopedKey', 'ShieldRuleSource', 'InMemoryShieldRuleSource']
