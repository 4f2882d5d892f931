import logging
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional

from sms_ledger.config.settings import ConfigLoader
from sms_ledger.domain.models import AccountMapping

logger = logging.getLogger(__name__)


class AccountResolver:
    """
    Maps (institution, masked account identifier) pairs to internal accounts.

    Same lifecycle as PatternRegistry: constructed once, read concurrently,
    writes serialized and published by swapping the whole mapping dict.
    Mappings are deactivated rather than deleted to keep history.
    """

    def __init__(self):
        self._mappings: Dict[int, AccountMapping] = {}
        self._next_id = 1
        self._write_lock = threading.Lock()

    def create_mapping(
        self,
        account_id: int,
        institution: str,
        account_identifier: str,
    ) -> AccountMapping:
        """
        Create a mapping, or return the existing one for the same triple.

        An existing but inactive mapping for the triple is reactivated
        instead of duplicated.

        Args:
            account_id: Internal account reference
            institution: Institution name (matched case-insensitively)
            account_identifier: Masked identifier as it appears in messages

        Returns:
            The single active mapping for the triple
        """
        with self._write_lock:
            for mapping in self._mappings.values():
                if mapping.account_id == account_id and mapping.matches(institution, account_identifier):
                    if mapping.is_active:
                        return mapping
                    reactivated = replace(mapping, is_active=True)
                    self._publish(reactivated)
                    return reactivated

            mapping = AccountMapping(
                account_id=account_id,
                institution=institution,
                account_identifier=account_identifier,
                id=self._next_id,
            )
            self._next_id += 1
            self._publish(mapping)

        logger.debug(
            "Mapped %s %s to account %d", institution, account_identifier, account_id
        )
        return mapping

    def find_account(self, institution: str, account_identifier: str) -> Optional[int]:
        """
        Resolve an identifier to an internal account.

        Returns:
            The account id of the first active mapping, or None
        """
        for mapping in self._mappings.values():
            if mapping.is_active and mapping.matches(institution, account_identifier):
                return mapping.account_id
        return None

    def mappings_for_account(self, account_id: int) -> List[AccountMapping]:
        """All identifiers owned by an account, active or not"""
        return [m for m in self._mappings.values() if m.account_id == account_id]

    def all_mappings(self) -> List[AccountMapping]:
        return list(self._mappings.values())

    def update_mapping(self, mapping: AccountMapping) -> bool:
        with self._write_lock:
            if mapping.id not in self._mappings:
                return False
            self._publish(mapping)
        return True

    def activate(self, mapping_id: int) -> bool:
        return self._set_active(mapping_id, True)

    def deactivate(self, mapping_id: int) -> bool:
        return self._set_active(mapping_id, False)

    def delete(self, mapping_id: int) -> bool:
        with self._write_lock:
            if mapping_id not in self._mappings:
                return False
            updated = dict(self._mappings)
            del updated[mapping_id]
            self._mappings = updated
        return True

    def _set_active(self, mapping_id: int, is_active: bool) -> bool:
        with self._write_lock:
            current = self._mappings.get(mapping_id)
            if current is None:
                return False
            self._publish(replace(current, is_active=is_active))
        return True

    def _publish(self, mapping: AccountMapping) -> None:
        # Caller holds the write lock
        updated = dict(self._mappings)
        updated[mapping.id] = mapping
        self._mappings = updated

    def load_mappings_from_config(
        self,
        config: Optional[Dict[str, Any]] = None
    ) -> List[AccountMapping]:
        """
        Create mappings from configuration.

        Args:
            config: Optional config dict. If None, loads accounts.json
                through ConfigLoader.

        Example (testing):
            resolver.load_mappings_from_config(config={"accounts": [
                {"account_id": 1, "institution": "HDFC Bank", "identifiers": ["XXXX1234"]}
            ]})
        """
        if config is None:
            config = ConfigLoader.load_accounts_config()

        created = []
        for entry in config.get('accounts', []):
            for identifier in entry['identifiers']:
                created.append(
                    self.create_mapping(entry['account_id'], entry['institution'], identifier)
                )

        logger.info("Loaded %d account mappings", len(created))
        return created

    def __repr__(self) -> str:
        return f"AccountResolver({len(self._mappings)} mappings)"
