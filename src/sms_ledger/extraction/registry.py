import logging
import re
import threading
from dataclasses import fields
from typing import Any, Dict, List, Optional

from sms_ledger.config.settings import ConfigLoader
from sms_ledger.domain.models import MessagePattern

logger = logging.getLogger(__name__)

REGEX_FIELDS = (
    "sender_pattern",
    "amount_pattern",
    "merchant_pattern",
    "date_pattern",
    "direction_pattern",
    "account_pattern",
)


class PatternRegistry:
    """
    Registry of per-institution message patterns.

    An injectable store rather than global state: build one at startup,
    load it from config, and hand it to the extractor.

    Reads are lock-free. Every write builds a new dict under a lock and
    swaps the reference, so a lookup sees either the old or the new set
    of patterns, never a partially applied change. Dict insertion order is
    registration order, which makes "first match wins" deterministic.

    Usage:
        # Production - loads from ConfigLoader
        registry = PatternRegistry()
        registry.load_patterns_from_config()

        # Testing - inject custom config
        registry.load_patterns_from_config(config={"patterns": [...]})

        pattern = registry.find_by_sender("VK-HDFCBK")
    """

    def __init__(self):
        self._patterns: Dict[int, MessagePattern] = {}
        self._next_id = 1
        self._write_lock = threading.Lock()

    def register(self, pattern: MessagePattern) -> MessagePattern:
        """
        Register a pattern, assigning an id when it has none.

        Args:
            pattern: Pattern to store. An id of 0 means "assign one".

        Returns:
            The stored pattern (with its id)

        Raises:
            ValueError: If one of the pattern's regexes does not compile

        Example:
            registry.register(MessagePattern(institution="Test Bank", ...))
        """
        validate_pattern(pattern)

        with self._write_lock:
            if pattern.id == 0:
                pattern = pattern.with_id(self._next_id)
            self._next_id = max(self._next_id, pattern.id + 1)

            updated = dict(self._patterns)
            updated[pattern.id] = pattern
            self._patterns = updated

        logger.debug("Registered pattern %d for %s", pattern.id, pattern.institution)
        return pattern

    def find_by_sender(self, sender: str) -> Optional[MessagePattern]:
        """
        Find the first active pattern whose sender regex matches.

        Args:
            sender: Sender signature of the message (e.g. 'VK-HDFCBK')

        Returns:
            Matching pattern, or None if the sender is unrecognized
        """
        for pattern in self._patterns.values():
            if pattern.is_active and re.search(pattern.sender_pattern, sender, re.IGNORECASE):
                return pattern
        return None

    def by_institution(self, institution: str) -> List[MessagePattern]:
        """Return all active patterns for a case-insensitive institution name"""
        wanted = institution.lower()
        return [
            p for p in self._patterns.values()
            if p.is_active and p.institution.lower() == wanted
        ]

    def all_patterns(self) -> List[MessagePattern]:
        """Return every pattern, active or not, in registration order"""
        return list(self._patterns.values())

    def get(self, pattern_id: int) -> Optional[MessagePattern]:
        return self._patterns.get(pattern_id)

    def update(self, pattern: MessagePattern) -> bool:
        """Replace a stored pattern. Returns False if its id is unknown."""
        validate_pattern(pattern)
        return self._replace(pattern.id, lambda _: pattern)

    def activate(self, pattern_id: int) -> bool:
        return self._replace(pattern_id, lambda p: p.with_active(True))

    def deactivate(self, pattern_id: int) -> bool:
        return self._replace(pattern_id, lambda p: p.with_active(False))

    def delete(self, pattern_id: int) -> bool:
        """Remove a pattern entirely. Returns False if it did not exist."""
        with self._write_lock:
            if pattern_id not in self._patterns:
                return False
            updated = dict(self._patterns)
            del updated[pattern_id]
            self._patterns = updated
        return True

    def _replace(self, pattern_id: int, change) -> bool:
        with self._write_lock:
            current = self._patterns.get(pattern_id)
            if current is None:
                return False
            updated = dict(self._patterns)
            updated[pattern_id] = change(current)
            self._patterns = updated
        return True

    def load_patterns_from_config(
        self,
        config: Optional[Dict[str, Any]] = None
    ) -> List[MessagePattern]:
        """
        Load and register patterns from configuration

        Args:
            config: Optional config dict. If None, loads from ConfigLoader.
                Useful for testing with custom configs.

        Returns:
            The registered patterns

        Raises:
            TypeError: If an entry is missing a required field
            ValueError: If an entry holds an invalid regex
        """
        if config is None:
            config = ConfigLoader.load_patterns_config()

        known = {f.name for f in fields(MessagePattern)}
        registered = []
        for entry in config['patterns']:
            values = {k: v for k, v in entry.items() if k in known}
            registered.append(self.register(MessagePattern(**values)))

        logger.info("Loaded %d message patterns", len(registered))
        return registered

    def __len__(self) -> int:
        return len(self._patterns)

    def __repr__(self) -> str:
        active = sum(1 for p in self._patterns.values() if p.is_active)
        return f"PatternRegistry({active}/{len(self._patterns)} active)"


def validate_pattern(pattern: MessagePattern) -> None:
    """
    Check that every regex on a pattern compiles.

    Raises:
        ValueError: Naming the first field with an invalid regex
    """
    for name in REGEX_FIELDS:
        regex = getattr(pattern, name)
        if regex is None:
            continue
        try:
            re.compile(regex)
        except re.error as e:
            raise ValueError(
                f"Invalid {name} for '{pattern.institution}': {e}"
            ) from e
