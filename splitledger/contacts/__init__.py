"""Contact derivation package."""

from splitledger.contacts.derivation import ContactDeriver, collect_counterparty_ids

__all__ = ["ContactDeriver", "collect_counterparty_ids"]
