from .base import ADDRESS_ZERO, POOL_EVENTS, ChainEvent, ContractClient, TxReceipt

__all__ = ["ADDRESS_ZERO", "POOL_EVENTS", "ChainEvent", "ContractClient", "TxReceipt"]
