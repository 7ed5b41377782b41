"""Protocol interfaces for the ledger's external collaborators."""
from .custody import TokenCustody
from .flash_loan import FlashLoanReceiver
from .price_oracle import PriceOracle

__all__ = ["FlashLoanReceiver", "PriceOracle", "TokenCustody"]
