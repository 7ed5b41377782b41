"""Price oracle implementations."""
from .pyth import PythPriceFeed, pyth_to_wad
from .static import StaticPriceOracle

__all__ = ["PythPriceFeed", "StaticPriceOracle", "pyth_to_wad"]
