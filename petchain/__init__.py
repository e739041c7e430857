"""PetChain offline sync client."""

__version__ = "0.1.0"
