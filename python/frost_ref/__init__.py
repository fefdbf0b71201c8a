__all__ = ["frost", "signing", "shamir"]
