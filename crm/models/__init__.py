from crm.models.buyer import Buyer, BuyerHistory

__all__ = ["Buyer", "BuyerHistory"]
