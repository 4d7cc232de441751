"""Services module for reconciliation, the price ledger and price analytics.

Services take an AsyncSession (or a session factory for long-lived ones)
and implement the persistence-side logic of the pipeline.
"""

from pricehunter.services.currency import ExchangeRateProvider
from pricehunter.services.ledger import PriceLedgerWriter, compute_discount
from pricehunter.services.price_analysis import PriceAnalysis, PriceAnalyzer
from pricehunter.services.price_prediction import BestTimeToBuy, PricePrediction, PricePredictor
from pricehunter.services.reconciler import ProductReconciler

__all__ = [
    "ExchangeRateProvider",
    "PriceLedgerWriter",
    "compute_discount",
    "PriceAnalysis",
    "PriceAnalyzer",
    "BestTimeToBuy",
    "PricePrediction",
    "PricePredictor",
    "ProductReconciler",
]
