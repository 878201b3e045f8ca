from farmlink.models.lot import ProduceLot, ProductBid
from farmlink.models.delivery import DeliveryRequest, Quote
from farmlink.models.job import DriverJob
from farmlink.models.payment import PaymentIntent
from farmlink.models.driver_tag import DriverTag

__all__ = [
    "ProduceLot",
    "ProductBid",
    "DeliveryRequest",
    "Quote",
    "DriverJob",
    "PaymentIntent",
    "DriverTag",
]
