from .tenancy import Tenant
from .scheduling import Technician, Client, Service, Appointment, BlockedTime, ScheduleLock
from .inventory import Product, StockMovement, ProductBatch
from .sales import PaymentMethod, ProductSale, ServicePackage, ServicePackageSale
from .finance import AccountPayable, AccountReceivable
from .events import ProcessedEvent

__all__ = [
    'Tenant',
    'Technician', 'Client', 'Service', 'Appointment', 'BlockedTime', 'ScheduleLock',
    'Product', 'StockMovement', 'ProductBatch',
    'PaymentMethod', 'ProductSale', 'ServicePackage', 'ServicePackageSale',
    'AccountPayable', 'AccountReceivable',
    'ProcessedEvent',
]
