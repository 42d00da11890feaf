"""CRM repositories package."""
from .customer_repository import CustomerRepository
from .deal_repository import DealRepository
from .invoice_repository import InvoiceRepository
from .shipment_repository import ShipmentRepository
from .campaign_repository import CampaignRepository
from .stats_repository import StatsRepository
from .task_repository import TaskRepository
from .product_repository import ProductRepository

__all__ = [
    'CustomerRepository', 'DealRepository', 'InvoiceRepository',
    'ShipmentRepository', 'CampaignRepository', 'StatsRepository',
    'TaskRepository', 'ProductRepository',
]
