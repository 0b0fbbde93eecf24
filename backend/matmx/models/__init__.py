from .auth import User, ROLES
from .security import SecurityEvent
from .customers import Customer, CustomerAssignment, CrmLog, CustomerLog, SalesPipelineEntry, PIPELINE_STAGES
from .tasks import CustomerTask
from .inventory import Product, InventoryAdjustment
from .imports import InventoryImportLog
from .sales import Quote, QuoteItem, Order, OrderItem
from .documents import SalesAttachment

__all__ = [
    'User', 'ROLES', 'SecurityEvent',
    'Customer', 'CustomerAssignment', 'CrmLog', 'CustomerLog', 'SalesPipelineEntry', 'PIPELINE_STAGES',
    'CustomerTask',
    'Product', 'InventoryAdjustment',
    'InventoryImportLog',
    'Quote', 'QuoteItem', 'Order', 'OrderItem',
    'SalesAttachment',
]
