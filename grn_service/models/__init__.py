from grn_service.models.base import MongoModel, EmbeddedModel
from grn_service.models.audit import Actor, AuditEntry
from grn_service.models.grn import GoodsReceiptNote, GRNItem, GRNStatus, ItemStatus, QCCheck, derive_item_status
from grn_service.models.stock import StockPosting, StockEntry, StockBalance
