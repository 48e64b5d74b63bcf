"""Owner commission export pipeline."""

from .cancel import CancelToken
from .commissions import HEADER, iter_commission_rows, iter_pages
from .delivery import Attachment, FileDelivery, StreamDelivery
from .pipeline import ExportResult, export_owner
from .shops import Shop, list_owners, list_shops

__all__ = [
    "Attachment",
    "CancelToken",
    "ExportResult",
    "FileDelivery",
    "HEADER",
    "Shop",
    "StreamDelivery",
    "export_owner",
    "iter_commission_rows",
    "iter_pages",
    "list_owners",
    "list_shops",
]
