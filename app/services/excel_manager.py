"""
Excel Export of the Admin Order View

Builds the ``.xlsx`` workbook for whatever the admin console is showing
(status filter, search and sort already applied), one row per order.

The workbook is produced in memory and streamed to the caller; nothing is
written to the data directory.
"""

import io
import logging
from datetime import date, datetime
from typing import Any, Iterable, Optional

import pandas as pd
from openpyxl.utils import get_column_letter

from app.core.config import get_settings
from app.schemas import AdminOrderResponse
from app.services.orders import status_label

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExcelManager:
    """Spreadsheet export for admin order lists."""

    SHEET_NAME = "Заказы"
    DATE_FORMAT = "%d.%m.%Y %H:%M"

    ORDER_COLUMNS = [
        "ID заказа",
        "Дата создания",
        "Клиент",
        "Email",
        "Количество товаров",
        "Статус",
    ]

    # Character widths, same order as ORDER_COLUMNS
    COLUMN_WIDTHS = [15, 20, 25, 25, 15, 15]

    @classmethod
    def format_date(cls, value: Optional[datetime]) -> str:
        return value.strftime(cls.DATE_FORMAT) if value else ""

    @classmethod
    def build_rows(cls, orders: Iterable[AdminOrderResponse]) -> list[dict[str, Any]]:
        """One spreadsheet row per order, keyed by column header."""
        return [
            {
                "ID заказа": order.id,
                "Дата создания": cls.format_date(order.created_at),
                "Клиент": order.customer_name,
                "Email": order.customer_email,
                "Количество товаров": order.item_count,
                "Статус": status_label(order.status),
            }
            for order in orders
        ]

    @classmethod
    def export_orders(cls, orders: Iterable[AdminOrderResponse]) -> bytes:
        """Render orders to an ``.xlsx`` workbook and return its bytes."""
        rows = cls.build_rows(orders)
        df = pd.DataFrame(rows, columns=cls.ORDER_COLUMNS)

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=cls.SHEET_NAME, index=False)
            worksheet = writer.sheets[cls.SHEET_NAME]
            for index, width in enumerate(cls.COLUMN_WIDTHS, start=1):
                worksheet.column_dimensions[get_column_letter(index)].width = width

        logger.info(f"Exported {len(rows)} order(s) to Excel")
        return buffer.getvalue()

    @classmethod
    def export_filename(cls, day: Optional[date] = None) -> str:
        """``<prefix>_<YYYY-MM-DD>.xlsx``"""
        day = day or date.today()
        return f"{get_settings().export_filename_prefix}_{day.isoformat()}.xlsx"
