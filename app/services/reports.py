"""
Low-stock report aggregation shared by the Discord and email formatters.
Pure functions, no I/O.
"""

from datetime import date, datetime
from typing import Any, Iterable, List, Union

from app.schemas.notifications import EmailReportData, GlobalReport, LowStockItem


def _as_item(item: Any) -> LowStockItem:
    if isinstance(item, LowStockItem):
        return item
    return LowStockItem.model_validate(item)


def build_global_report(items: Iterable[Any]) -> GlobalReport:
    """
    Partition low-stock items by severity.

    critical: stock == 0
    low_stock: 0 < stock < threshold

    Items at or above their threshold land in neither bucket. Relative input
    order is preserved inside each bucket.
    """
    critical: List[LowStockItem] = []
    low_stock: List[LowStockItem] = []
    for raw in items:
        item = _as_item(raw)
        if item.stock == 0:
            critical.append(item)
        elif 0 < item.stock < item.threshold:
            low_stock.append(item)
    return GlobalReport(critical=critical, low_stock=low_stock)


def format_report_date(value: Union[date, datetime]) -> str:
    return value.strftime("%d/%m/%Y")


def build_email_report_data(items: Iterable[Any], report_date: Union[date, datetime]) -> EmailReportData:
    report_items = [_as_item(item) for item in items]
    report = build_global_report(report_items)
    return EmailReportData(
        items=report_items,
        total_items=len(report_items),
        critical_items=len(report.critical),
        low_stock_items=len(report.low_stock),
        report_date=format_report_date(report_date),
    )
