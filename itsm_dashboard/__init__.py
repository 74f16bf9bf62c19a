"""Incident dashboard analytics: KPIs, trends and breakdowns of ITSM exports."""

from .config import ConfigError, load_config, resolve_path
from .dataset import DatasetLoader, DatasetLoadError, JsonCache, TicketDataset
from .filters import FilterSelection, filter_tickets
from .kpis import KPISet, calculate_kpis, calculate_trend
from .logging_setup import configure_logging
from .report_generation import DashboardReportBuilder
from .reporting import TicketExportWriter
from .tickets import Ticket, normalize

__all__ = [
    "ConfigError",
    "load_config",
    "resolve_path",
    "configure_logging",
    "DatasetLoader",
    "DatasetLoadError",
    "JsonCache",
    "TicketDataset",
    "FilterSelection",
    "filter_tickets",
    "KPISet",
    "calculate_kpis",
    "calculate_trend",
    "DashboardReportBuilder",
    "TicketExportWriter",
    "Ticket",
    "normalize",
]
