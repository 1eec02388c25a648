"""Infrastructure adapters for primary user reconciliation.

These adapters implement the port interfaces defined in the domain layer,
connecting the application to Microsoft Graph, input files and the CSV
report.
"""

from .csv_report_writer import CsvReportSink, report_filename
from .device_list_parser import DeviceListParser
from .graph_device_store import GraphDeviceManagementStore
from .graph_directory import GraphGroupDirectory, GraphUserDirectory, odata_quote
from .graph_sign_ins import GraphSignInSource

__all__ = [
    "GraphUserDirectory",
    "GraphGroupDirectory",
    "GraphDeviceManagementStore",
    "GraphSignInSource",
    "DeviceListParser",
    "CsvReportSink",
    "report_filename",
    "odata_quote",
]
