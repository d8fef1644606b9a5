"""OPC UA PLC dashboard backend."""

from .services.grouping import ServerGroup, filter_variables, group_plcs_by_server
from .services.normalization import (
    BitFallback,
    BitMappingError,
    ConfigStructureError,
    DataKind,
    NormalizedPLC,
    NormalizedVariable,
    denormalize_plc,
    normalize_address_mapping,
    normalize_plc_config,
)

__all__ = [
    "BitFallback",
    "BitMappingError",
    "ConfigStructureError",
    "DataKind",
    "NormalizedPLC",
    "NormalizedVariable",
    "ServerGroup",
    "denormalize_plc",
    "filter_variables",
    "group_plcs_by_server",
    "normalize_address_mapping",
    "normalize_plc_config",
]
